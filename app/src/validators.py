"""
Validation and permission checks for FuelTrack API.

This module centralizes guard logic such as:
- Token validation per user role
- Ownership checks
- State transition enforcement

All functions raise appropriate exceptions from `app.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Any, List
from sqlalchemy import Column
from sqlalchemy.orm.session import Session

from app.src.db import User, UserToken
from app.src.enums import UserRole
from app.src import exceptions
from app.src.functions import isValidTransition


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def _validate_token(
    access_token: str, session: Session, roles: List[UserRole]
) -> UserToken:
    """
    Validate an access token and the role of its owner.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.
        roles (List[UserRole]): Roles allowed to use the token.

    Returns:
        UserToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found, has expired or
            belongs to a user with another role.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(UserToken)
        .join(User, User.id == UserToken.user_id)
        .filter(
            UserToken.access_token == access_token,
            UserToken.expires_at > current_time,
            User.role.in_(roles),
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


def adminToken(access_token: str, session: Session) -> UserToken:
    """Validate an administrator access token."""
    return _validate_token(access_token, session, [UserRole.ADMIN])


def clientToken(access_token: str, session: Session) -> UserToken:
    """Validate a client access token."""
    return _validate_token(access_token, session, [UserRole.CLIENT])


def providerToken(access_token: str, session: Session) -> UserToken:
    """Validate a provider access token."""
    return _validate_token(access_token, session, [UserRole.PROVIDER])


# ---------------------------------------------------------------------------
# Ownership checks
# ---------------------------------------------------------------------------
def ownership(token: UserToken, ownerID: int) -> bool:
    """
    Validate that the record owned by `ownerID` belongs to the token's user.

    Raises:
        exceptions.NoPermission: If the record belongs to another user.
    """
    if token.user_id != ownerID:
        raise exceptions.NoPermission()
    return True


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
            The message names both the current and the requested state.
    """
    if not isValidTransition(transitions, old_state, new_state):
        stateType = type(new_state)
        if isinstance(old_state, int) and not isinstance(old_state, stateType):
            old_state = stateType(old_state)
        raise exceptions.InvalidStateTransition(state, old_state, new_state)
    return True
