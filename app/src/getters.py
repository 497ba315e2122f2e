from fastapi import Request
from sqlalchemy.orm.session import Session

from app.src import schemas
from app.src.db import User, UserToken


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Collect the request details recorded with every audit event.

    Returns:
        schemas.RequestInfo: method, path and the `AppID` of the audience
        application, plus the client host and user agent when the request
        carries them.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
        client_host=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def tokenUser(token: UserToken, session: Session) -> User | None:
    return session.query(User).filter(User.id == token.user_id).first()
