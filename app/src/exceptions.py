"""
Centralized exception handling for FuelTrack API.

This module provides:
- Base APIException class extending FastAPI's HTTPException.
- Custom domain-specific exceptions with appropriate status codes and headers.
- Utility functions for formatting DB errors, logging, and routing exceptions.

Usage:
    - Raise specific exceptions in route handlers or domain functions.
    - Use `handle()` to normalize raw exceptions (DB, Redis, Pydantic) into API-friendly responses.
"""

from traceback import format_exception
from logging import getLogger
from fastapi import status, HTTPException
from sqlalchemy.exc import IntegrityError
from psycopg2.errorcodes import UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION
from pydantic import ValidationError
from redis.exceptions import RedisError
from sqlalchemy import Column


# ---------------------------------------------------------------------------
# Utility functions
# ---------------------------------------------------------------------------
def formatIntegrityError(e: IntegrityError) -> str:
    """
    Format a database integrity error into a user-friendly message.
    """
    diag = getattr(e.orig, "diag", None)
    if diag is None or diag.message_detail is None:
        return str(e.orig)
    errorMessage: str = diag.message_detail
    errorMessage = errorMessage.translate({ord(i): None for i in '\\"\\.\\(\\)'})
    errorMessage = errorMessage.replace("Key ", "For ")
    errorMessage = errorMessage.replace("=", " value ")
    return errorMessage


def integrityErrorCode(e: IntegrityError) -> str | None:
    """
    Return the SQLSTATE of an integrity error.

    PostgreSQL drivers expose it as `pgcode`. Other engines only report a
    message, which is mapped onto the matching SQLSTATE.
    """
    code = getattr(e.orig, "pgcode", None)
    if code is not None:
        return code
    message = str(e.orig).upper()
    if "UNIQUE" in message:
        return UNIQUE_VIOLATION
    if "FOREIGN KEY" in message:
        return FOREIGN_KEY_VIOLATION
    return None


def stateName(state) -> str:
    """Return the enum member name of a state, or its string form."""
    return getattr(state, "name", str(state))


def logException(e: Exception) -> None:
    """Log an exception with traceback using Uvicorn's error logger."""
    detail = str(format_exception(type(e), e, e.__traceback__))
    logger = getLogger("uvicorn.error")
    logger.error(detail)


# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------
class APIException(HTTPException):
    """
    Base class for all application-specific exceptions.

    Provides default handling of status_code, detail, and headers.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = None
    headers = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("status_code", self.status_code)
        kwargs.setdefault("detail", self.detail)
        kwargs.setdefault("headers", self.headers)
        super().__init__(*args, **kwargs)


# ---------------------------------------------------------------------------
# Exception handling entrypoint
# ---------------------------------------------------------------------------
def handle(e: Exception):
    """
    Normalize and re-raise exceptions as API-friendly errors.

    Converts raw exceptions from DB, Pydantic, Redis, etc. into
    corresponding APIException subclasses.
    """
    if isinstance(e, IntegrityError):
        sqlstate = integrityErrorCode(e)
        if sqlstate == UNIQUE_VIOLATION:
            raise UniqueViolation(formatIntegrityError(e))
        if sqlstate == FOREIGN_KEY_VIOLATION:
            raise ForeignKeyViolation(formatIntegrityError(e))
    if isinstance(e, ValidationError):
        raise PydanticError(detail=e.errors())
    if isinstance(e, APIException):
        raise e
    if isinstance(e, RedisError):
        raise RedisDBError(detail=str(e))

    logException(e)
    raise e


# ---------------------------------------------------------------------------
# Exception Classes
# ---------------------------------------------------------------------------
class PydanticError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    headers = {"X-Error": "PydanticError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class UniqueViolation(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "A record with the same unique value already exists"
    headers = {"X-Error": "UniqueViolation"}

    def __init__(self, detail: str = None):
        super().__init__(detail=detail or self.detail)


class ForeignKeyViolation(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    detail = "A referenced record does not exist or is still referenced"
    headers = {"X-Error": "ForeignKeyViolation"}

    def __init__(self, detail: str = None):
        super().__init__(detail=detail or self.detail)


class UnknownValue(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    headers = {"X-Error": "UnknownValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidValue(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidValue"}

    def __init__(self, column_name: Column):
        detail = f"Invalid {column_name.name} is provided"
        super().__init__(detail=detail)


class InvalidCredentials(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid email or password"
    headers = {"X-Error": "InvalidCredentials"}


class InvalidToken(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid token"
    headers = {"X-Error": "InvalidToken"}


class NoPermission(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "This user has no permission to perform this action"
    headers = {"X-Error": "NoPermission"}


class InvalidIdentifier(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Invalid ID provided"
    headers = {"X-Error": "InvalidIdentifier"}


class InvalidStateTransition(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    detail = "The status cannot be changed to the provided value"
    headers = {"X-Error": "InvalidStateTransition"}

    def __init__(self, column_name: Column = None, old_state=None, new_state=None):
        if column_name is None:
            detail = self.detail
        elif old_state is None or new_state is None:
            detail = f"The {column_name.name} cannot be set to the provided value"
        else:
            detail = (
                f"The {column_name.name} cannot be changed from "
                f"{stateName(old_state)} to {stateName(new_state)}"
            )
        super().__init__(detail=detail)


class ResourceUnavailable(APIException):
    status_code = status.HTTP_412_PRECONDITION_FAILED
    detail = "The resource is not available"
    headers = {"X-Error": "ResourceUnavailable"}

    def __init__(self, orm_class=None):
        if orm_class is None:
            detail = self.detail
        else:
            detail = f"The {orm_class.__name__} is not available for assignment"
        super().__init__(detail=detail)


class DependencyExists(APIException):
    status_code = status.HTTP_409_CONFLICT
    detail = "The record is referenced by other records"
    headers = {"X-Error": "DependencyExists"}

    def __init__(self, orm_class=None, dependent_class=None):
        if orm_class is None or dependent_class is None:
            detail = self.detail
        else:
            detail = (
                f"The {orm_class.__name__} cannot be deleted "
                f"while {dependent_class.__name__} records reference it"
            )
        super().__init__(detail=detail)


class InvalidAssociation(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "InvalidAssociation"}

    def __init__(self, column_name_1: Column, column_name_2: Column):
        detail = f"The {column_name_1.name} is not associated with {column_name_2.name}"
        super().__init__(detail=detail)


class LockAcquireTimeout(APIException):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    headers = {"X-Error": "LockAcquireTimeout"}
    detail = "Lock acquisition timed out"


class RedisDBError(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    headers = {"X-Error": "RedisAPIError"}

    def __init__(self, detail: str):
        super().__init__(detail=detail)
