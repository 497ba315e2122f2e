from datetime import datetime, timedelta, timezone
from enum import IntEnum
from secrets import token_hex
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client, bearer_provider
from app.src.constants import (
    MAX_USER_TOKENS,
    MAX_TOKEN_VALIDITY,
    MAX_REFRESH_TOKEN_VALIDITY,
)
from app.src.db import User, UserToken, sessionMaker
from app.src import crypto, exceptions, validators, getters
from app.src.enums import PlatformType
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses
from app.src.urls import URL_TOKEN

route_public = APIRouter()
route_admin = APIRouter()
route_client = APIRouter()
route_provider = APIRouter()


## Output Schema
class MaskedUserTokenSchema(BaseModel):
    id: int
    user_id: int
    expires_in: int
    platform_type: int
    client_details: Optional[str]
    updated_on: Optional[datetime]
    created_on: datetime


class UserTokenSchema(MaskedUserTokenSchema):
    access_token: str
    refresh_token: str
    role: int
    token_type: Optional[str] = "bearer"


## Input Forms
class CreateForm(BaseModel):
    email_id: EmailStr = Field(Form(max_length=255))
    password: str = Field(Form(max_length=32))
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


class RefreshForm(BaseModel):
    refresh_token: str = Field(Form(min_length=64, max_length=64))
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


class DeleteForm(BaseModel):
    id: int | None = Field(Form(default=None))


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    platform_type: PlatformType | None = Field(
        Query(default=None, description=enumStr(PlatformType))
    )
    client_details: str | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_ge: int | None = Field(Query(default=None))
    id_le: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def issueToken(
    session: Session,
    user: User,
    platform_type: PlatformType,
    client_details: str | None,
) -> UserToken:
    """
    Create a new access token for the user and rotate the user's refresh token.

    Only the latest MAX_USER_TOKENS tokens are kept; the oldest ones are removed.
    The caller is responsible for committing the session.
    """
    tokens = (
        session.query(UserToken)
        .filter(UserToken.user_id == user.id)
        .order_by(UserToken.created_on.desc(), UserToken.id.desc())
        .all()
    )
    for token in tokens[MAX_USER_TOKENS - 1 :]:
        session.delete(token)
    session.flush()

    currentTime = datetime.now(timezone.utc)
    token = UserToken(
        user_id=user.id,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=currentTime + timedelta(seconds=MAX_TOKEN_VALIDITY),
        platform_type=platform_type,
        client_details=client_details,
    )
    session.add(token)
    user.refresh_token = token_hex(32)
    user.refresh_token_expires_at = currentTime + timedelta(
        seconds=MAX_REFRESH_TOKEN_VALIDITY
    )
    return token


def tokenResponse(token: UserToken, user: User) -> dict:
    tokenData = jsonable_encoder(token)
    tokenData["refresh_token"] = user.refresh_token
    tokenData["role"] = user.role
    return tokenData


def logTokenEvent(token: UserToken, request_info, tokenData: dict):
    tokenLogData = tokenData.copy()
    tokenLogData.pop("access_token")
    tokenLogData.pop("refresh_token")
    logEvent(token, request_info, tokenLogData)


def searchToken(session: Session, user_id: int, qParam: QueryParams) -> List[UserToken]:
    query = session.query(UserToken).filter(UserToken.user_id == user_id)

    # Filters
    if qParam.platform_type is not None:
        query = query.filter(UserToken.platform_type == qParam.platform_type)
    if qParam.client_details is not None:
        query = query.filter(
            UserToken.client_details.ilike(f"%{qParam.client_details}%")
        )
    # id based
    if qParam.id is not None:
        query = query.filter(UserToken.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(UserToken.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(UserToken.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(UserToken.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(UserToken.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(UserToken.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(UserToken, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def deleteToken(session: Session, token: UserToken, fParam: DeleteForm) -> UserToken | None:
    if fParam.id is None:
        tokenToDelete = token
    else:
        tokenToDelete = (
            session.query(UserToken)
            .filter(UserToken.id == fParam.id)
            .filter(UserToken.user_id == token.user_id)
            .first()
        )
    if tokenToDelete is not None:
        session.delete(tokenToDelete)
        session.commit()
    return tokenToDelete


## API endpoints [Public]
@route_public.post(
    URL_TOKEN,
    tags=["Token"],
    response_model=UserTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.InvalidCredentials()]),
    description="""
    Issues a new access token and refresh token after validating credentials.
    Works for every role, the role of the user is returned along with the token.
    Limits active tokens using MAX_USER_TOKENS (token rotation).
    Sets expiration with expires_in=MAX_TOKEN_VALIDITY (in seconds).
    Logs the authentication event for audit tracking.
    """,
)
async def create_token(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        user = session.query(User).filter(User.email_id == fParam.email_id).first()
        if user is None:
            raise exceptions.InvalidCredentials()
        if not crypto.checkPassword(fParam.password, user.password):
            raise exceptions.InvalidCredentials()

        token = issueToken(session, user, fParam.platform_type, fParam.client_details)
        session.commit()
        session.refresh(token)

        tokenData = tokenResponse(token, user)
        logTokenEvent(token, request_info, tokenData)
        return tokenData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.patch(
    URL_TOKEN,
    tags=["Token"],
    response_model=UserTokenSchema,
    responses=fuseExceptionResponses([exceptions.InvalidCredentials()]),
    description="""
    Exchanges a refresh token for a new access token.
    The refresh token is rotated, the old value stops working immediately.
    Expired refresh tokens are rejected with InvalidCredentials.
    """,
)
async def refresh_token(
    fParam: RefreshForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        currentTime = datetime.now(timezone.utc)
        user = (
            session.query(User)
            .filter(
                User.refresh_token == fParam.refresh_token,
                User.refresh_token_expires_at > currentTime,
            )
            .first()
        )
        if user is None:
            raise exceptions.InvalidCredentials()

        token = issueToken(session, user, fParam.platform_type, fParam.client_details)
        session.commit()
        session.refresh(token)

        tokenData = tokenResponse(token, user)
        logTokenEvent(token, request_info, tokenData)
        return tokenData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.get(
    URL_TOKEN,
    tags=["Token"],
    response_model=List[MaskedUserTokenSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the masked access tokens of the administrator.
    """,
)
async def fetch_tokens(qParam: QueryParams = Depends(), bearer=Depends(bearer_admin)):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)
        return searchToken(session, token.user_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes an access token of the administrator.
    If no id is provided, the token used in this request is revoked (log out).
    """,
)
async def delete_token(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)
        deletedToken = deleteToken(session, token, fParam)
        if deletedToken is not None:
            logEvent(
                token,
                request_info,
                jsonable_encoder(deletedToken, exclude={"access_token"}),
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Client]
@route_client.get(
    URL_TOKEN,
    tags=["Token"],
    response_model=List[MaskedUserTokenSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the masked access tokens of the client.
    """,
)
async def fetch_tokens(qParam: QueryParams = Depends(), bearer=Depends(bearer_client)):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        return searchToken(session, token.user_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.delete(
    URL_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes an access token of the client.
    If no id is provided, the token used in this request is revoked (log out).
    """,
)
async def delete_token(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        deletedToken = deleteToken(session, token, fParam)
        if deletedToken is not None:
            logEvent(
                token,
                request_info,
                jsonable_encoder(deletedToken, exclude={"access_token"}),
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.get(
    URL_TOKEN,
    tags=["Token"],
    response_model=List[MaskedUserTokenSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the masked access tokens of the provider.
    """,
)
async def fetch_tokens(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_provider)
):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        return searchToken(session, token.user_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_provider.delete(
    URL_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes an access token of the provider.
    If no id is provided, the token used in this request is revoked (log out).
    """,
)
async def delete_token(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        deletedToken = deleteToken(session, token, fParam)
        if deletedToken is not None:
            logEvent(
                token,
                request_info,
                jsonable_encoder(deletedToken, exclude={"access_token"}),
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
