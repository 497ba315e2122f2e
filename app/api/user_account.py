from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client, bearer_provider
from app.src.constants import REGEX_PASSWORD
from app.src.db import (
    User,
    UserToken,
    Order,
    PaymentMethod,
    Notification,
    sessionMaker,
)
from app.src import crypto, exceptions, validators, getters
from app.src.enums import UserRole
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.urls import URL_ACCOUNT

route_public = APIRouter()
route_admin = APIRouter()
route_client = APIRouter()
route_provider = APIRouter()


## Output Schema
class UserSchema(BaseModel):
    id: int
    first_name: str
    last_name: str
    email_id: str
    phone_number: Optional[str]
    role: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class SignUpForm(BaseModel):
    first_name: str = Field(Form(min_length=1, max_length=100))
    last_name: str = Field(Form(min_length=1, max_length=100))
    email_id: EmailStr = Field(
        Form(max_length=255, description="Email in RFC 5322 format")
    )
    password: str = Field(Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )


class CreateForm(SignUpForm):
    role: UserRole = Field(Form(description=enumStr(UserRole)))


class SelfUpdateForm(BaseModel):
    first_name: str | None = Field(Form(min_length=1, max_length=100, default=None))
    last_name: str | None = Field(Form(min_length=1, max_length=100, default=None))
    email_id: EmailStr | None = Field(
        Form(max_length=255, default=None, description="Email in RFC 5322 format")
    )
    password: str | None = Field(
        Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32, default=None)
    )
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )


class UpdateForm(SelfUpdateForm):
    id: int = Field(Form())
    role: UserRole | None = Field(Form(description=enumStr(UserRole), default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    first_name: str | None = Field(Query(default=None))
    last_name: str | None = Field(Query(default=None))
    email_id: str | None = Field(Query(default=None))
    phone_number: str | None = Field(Query(default=None))
    role: UserRole | None = Field(Query(default=None, description=enumStr(UserRole)))
    # id based
    id: int | None = Field(Query(default=None))
    id_ge: int | None = Field(Query(default=None))
    id_le: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # updated_on based
    updated_on_ge: datetime | None = Field(Query(default=None))
    updated_on_le: datetime | None = Field(Query(default=None))
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
def createUser(session: Session, fParam: SignUpForm, role: UserRole) -> User:
    user = User(
        first_name=fParam.first_name,
        last_name=fParam.last_name,
        email_id=fParam.email_id,
        password=crypto.makePassword(fParam.password),
        phone_number=fParam.phone_number,
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def updateUser(user: User, fParam: SelfUpdateForm):
    updateIfChanged(
        user,
        fParam,
        [
            User.first_name.key,
            User.last_name.key,
            User.email_id.key,
            User.phone_number.key,
        ],
    )
    if fParam.password is not None:
        user.password = crypto.makePassword(fParam.password)


def deleteUser(session: Session, user: User):
    """
    Delete a user applying the referential rules of the account.

    - Orders placed by the user block the deletion (restrict).
    - Payment methods, notifications and tokens of the user are removed (cascade).

    The caller is responsible for committing the session.

    Raises:
        exceptions.DependencyExists: If the user has placed orders.
    """
    orderCount = session.query(Order).filter(Order.user_id == user.id).count()
    if orderCount > 0:
        raise exceptions.DependencyExists(User, Order)

    session.query(PaymentMethod).filter(PaymentMethod.user_id == user.id).delete()
    session.query(Notification).filter(Notification.user_id == user.id).delete()
    session.query(UserToken).filter(UserToken.user_id == user.id).delete()
    session.delete(user)
    session.flush()


def searchUser(session: Session, qParam: QueryParams) -> List[User]:
    query = session.query(User)

    # Filters
    if qParam.first_name is not None:
        query = query.filter(User.first_name.ilike(f"%{qParam.first_name}%"))
    if qParam.last_name is not None:
        query = query.filter(User.last_name.ilike(f"%{qParam.last_name}%"))
    if qParam.email_id is not None:
        query = query.filter(User.email_id.ilike(f"%{qParam.email_id}%"))
    if qParam.phone_number is not None:
        query = query.filter(User.phone_number.ilike(f"%{qParam.phone_number}%"))
    if qParam.role is not None:
        query = query.filter(User.role == qParam.role)
    # id based
    if qParam.id is not None:
        query = query.filter(User.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(User.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(User.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(User.id.in_(qParam.id_list))
    # updated_on based
    if qParam.updated_on_ge is not None:
        query = query.filter(User.updated_on >= qParam.updated_on_ge)
    if qParam.updated_on_le is not None:
        query = query.filter(User.updated_on <= qParam.updated_on_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(User.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(User.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(User, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def updateSelf(session: Session, token: UserToken, fParam: SelfUpdateForm, request_info):
    user = session.query(User).filter(User.id == token.user_id).first()
    updateUser(user, fParam)
    haveUpdates = session.is_modified(user)
    if haveUpdates:
        session.commit()
        session.refresh(user)
        logEvent(token, request_info, jsonable_encoder(user, exclude=excludedFields))
    return user


excludedFields = {"password", "refresh_token", "refresh_token_expires_at"}


## API endpoints [Public]
@route_public.post(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.UniqueViolation()]),
    description="""
    Self-service sign-up of a client account.
    The password is hashed using Argon2 before storing.
    Duplicate email addresses are rejected with UniqueViolation.
    """,
)
async def create_client(fParam: SignUpForm = Depends()):
    try:
        session = sessionMaker()
        return createUser(session, fParam, UserRole.CLIENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation()]
    ),
    description="""
    Create a new account with any role.
    The password is hashed using Argon2 before storing.
    Duplicate email addresses are not allowed.
    Logs the account creation activity with the associated token.
    """,
)
async def create_user(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        user = createUser(session, fParam, fParam.role)
        logEvent(token, request_info, jsonable_encoder(user, exclude=excludedFields))
        return user
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Update any account.
    Administrators cannot change their own role.
    Changing the role of a user revokes all of the user's access tokens.
    Modifications are only saved if changes are detected.
    """,
)
async def update_user(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        user = session.query(User).filter(User.id == fParam.id).first()
        if user is None:
            raise exceptions.InvalidIdentifier()

        updateUser(user, fParam)
        if fParam.role is not None and user.role != fParam.role:
            if user.id == token.user_id:
                raise exceptions.NoPermission()
            session.query(UserToken).filter(UserToken.user_id == user.id).delete()
            user.role = fParam.role

        haveUpdates = session.is_modified(user)
        if haveUpdates:
            session.commit()
            session.refresh(user)
            logEvent(token, request_info, jsonable_encoder(user, exclude=excludedFields))
        return user
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_ACCOUNT,
    tags=["Account"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DependencyExists(),
        ]
    ),
    description="""
    Delete an account.
    Self-deletion is not allowed.
    Accounts with orders cannot be deleted (DependencyExists).
    Payment methods, notifications and tokens of the account are deleted with it.
    """,
)
async def delete_user(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        # Prevent self deletion
        if fParam.id == token.user_id:
            raise exceptions.NoPermission()

        user = session.query(User).filter(User.id == fParam.id).first()
        if user is not None:
            deleteUser(session, user)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(user, exclude=excludedFields))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=List[UserSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch accounts with filtering, sorting, and pagination.
    Filter by name, contact details, role, and creation/update timestamps.
    """,
)
async def fetch_users(qParam: QueryParams = Depends(), bearer=Depends(bearer_admin)):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchUser(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Client]
@route_client.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the account of the client.
    """,
)
async def fetch_client(bearer=Depends(bearer_client)):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        return getters.tokenUser(token, session)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.patch(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation()]
    ),
    description="""
    Update the account of the client.
    The role cannot be changed.
    """,
)
async def update_client(
    fParam: SelfUpdateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        return updateSelf(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.delete(
    URL_ACCOUNT,
    tags=["Account"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.DependencyExists()]
    ),
    description="""
    Delete the account of the client.
    Accounts with orders cannot be deleted (DependencyExists).
    """,
)
async def delete_client(
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        user = getters.tokenUser(token, session)
        deleteUser(session, user)
        session.commit()
        logEvent(token, request_info, jsonable_encoder(user, exclude=excludedFields))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the account of the provider.
    """,
)
async def fetch_provider(bearer=Depends(bearer_provider)):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        return getters.tokenUser(token, session)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_provider.patch(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=UserSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation()]
    ),
    description="""
    Update the account of the provider.
    The role cannot be changed.
    """,
)
async def update_provider(
    fParam: SelfUpdateForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        return updateSelf(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
