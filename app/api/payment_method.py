from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client
from app.src.constants import REGEX_CARD_NUMBER
from app.src.db import PaymentMethod, Payment, sessionMaker
from app.src import crypto, exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, promoteToParent
from app.src.urls import URL_PAYMENT_METHOD

route_admin = APIRouter()
route_client = APIRouter()


## Output Schema
class PaymentMethodSchema(BaseModel):
    id: int
    user_id: int
    card_holder_name: str
    last_four_digits: str
    card_type: str
    expiry_date: datetime
    is_default: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    card_holder_name: str = Field(Form(min_length=1, max_length=100))
    card_number: str = Field(
        Form(pattern=REGEX_CARD_NUMBER, description="Digits only, never stored in plain text")
    )
    card_type: str = Field(Form(min_length=1, max_length=50))
    expiry_date: datetime = Field(Form())
    is_default: bool = Field(Form(default=False))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    card_holder_name: str | None = Field(Form(min_length=1, max_length=100, default=None))
    expiry_date: datetime | None = Field(Form(default=None))
    is_default: bool | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    expiry_date = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    card_holder_name: str | None = Field(Query(default=None))
    card_type: str | None = Field(Query(default=None))
    last_four_digits: str | None = Field(Query(default=None))
    is_default: bool | None = Field(Query(default=None))
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


class QueryParamsForAdmin(QueryParams):
    user_id: int | None = Field(Query(default=None))


## Function
def clearDefault(session: Session, user_id: int, keepID: int | None = None):
    """Unset the default flag on every card of the user except `keepID`."""
    query = session.query(PaymentMethod).filter(
        PaymentMethod.user_id == user_id,
        PaymentMethod.is_default.is_(True),
    )
    if keepID is not None:
        query = query.filter(PaymentMethod.id != keepID)
    query.update({PaymentMethod.is_default: False}, synchronize_session=False)


def createPaymentMethod(
    session: Session, user_id: int, fParam: CreateForm
) -> PaymentMethod:
    """
    Save a card for the user. The first card of a user is always the default.
    The caller is responsible for committing the session.
    """
    cardCount = (
        session.query(PaymentMethod).filter(PaymentMethod.user_id == user_id).count()
    )
    isDefault = fParam.is_default or cardCount == 0
    if isDefault:
        clearDefault(session, user_id)

    paymentMethod = PaymentMethod(
        user_id=user_id,
        card_holder_name=fParam.card_holder_name,
        last_four_digits=crypto.lastFourDigits(fParam.card_number),
        card_type=fParam.card_type,
        encrypted_card_number=crypto.encryptCardNumber(fParam.card_number),
        expiry_date=fParam.expiry_date,
        is_default=isDefault,
    )
    session.add(paymentMethod)
    return paymentMethod


def deletePaymentMethod(session: Session, paymentMethod: PaymentMethod):
    """
    Delete a card that has never been used for a payment.

    Raises:
        exceptions.DependencyExists: If a payment references the card.
    """
    paymentCount = (
        session.query(Payment)
        .filter(Payment.payment_method_id == paymentMethod.id)
        .count()
    )
    if paymentCount > 0:
        raise exceptions.DependencyExists(PaymentMethod, Payment)
    session.delete(paymentMethod)
    session.flush()


def searchPaymentMethod(
    session: Session, qParam: QueryParamsForAdmin
) -> List[PaymentMethod]:
    query = session.query(PaymentMethod)

    # Filters
    if qParam.user_id is not None:
        query = query.filter(PaymentMethod.user_id == qParam.user_id)
    if qParam.card_holder_name is not None:
        query = query.filter(
            PaymentMethod.card_holder_name.ilike(f"%{qParam.card_holder_name}%")
        )
    if qParam.card_type is not None:
        query = query.filter(PaymentMethod.card_type.ilike(f"%{qParam.card_type}%"))
    if qParam.last_four_digits is not None:
        query = query.filter(PaymentMethod.last_four_digits == qParam.last_four_digits)
    if qParam.is_default is not None:
        query = query.filter(PaymentMethod.is_default == qParam.is_default)
    # id based
    if qParam.id is not None:
        query = query.filter(PaymentMethod.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(PaymentMethod.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(PaymentMethod.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(PaymentMethod.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(PaymentMethod.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(PaymentMethod.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(PaymentMethod, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


excludedFields = {"encrypted_card_number"}


## API endpoints [Client]
@route_client.post(
    URL_PAYMENT_METHOD,
    tags=["Payment Method"],
    response_model=PaymentMethodSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Save a payment card for the client.
    The card number is encrypted before storing, only the last four digits are kept readable.
    The first card of a client becomes the default one.
    Marking a card as default unsets the previous default card.
    """,
)
async def create_payment_method(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        paymentMethod = createPaymentMethod(session, token.user_id, fParam)
        session.commit()
        session.refresh(paymentMethod)

        logEvent(
            token,
            request_info,
            jsonable_encoder(paymentMethod, exclude=excludedFields),
        )
        return paymentMethod
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.patch(
    URL_PAYMENT_METHOD,
    tags=["Payment Method"],
    response_model=PaymentMethodSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.NoPermission(),
        ]
    ),
    description="""
    Update a payment card of the client.
    The card number cannot be changed, save a new card instead.
    """,
)
async def update_payment_method(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        paymentMethod = (
            session.query(PaymentMethod).filter(PaymentMethod.id == fParam.id).first()
        )
        if paymentMethod is None:
            raise exceptions.InvalidIdentifier()
        validators.ownership(token, paymentMethod.user_id)

        if (
            fParam.card_holder_name is not None
            and paymentMethod.card_holder_name != fParam.card_holder_name
        ):
            paymentMethod.card_holder_name = fParam.card_holder_name
        if (
            fParam.expiry_date is not None
            and paymentMethod.expiry_date != fParam.expiry_date
        ):
            paymentMethod.expiry_date = fParam.expiry_date
        if fParam.is_default is not None and paymentMethod.is_default != fParam.is_default:
            if fParam.is_default:
                clearDefault(session, paymentMethod.user_id, paymentMethod.id)
            paymentMethod.is_default = fParam.is_default

        haveUpdates = session.is_modified(paymentMethod)
        if haveUpdates:
            session.commit()
            session.refresh(paymentMethod)
            logEvent(
                token,
                request_info,
                jsonable_encoder(paymentMethod, exclude=excludedFields),
            )
        return paymentMethod
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.delete(
    URL_PAYMENT_METHOD,
    tags=["Payment Method"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.DependencyExists(),
        ]
    ),
    description="""
    Delete a payment card of the client.
    Cards used by a payment cannot be deleted (DependencyExists).
    Returns 204 even when the card does not exist.
    """,
)
async def delete_payment_method(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        paymentMethod = (
            session.query(PaymentMethod).filter(PaymentMethod.id == fParam.id).first()
        )
        if paymentMethod is not None:
            validators.ownership(token, paymentMethod.user_id)
            deletePaymentMethod(session, paymentMethod)
            session.commit()
            logEvent(
                token,
                request_info,
                jsonable_encoder(paymentMethod, exclude=excludedFields),
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.get(
    URL_PAYMENT_METHOD,
    tags=["Payment Method"],
    response_model=List[PaymentMethodSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the payment cards of the client.
    """,
)
async def fetch_payment_methods_for_client(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_client)
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        qParam = promoteToParent(qParam, QueryParamsForAdmin, user_id=token.user_id)
        return searchPaymentMethod(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.get(
    URL_PAYMENT_METHOD,
    tags=["Payment Method"],
    response_model=List[PaymentMethodSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the payment cards of every client.
    The card numbers are never returned.
    """,
)
async def fetch_payment_methods_for_admin(
    qParam: QueryParamsForAdmin = Depends(), bearer=Depends(bearer_admin)
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchPaymentMethod(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
