from datetime import datetime, timezone
from decimal import Decimal
from enum import IntEnum
from secrets import token_hex
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client, bearer_provider
from app.api.notification import notifyPaymentStatus
from app.src.db import Payment, PaymentMethod, Order, sessionMaker
from app.src import exceptions, validators, getters
from app.src.enums import OrderStatus, PaymentStatus
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    promoteToParent,
    toMoney,
)
from app.src.urls import URL_PAYMENT

route_admin = APIRouter()
route_client = APIRouter()
route_provider = APIRouter()

PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: [PaymentStatus.COMPLETED, PaymentStatus.FAILED],
    PaymentStatus.COMPLETED: [PaymentStatus.REFUNDED],
    PaymentStatus.FAILED: [],
    PaymentStatus.REFUNDED: [],
}


## Output Schema
class PaymentSchema(BaseModel):
    id: int
    order_id: int
    payment_method_id: int
    amount: Decimal
    status: int
    transaction_id: Optional[str]
    processed_at: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    order_id: int = Field(Form())
    payment_method_id: int = Field(Form())
    amount: Decimal | None = Field(
        Form(
            gt=0,
            max_digits=18,
            decimal_places=2,
            default=None,
            description="Defaults to the total amount of the order",
        )
    )


class UpdateForm(BaseModel):
    id: int = Field(Form())
    status: PaymentStatus = Field(Form(description=enumStr(PaymentStatus)))


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    amount = 2
    processed_at = 3
    updated_on = 4
    created_on = 5


class QueryParams(BaseModel):
    order_id: int | None = Field(Query(default=None))
    payment_method_id: int | None = Field(Query(default=None))
    status: PaymentStatus | None = Field(
        Query(default=None, description=enumStr(PaymentStatus))
    )
    transaction_id: str | None = Field(Query(default=None))
    # amount based
    amount_ge: Decimal | None = Field(Query(default=None))
    amount_le: Decimal | None = Field(Query(default=None))
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


class QueryParamsForStaff(QueryParams):
    user_id: int | None = Field(Query(default=None, description="Owner of the order"))


## Function
def createPayment(
    session: Session,
    user_id: int,
    order_id: int,
    payment_method_id: int,
    amount: Decimal | None = None,
) -> Payment:
    """
    Register a PENDING payment of a user for one of the user's orders.
    The caller is responsible for committing the session.

    Raises:
        exceptions.UnknownValue: If the order or the card does not exist.
        exceptions.NoPermission: If the order or the card belongs to another user.
        exceptions.InvalidValue: If the order is cancelled or the card has expired.
    """
    order = session.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise exceptions.UnknownValue(Payment.order_id)
    if order.user_id != user_id:
        raise exceptions.NoPermission()
    if order.status == OrderStatus.CANCELLED:
        raise exceptions.InvalidValue(Payment.order_id)

    paymentMethod = (
        session.query(PaymentMethod)
        .filter(PaymentMethod.id == payment_method_id)
        .first()
    )
    if paymentMethod is None:
        raise exceptions.UnknownValue(Payment.payment_method_id)
    if paymentMethod.user_id != user_id:
        raise exceptions.NoPermission()
    currentTime = datetime.now(timezone.utc)
    validCard = (
        session.query(PaymentMethod.id)
        .filter(
            PaymentMethod.id == paymentMethod.id,
            PaymentMethod.expiry_date > currentTime,
        )
        .first()
    )
    if validCard is None:
        raise exceptions.InvalidValue(Payment.payment_method_id)

    if amount is None:
        amount = order.total_amount
    payment = Payment(
        order_id=order.id,
        payment_method_id=paymentMethod.id,
        amount=toMoney(amount),
        status=PaymentStatus.PENDING,
    )
    session.add(payment)
    return payment


def updatePaymentStatus(session: Session, payment: Payment, new_status: PaymentStatus):
    """
    Move a payment to a new status.

    A processed payment (COMPLETED or FAILED) records the processing time,
    a completed payment also gets a transaction reference and notifies the
    owner of the order.
    """
    validators.stateTransition(
        PAYMENT_STATUS_TRANSITIONS, payment.status, new_status, Payment.status
    )

    payment.status = new_status
    if new_status in (PaymentStatus.COMPLETED, PaymentStatus.FAILED):
        payment.processed_at = datetime.now(timezone.utc)
    if new_status == PaymentStatus.COMPLETED:
        payment.transaction_id = f"TXN-{token_hex(8).upper()}"
        order = session.query(Order).filter(Order.id == payment.order_id).first()
        notifyPaymentStatus(session, order, payment)


def searchPayment(session: Session, qParam: QueryParamsForStaff) -> List[Payment]:
    query = session.query(Payment)

    # Filters
    if qParam.user_id is not None:
        query = query.join(Order, Order.id == Payment.order_id).filter(
            Order.user_id == qParam.user_id
        )
    if qParam.order_id is not None:
        query = query.filter(Payment.order_id == qParam.order_id)
    if qParam.payment_method_id is not None:
        query = query.filter(Payment.payment_method_id == qParam.payment_method_id)
    if qParam.status is not None:
        query = query.filter(Payment.status == qParam.status)
    if qParam.transaction_id is not None:
        query = query.filter(Payment.transaction_id == qParam.transaction_id)
    # amount based
    if qParam.amount_ge is not None:
        query = query.filter(Payment.amount >= qParam.amount_ge)
    if qParam.amount_le is not None:
        query = query.filter(Payment.amount <= qParam.amount_le)
    # id based
    if qParam.id is not None:
        query = query.filter(Payment.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Payment.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Payment.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Payment.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Payment.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Payment.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Payment, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def patchPayment(access_token: str, validator, fParam: UpdateForm, request_info):
    paymentLock = None
    try:
        session = sessionMaker()
        token = validator(access_token, session)

        paymentLock = acquireLock(Payment.__tablename__, fParam.id)
        payment = session.query(Payment).filter(Payment.id == fParam.id).first()
        if payment is None:
            raise exceptions.InvalidIdentifier()

        if payment.status != fParam.status:
            updatePaymentStatus(session, payment, fParam.status)
            session.commit()
            session.refresh(payment)
            logEvent(token, request_info, jsonable_encoder(payment))
        return payment
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(paymentLock)
        session.close()


def fetchPayments(access_token: str, validator, qParam: QueryParamsForStaff):
    try:
        session = sessionMaker()
        validator(access_token, session)
        return searchPayment(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Client]
@route_client.post(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=PaymentSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UnknownValue(Payment.order_id),
            exceptions.InvalidValue(Payment.order_id),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Pay for an order of the client using one of the client's payment cards.
    Cancelled orders cannot be paid and expired cards cannot be used.
    The amount defaults to the total amount of the order.
    The payment is created in the PENDING status.
    """,
)
async def create_payment(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    orderLock = None
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        orderLock = acquireLock(Order.__tablename__, fParam.order_id)
        payment = createPayment(
            session,
            token.user_id,
            fParam.order_id,
            fParam.payment_method_id,
            fParam.amount,
        )
        session.commit()
        session.refresh(payment)

        logEvent(token, request_info, jsonable_encoder(payment))
        return payment
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


@route_client.get(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=List[PaymentSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the payments made for the orders of the client.
    """,
)
async def fetch_payments_for_client(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_client)
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        qParam = promoteToParent(qParam, QueryParamsForStaff, user_id=token.user_id)
        return searchPayment(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.patch(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=PaymentSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Update the status of a payment.
    Allowed transitions: PENDING -> COMPLETED | FAILED, COMPLETED -> REFUNDED.
    Completing a payment generates the transaction reference.
    """,
)
async def update_payment_for_provider(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    return patchPayment(
        bearer.credentials, validators.providerToken, fParam, request_info
    )


@route_provider.get(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=List[PaymentSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch payments with filtering, sorting, and pagination.
    """,
)
async def fetch_payments_for_provider(
    qParam: QueryParamsForStaff = Depends(), bearer=Depends(bearer_provider)
):
    return fetchPayments(bearer.credentials, validators.providerToken, qParam)


## API endpoints [Admin]
@route_admin.patch(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=PaymentSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Update the status of a payment.
    The same transition rules as for providers apply.
    """,
)
async def update_payment_for_admin(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    return patchPayment(bearer.credentials, validators.adminToken, fParam, request_info)


@route_admin.get(
    URL_PAYMENT,
    tags=["Payment"],
    response_model=List[PaymentSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch payments with filtering, sorting, and pagination.
    Use `user_id` to list the payments of a single client.
    """,
)
async def fetch_payments_for_admin(
    qParam: QueryParamsForStaff = Depends(), bearer=Depends(bearer_admin)
):
    return fetchPayments(bearer.credentials, validators.adminToken, qParam)
