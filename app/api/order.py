from datetime import datetime, timezone
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client, bearer_provider
from app.api.notification import notifyOrderStatus
from app.src.db import (
    Order,
    Vehicle,
    Operator,
    Payment,
    Notification,
    sessionMaker,
)
from app.src import exceptions, validators, getters
from app.src.enums import FuelType, OrderStatus, VehicleStatus, OperatorStatus
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.functions import (
    enumStr,
    fuseExceptionResponses,
    promoteToParent,
    updateIfChanged,
    computeTotalAmount,
    generateOrderNumber,
    toMoney,
)
from app.src.urls import URL_ORDER, URL_ORDER_ASSIGNMENT

route_admin = APIRouter()
route_client = APIRouter()
route_provider = APIRouter()

ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED],
    OrderStatus.IN_TRANSIT: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.DELIVERED: [],
    OrderStatus.CANCELLED: [],
}


## Output Schema
class OrderSchema(BaseModel):
    id: int
    user_id: int
    order_number: str
    fuel_type: int
    quantity: Decimal
    price_per_liter: Decimal
    total_amount: Decimal
    status: int
    delivery_address: str
    delivery_latitude: Optional[float]
    delivery_longitude: Optional[float]
    estimated_delivery_time: Optional[datetime]
    actual_delivery_time: Optional[datetime]
    vehicle_id: Optional[int]
    operator_id: Optional[int]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    fuel_type: FuelType = Field(Form(description=enumStr(FuelType)))
    quantity: Decimal = Field(
        Form(gt=0, max_digits=18, decimal_places=2, description="Volume in liters")
    )
    price_per_liter: Decimal = Field(Form(gt=0, max_digits=18, decimal_places=2))
    delivery_address: str = Field(Form(min_length=1, max_length=500))
    delivery_latitude: float | None = Field(Form(ge=-90, le=90, default=None))
    delivery_longitude: float | None = Field(Form(ge=-180, le=180, default=None))
    estimated_delivery_time: datetime | None = Field(Form(default=None))


class CancelForm(BaseModel):
    id: int = Field(Form())


class UpdateForm(BaseModel):
    id: int = Field(Form())
    status: OrderStatus | None = Field(
        Form(description=enumStr(OrderStatus), default=None)
    )
    estimated_delivery_time: datetime | None = Field(Form(default=None))


class AssignForm(BaseModel):
    id: int = Field(Form(description="ID of the order"))
    vehicle_id: int = Field(Form())
    operator_id: int = Field(Form())


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    quantity = 2
    total_amount = 3
    estimated_delivery_time = 4
    updated_on = 5
    created_on = 6


class QueryParams(BaseModel):
    order_number: str | None = Field(Query(default=None))
    fuel_type: FuelType | None = Field(
        Query(default=None, description=enumStr(FuelType))
    )
    status: OrderStatus | None = Field(
        Query(default=None, description=enumStr(OrderStatus))
    )
    status_list: List[OrderStatus] | None = Field(
        Query(default=None, description=enumStr(OrderStatus))
    )
    vehicle_id: int | None = Field(Query(default=None))
    operator_id: int | None = Field(Query(default=None))
    # total_amount based
    total_amount_ge: Decimal | None = Field(Query(default=None))
    total_amount_le: Decimal | None = Field(Query(default=None))
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


class QueryParamsForStaff(QueryParams):
    user_id: int | None = Field(Query(default=None))


## Function
def createOrder(session: Session, user_id: int, fParam: CreateForm) -> Order:
    quantity = toMoney(fParam.quantity)
    pricePerLiter = toMoney(fParam.price_per_liter)
    order = Order(
        user_id=user_id,
        order_number=generateOrderNumber(),
        fuel_type=fParam.fuel_type,
        quantity=quantity,
        price_per_liter=pricePerLiter,
        total_amount=computeTotalAmount(quantity, pricePerLiter),
        status=OrderStatus.PENDING,
        delivery_address=fParam.delivery_address,
        delivery_latitude=fParam.delivery_latitude,
        delivery_longitude=fParam.delivery_longitude,
        estimated_delivery_time=fParam.estimated_delivery_time,
    )
    session.add(order)
    return order


def releaseResources(session: Session, order: Order):
    """Return the vehicle and the operator of an order to the AVAILABLE pool."""
    if order.vehicle_id is not None:
        session.query(Vehicle).filter(
            Vehicle.id == order.vehicle_id,
            Vehicle.status == VehicleStatus.IN_USE,
        ).update({Vehicle.status: VehicleStatus.AVAILABLE})
    if order.operator_id is not None:
        session.query(Operator).filter(
            Operator.id == order.operator_id,
            Operator.status == OperatorStatus.ON_DELIVERY,
        ).update({Operator.status: OperatorStatus.AVAILABLE})


def assignOrder(session: Session, order: Order, vehicle_id: int, operator_id: int):
    """
    Assign a vehicle and an operator to a pending order and confirm it.

    The vehicle and the operator are claimed with a conditional update so
    that two concurrent assignments can never claim the same resource.
    The caller is responsible for committing the session, or for closing it
    without committing when an exception is raised.

    Raises:
        exceptions.InvalidStateTransition: If the order is not PENDING.
        exceptions.UnknownValue: If the vehicle or the operator does not exist.
        exceptions.ResourceUnavailable: If the vehicle or the operator is not
            AVAILABLE, the vehicle is too small or the licence has expired.
    """
    validators.stateTransition(
        ORDER_STATUS_TRANSITIONS, order.status, OrderStatus.CONFIRMED, Order.status
    )

    vehicle = session.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
    if vehicle is None:
        raise exceptions.UnknownValue(Order.vehicle_id)
    operator = session.query(Operator).filter(Operator.id == operator_id).first()
    if operator is None:
        raise exceptions.UnknownValue(Order.operator_id)

    if vehicle.capacity < order.quantity:
        raise exceptions.ResourceUnavailable(Vehicle)
    currentTime = datetime.now(timezone.utc)
    licensed = (
        session.query(Operator.id)
        .filter(
            Operator.id == operator.id,
            Operator.license_expiry_date > currentTime,
        )
        .first()
    )
    if licensed is None:
        raise exceptions.ResourceUnavailable(Operator)

    claimedVehicle = (
        session.query(Vehicle)
        .filter(Vehicle.id == vehicle.id, Vehicle.status == VehicleStatus.AVAILABLE)
        .update({Vehicle.status: VehicleStatus.IN_USE})
    )
    if claimedVehicle == 0:
        raise exceptions.ResourceUnavailable(Vehicle)
    claimedOperator = (
        session.query(Operator)
        .filter(
            Operator.id == operator.id,
            Operator.status == OperatorStatus.AVAILABLE,
        )
        .update({Operator.status: OperatorStatus.ON_DELIVERY})
    )
    if claimedOperator == 0:
        raise exceptions.ResourceUnavailable(Operator)

    order.vehicle_id = vehicle.id
    order.operator_id = operator.id
    order.status = OrderStatus.CONFIRMED
    notifyOrderStatus(session, order)


def updateOrderStatus(session: Session, order: Order, new_status: OrderStatus):
    """
    Move an order to a new status.

    Delivering an order records the delivery time. Delivering or cancelling
    an order releases its vehicle and operator. Every change notifies the
    owner of the order.
    """
    validators.stateTransition(
        ORDER_STATUS_TRANSITIONS, order.status, new_status, Order.status
    )
    # Confirmation requires an assignment
    if new_status == OrderStatus.CONFIRMED:
        raise exceptions.InvalidStateTransition(
            Order.status, OrderStatus(order.status), new_status
        )

    order.status = new_status
    if new_status == OrderStatus.DELIVERED:
        order.actual_delivery_time = datetime.now(timezone.utc)
    if new_status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
        releaseResources(session, order)
    notifyOrderStatus(session, order)


def deleteOrder(session: Session, order: Order):
    """
    Delete an order together with its payments.
    Notifications about the order are kept but lose the order reference.
    The caller is responsible for committing the session.
    """
    if order.status in (OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT):
        releaseResources(session, order)
    session.query(Payment).filter(Payment.order_id == order.id).delete()
    session.query(Notification).filter(Notification.order_id == order.id).update(
        {Notification.order_id: None}, synchronize_session=False
    )
    session.delete(order)
    session.flush()


def searchOrder(session: Session, qParam: QueryParamsForStaff) -> List[Order]:
    query = session.query(Order)

    # Filters
    if qParam.user_id is not None:
        query = query.filter(Order.user_id == qParam.user_id)
    if qParam.order_number is not None:
        query = query.filter(Order.order_number.ilike(f"%{qParam.order_number}%"))
    if qParam.fuel_type is not None:
        query = query.filter(Order.fuel_type == qParam.fuel_type)
    if qParam.status is not None:
        query = query.filter(Order.status == qParam.status)
    if qParam.status_list is not None:
        query = query.filter(Order.status.in_(qParam.status_list))
    if qParam.vehicle_id is not None:
        query = query.filter(Order.vehicle_id == qParam.vehicle_id)
    if qParam.operator_id is not None:
        query = query.filter(Order.operator_id == qParam.operator_id)
    # total_amount based
    if qParam.total_amount_ge is not None:
        query = query.filter(Order.total_amount >= qParam.total_amount_ge)
    if qParam.total_amount_le is not None:
        query = query.filter(Order.total_amount <= qParam.total_amount_le)
    # id based
    if qParam.id is not None:
        query = query.filter(Order.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Order.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Order.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Order.id.in_(qParam.id_list))
    # updated_on based
    if qParam.updated_on_ge is not None:
        query = query.filter(Order.updated_on >= qParam.updated_on_ge)
    if qParam.updated_on_le is not None:
        query = query.filter(Order.updated_on <= qParam.updated_on_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Order.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Order.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Order, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def patchOrder(session: Session, token, fParam: UpdateForm, request_info) -> Order:
    order = session.query(Order).filter(Order.id == fParam.id).first()
    if order is None:
        raise exceptions.InvalidIdentifier()

    # Releasing resources flushes the order, so is_modified alone misses the change
    statusChanged = fParam.status is not None and order.status != fParam.status
    if statusChanged:
        updateOrderStatus(session, order, fParam.status)
    updateIfChanged(order, fParam, [Order.estimated_delivery_time.key])

    haveUpdates = statusChanged or session.is_modified(order)
    if haveUpdates:
        session.commit()
        session.refresh(order)
        logEvent(token, request_info, jsonable_encoder(order))
    return order


def assignOrderEndpoint(access_token: str, validator, fParam: AssignForm, request_info):
    orderLock = None
    try:
        session = sessionMaker()
        token = validator(access_token, session)

        orderLock = acquireLock(Order.__tablename__, fParam.id)
        order = session.query(Order).filter(Order.id == fParam.id).first()
        if order is None:
            raise exceptions.InvalidIdentifier()

        assignOrder(session, order, fParam.vehicle_id, fParam.operator_id)
        session.commit()
        session.refresh(order)

        logEvent(token, request_info, jsonable_encoder(order))
        return order
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


## API endpoints [Client]
@route_client.post(
    URL_ORDER,
    tags=["Order"],
    response_model=OrderSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation()]
    ),
    description="""
    Place a new fuel order.
    The order number is generated by the server.
    The total amount is quantity * price_per_liter, rounded half up to 2 decimal places.
    The order is created in the PENDING status.
    """,
)
async def create_order(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        order = createOrder(session, token.user_id, fParam)
        session.commit()
        session.refresh(order)

        logEvent(token, request_info, jsonable_encoder(order))
        return order
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_client.patch(
    URL_ORDER,
    tags=["Order"],
    response_model=OrderSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.NoPermission(),
            exceptions.InvalidStateTransition(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Cancel an order of the client.
    Delivered and already cancelled orders cannot be cancelled.
    The vehicle and the operator of the order become available again.
    """,
)
async def cancel_order(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    orderLock = None
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)

        orderLock = acquireLock(Order.__tablename__, fParam.id)
        order = session.query(Order).filter(Order.id == fParam.id).first()
        if order is None:
            raise exceptions.InvalidIdentifier()
        validators.ownership(token, order.user_id)

        updateOrderStatus(session, order, OrderStatus.CANCELLED)
        session.commit()
        session.refresh(order)

        logEvent(token, request_info, jsonable_encoder(order))
        return order
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


@route_client.get(
    URL_ORDER,
    tags=["Order"],
    response_model=List[OrderSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the orders of the client with filtering, sorting, and pagination.
    """,
)
async def fetch_orders_for_client(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_client)
):
    try:
        session = sessionMaker()
        token = validators.clientToken(bearer.credentials, session)
        qParam = promoteToParent(qParam, QueryParamsForStaff, user_id=token.user_id)
        return searchOrder(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.patch(
    URL_ORDER,
    tags=["Order"],
    response_model=OrderSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Update the status or the delivery estimate of an order.
    Allowed transitions: CONFIRMED -> IN_TRANSIT -> DELIVERED, and CANCELLED from any state before DELIVERED.
    An order is CONFIRMED only through an assignment.
    Delivering an order records the actual delivery time.
    """,
)
async def update_order_for_provider(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    orderLock = None
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)

        orderLock = acquireLock(Order.__tablename__, fParam.id)
        return patchOrder(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


@route_provider.get(
    URL_ORDER,
    tags=["Order"],
    response_model=List[OrderSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch orders with filtering, sorting, and pagination.
    Use `status=1` to list the orders waiting for an assignment.
    """,
)
async def fetch_orders_for_provider(
    qParam: QueryParamsForStaff = Depends(), bearer=Depends(bearer_provider)
):
    try:
        session = sessionMaker()
        validators.providerToken(bearer.credentials, session)
        return searchOrder(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_provider.post(
    URL_ORDER_ASSIGNMENT,
    tags=["Order"],
    response_model=OrderSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Order.vehicle_id),
            exceptions.InvalidStateTransition(),
            exceptions.ResourceUnavailable(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assign a vehicle and an operator to a PENDING order.
    Both must be AVAILABLE, the vehicle capacity must cover the ordered quantity and the operator licence must be valid.
    The vehicle becomes IN_USE, the operator ON_DELIVERY and the order CONFIRMED.
    """,
)
async def assign_order_for_provider(
    fParam: AssignForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    return assignOrderEndpoint(
        bearer.credentials, validators.providerToken, fParam, request_info
    )


## API endpoints [Admin]
@route_admin.patch(
    URL_ORDER,
    tags=["Order"],
    response_model=OrderSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Update the status or the delivery estimate of an order.
    The same transition rules as for providers apply.
    """,
)
async def update_order_for_admin(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    orderLock = None
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        orderLock = acquireLock(Order.__tablename__, fParam.id)
        return patchOrder(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


@route_admin.delete(
    URL_ORDER,
    tags=["Order"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.LockAcquireTimeout()]
    ),
    description="""
    Delete an order by ID.
    The payments of the order are deleted with it.
    Notifications about the order are kept without the order reference.
    Returns 204 even when the order does not exist.
    """,
)
async def delete_order(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    orderLock = None
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        orderLock = acquireLock(Order.__tablename__, fParam.id)
        order = session.query(Order).filter(Order.id == fParam.id).first()
        if order is not None:
            deleteOrder(session, order)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(order))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(orderLock)
        session.close()


@route_admin.get(
    URL_ORDER,
    tags=["Order"],
    response_model=List[OrderSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch orders of every client with filtering, sorting, and pagination.
    """,
)
async def fetch_orders_for_admin(
    qParam: QueryParamsForStaff = Depends(), bearer=Depends(bearer_admin)
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchOrder(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.post(
    URL_ORDER_ASSIGNMENT,
    tags=["Order"],
    response_model=OrderSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Order.vehicle_id),
            exceptions.InvalidStateTransition(),
            exceptions.ResourceUnavailable(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assign a vehicle and an operator to a PENDING order.
    The same rules as for providers apply.
    """,
)
async def assign_order_for_admin(
    fParam: AssignForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    return assignOrderEndpoint(
        bearer.credentials, validators.adminToken, fParam, request_info
    )
