from datetime import datetime
from enum import IntEnum
from typing import Callable, List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_client, bearer_provider
from app.src.db import Notification, Order, User, sessionMaker
from app.src import exceptions, validators, getters
from app.src.enums import NotificationType, OrderStatus, PaymentStatus
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, promoteToParent
from app.src.urls import URL_NOTIFICATION

route_admin = APIRouter()
route_client = APIRouter()
route_provider = APIRouter()


## Output Schema
class NotificationSchema(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: int
    is_read: bool
    order_id: Optional[int]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    user_id: int = Field(Form())
    title: str = Field(Form(min_length=1, max_length=200))
    message: str = Field(Form(min_length=1, max_length=1000))
    type: NotificationType = Field(
        Form(
            description=enumStr(NotificationType),
            default=NotificationType.SYSTEM_NOTIFICATION,
        )
    )
    order_id: int | None = Field(Form(default=None))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    is_read: bool = Field(Form(default=True))


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
    type: NotificationType | None = Field(
        Query(default=None, description=enumStr(NotificationType))
    )
    is_read: bool | None = Field(Query(default=None))
    order_id: int | None = Field(Query(default=None))
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
def createNotification(
    session: Session,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    order_id: int | None = None,
) -> Notification:
    """Add a notification to the session without committing it."""
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        order_id=order_id,
    )
    session.add(notification)
    return notification


def notifyOrderStatus(session: Session, order: Order) -> List[Notification]:
    """
    Notify the owner of an order about its new status.
    An order going out for delivery also raises a delivery alert.
    """
    orderStatus = OrderStatus(order.status)
    notifications = [
        createNotification(
            session,
            order.user_id,
            NotificationType.ORDER_UPDATE,
            f"Order {order.order_number} {orderStatus.name.lower().replace('_', ' ')}",
            f"The status of your order {order.order_number} is now {orderStatus.name}.",
            order.id,
        )
    ]
    if orderStatus == OrderStatus.IN_TRANSIT:
        notifications.append(
            createNotification(
                session,
                order.user_id,
                NotificationType.DELIVERY_ALERT,
                f"Order {order.order_number} is on the way",
                f"Your fuel is on its way to {order.delivery_address}.",
                order.id,
            )
        )
    return notifications


def notifyPaymentStatus(session: Session, order: Order, payment) -> Notification | None:
    if payment.status != PaymentStatus.COMPLETED:
        return None
    return createNotification(
        session,
        order.user_id,
        NotificationType.PAYMENT_CONFIRMATION,
        f"Payment received for order {order.order_number}",
        f"We received your payment of {payment.amount} "
        f"(transaction {payment.transaction_id}).",
        order.id,
    )


def searchNotification(
    session: Session, qParam: QueryParamsForAdmin
) -> List[Notification]:
    query = session.query(Notification)

    # Filters
    if qParam.user_id is not None:
        query = query.filter(Notification.user_id == qParam.user_id)
    if qParam.type is not None:
        query = query.filter(Notification.type == qParam.type)
    if qParam.is_read is not None:
        query = query.filter(Notification.is_read == qParam.is_read)
    if qParam.order_id is not None:
        query = query.filter(Notification.order_id == qParam.order_id)
    # id based
    if qParam.id is not None:
        query = query.filter(Notification.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Notification.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Notification.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Notification.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Notification.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Notification.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Notification, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def fetchOwnNotifications(
    access_token: str, validator: Callable, qParam: QueryParams
) -> List[Notification]:
    try:
        session = sessionMaker()
        token = validator(access_token, session)
        qParam = promoteToParent(qParam, QueryParamsForAdmin, user_id=token.user_id)
        return searchNotification(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


def markOwnNotification(
    access_token: str, validator: Callable, fParam: UpdateForm, request_info
) -> Notification:
    try:
        session = sessionMaker()
        token = validator(access_token, session)

        notification = (
            session.query(Notification).filter(Notification.id == fParam.id).first()
        )
        if notification is None:
            raise exceptions.InvalidIdentifier()
        validators.ownership(token, notification.user_id)

        if notification.is_read != fParam.is_read:
            notification.is_read = fParam.is_read
            session.commit()
            session.refresh(notification)
            logEvent(token, request_info, jsonable_encoder(notification))
        return notification
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


def deleteOwnNotification(
    access_token: str, validator: Callable, fParam: DeleteForm, request_info
) -> Response:
    try:
        session = sessionMaker()
        token = validator(access_token, session)

        notification = (
            session.query(Notification).filter(Notification.id == fParam.id).first()
        )
        if notification is not None:
            validators.ownership(token, notification.user_id)
            session.delete(notification)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(notification))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=NotificationSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.UnknownValue(Notification.user_id),
            exceptions.UnknownValue(Notification.order_id),
            exceptions.InvalidAssociation(Notification.order_id, Notification.user_id),
        ]
    ),
    description="""
    Send a notification to a user.
    When an order is referenced, it must belong to the same user.
    """,
)
async def create_notification(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        user = session.query(User).filter(User.id == fParam.user_id).first()
        if user is None:
            raise exceptions.UnknownValue(Notification.user_id)
        if fParam.order_id is not None:
            order = session.query(Order).filter(Order.id == fParam.order_id).first()
            if order is None:
                raise exceptions.UnknownValue(Notification.order_id)
            if order.user_id != user.id:
                raise exceptions.InvalidAssociation(
                    Notification.order_id, Notification.user_id
                )

        notification = createNotification(
            session,
            fParam.user_id,
            fParam.type,
            fParam.title,
            fParam.message,
            fParam.order_id,
        )
        session.commit()
        session.refresh(notification)

        logEvent(token, request_info, jsonable_encoder(notification))
        return notification
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=List[NotificationSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the notifications of every user.
    Use `user_id` to narrow the result down to a single user.
    """,
)
async def fetch_notifications_for_admin(
    qParam: QueryParamsForAdmin = Depends(), bearer=Depends(bearer_admin)
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchNotification(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=NotificationSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.NoPermission(),
        ]
    ),
    description="""
    Mark one of the administrator's own notifications as read or unread.
    """,
)
async def update_notification_for_admin(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    return markOwnNotification(
        bearer.credentials, validators.adminToken, fParam, request_info
    )


@route_admin.delete(
    URL_NOTIFICATION,
    tags=["Notification"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Delete one of the administrator's own notifications.
    """,
)
async def delete_notification_for_admin(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    return deleteOwnNotification(
        bearer.credentials, validators.adminToken, fParam, request_info
    )


## API endpoints [Client]
@route_client.get(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=List[NotificationSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the notifications of the client.
    Use `is_read=false` to list the unread ones.
    """,
)
async def fetch_notifications_for_client(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_client)
):
    return fetchOwnNotifications(bearer.credentials, validators.clientToken, qParam)


@route_client.patch(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=NotificationSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.NoPermission(),
        ]
    ),
    description="""
    Mark a notification of the client as read or unread.
    """,
)
async def update_notification_for_client(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    return markOwnNotification(
        bearer.credentials, validators.clientToken, fParam, request_info
    )


@route_client.delete(
    URL_NOTIFICATION,
    tags=["Notification"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Delete a notification of the client.
    """,
)
async def delete_notification_for_client(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_client),
    request_info=Depends(getters.requestInfo),
):
    return deleteOwnNotification(
        bearer.credentials, validators.clientToken, fParam, request_info
    )


## API endpoints [Provider]
@route_provider.get(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=List[NotificationSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the notifications of the provider.
    """,
)
async def fetch_notifications_for_provider(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_provider)
):
    return fetchOwnNotifications(bearer.credentials, validators.providerToken, qParam)


@route_provider.patch(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=NotificationSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.NoPermission(),
        ]
    ),
    description="""
    Mark a notification of the provider as read or unread.
    """,
)
async def update_notification_for_provider(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    return markOwnNotification(
        bearer.credentials, validators.providerToken, fParam, request_info
    )


@route_provider.delete(
    URL_NOTIFICATION,
    tags=["Notification"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Delete a notification of the provider.
    """,
)
async def delete_notification_for_provider(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    return deleteOwnNotification(
        bearer.credentials, validators.providerToken, fParam, request_info
    )
