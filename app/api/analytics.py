from datetime import datetime
from decimal import Decimal
from typing import List
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin
from app.src.db import Order, Payment, sessionMaker
from app.src import exceptions, validators
from app.src.enums import OrderStatus, PaymentStatus
from app.src.functions import fuseExceptionResponses, toMoney
from app.src.urls import URL_ANALYTICS

route_admin = APIRouter()


## Output Schema
class StatusCountSchema(BaseModel):
    status: int
    count: int


class AnalyticsSchema(BaseModel):
    total_orders: int
    orders_by_status: List[StatusCountSchema]
    delivered_quantity: Decimal
    total_revenue: Decimal
    refunded_amount: Decimal


## Query Parameters
class QueryParams(BaseModel):
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))


## Function
def sumOf(session: Session, column, *filters) -> Decimal:
    total = session.query(func.sum(column)).filter(*filters).scalar()
    return toMoney(total or 0)


def summarize(session: Session, qParam: QueryParams) -> AnalyticsSchema:
    """
    Summarize the orders placed within the requested period.

    Every order status is reported, including the ones without orders.
    Revenue is the sum of the COMPLETED payments of those orders.
    """
    orderFilters = []
    if qParam.created_on_ge is not None:
        orderFilters.append(Order.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        orderFilters.append(Order.created_on <= qParam.created_on_le)

    statusCounts = dict(
        session.query(Order.status, func.count(Order.id))
        .filter(*orderFilters)
        .group_by(Order.status)
        .all()
    )
    ordersByStatus = [
        StatusCountSchema(status=orderStatus, count=statusCounts.get(orderStatus, 0))
        for orderStatus in OrderStatus
    ]

    orderIDs = select(Order.id).where(*orderFilters)
    return AnalyticsSchema(
        total_orders=sum(statusCounts.values()),
        orders_by_status=ordersByStatus,
        delivered_quantity=sumOf(
            session,
            Order.quantity,
            Order.status == OrderStatus.DELIVERED,
            *orderFilters,
        ),
        total_revenue=sumOf(
            session,
            Payment.amount,
            Payment.status == PaymentStatus.COMPLETED,
            Payment.order_id.in_(orderIDs),
        ),
        refunded_amount=sumOf(
            session,
            Payment.amount,
            Payment.status == PaymentStatus.REFUNDED,
            Payment.order_id.in_(orderIDs),
        ),
    )


## API endpoints [Admin]
@route_admin.get(
    URL_ANALYTICS,
    tags=["Analytics"],
    response_model=AnalyticsSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch a summary of the business.
    Orders are counted per status, revenue is the sum of completed payments.
    Use the created_on range to restrict the summary to the orders of a period.
    """,
)
async def fetch_analytics(qParam: QueryParams = Depends(), bearer=Depends(bearer_admin)):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return summarize(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
