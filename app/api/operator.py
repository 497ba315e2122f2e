from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from pydantic_extra_types.phone_numbers import PhoneNumber
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_provider
from app.src.constants import REGEX_LICENSE_NUMBER
from app.src.db import Operator, Order, sessionMaker
from app.src import exceptions, validators, getters
from app.src.enums import OperatorStatus, OrderStatus
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.urls import URL_OPERATOR

route_admin = APIRouter()
route_provider = APIRouter()

ACTIVE_ORDER_STATUSES = [OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT]


## Output Schema
class OperatorSchema(BaseModel):
    id: int
    first_name: str
    last_name: str
    license_number: str
    license_expiry_date: datetime
    phone_number: Optional[str]
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    first_name: str = Field(Form(min_length=1, max_length=100))
    last_name: str = Field(Form(min_length=1, max_length=100))
    license_number: str = Field(
        Form(pattern=REGEX_LICENSE_NUMBER, min_length=4, max_length=20)
    )
    license_expiry_date: datetime = Field(Form())
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    status: OperatorStatus = Field(
        Form(description=enumStr(OperatorStatus), default=OperatorStatus.AVAILABLE)
    )


class UpdateFormForProvider(BaseModel):
    id: int = Field(Form())
    status: OperatorStatus | None = Field(
        Form(description=enumStr(OperatorStatus), default=None)
    )


class UpdateFormForAdmin(UpdateFormForProvider):
    first_name: str | None = Field(Form(min_length=1, max_length=100, default=None))
    last_name: str | None = Field(Form(min_length=1, max_length=100, default=None))
    license_expiry_date: datetime | None = Field(Form(default=None))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    license_expiry_date = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    first_name: str | None = Field(Query(default=None))
    last_name: str | None = Field(Query(default=None))
    license_number: str | None = Field(Query(default=None))
    phone_number: str | None = Field(Query(default=None))
    status: OperatorStatus | None = Field(
        Query(default=None, description=enumStr(OperatorStatus))
    )
    # license_expiry_date based
    license_expiry_date_ge: datetime | None = Field(Query(default=None))
    license_expiry_date_le: datetime | None = Field(Query(default=None))
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
def deleteOperator(session: Session, operator: Operator):
    """
    Delete an operator, detaching it from every order it was assigned to.
    The caller is responsible for committing the session.
    """
    session.query(Order).filter(Order.operator_id == operator.id).update(
        {Order.operator_id: None}, synchronize_session=False
    )
    session.delete(operator)
    session.flush()


def searchOperator(session: Session, qParam: QueryParams) -> List[Operator]:
    query = session.query(Operator)

    # Filters
    if qParam.first_name is not None:
        query = query.filter(Operator.first_name.ilike(f"%{qParam.first_name}%"))
    if qParam.last_name is not None:
        query = query.filter(Operator.last_name.ilike(f"%{qParam.last_name}%"))
    if qParam.license_number is not None:
        query = query.filter(
            Operator.license_number.ilike(f"%{qParam.license_number}%")
        )
    if qParam.phone_number is not None:
        query = query.filter(Operator.phone_number.ilike(f"%{qParam.phone_number}%"))
    if qParam.status is not None:
        query = query.filter(Operator.status == qParam.status)
    # license_expiry_date based
    if qParam.license_expiry_date_ge is not None:
        query = query.filter(
            Operator.license_expiry_date >= qParam.license_expiry_date_ge
        )
    if qParam.license_expiry_date_le is not None:
        query = query.filter(
            Operator.license_expiry_date <= qParam.license_expiry_date_le
        )
    # id based
    if qParam.id is not None:
        query = query.filter(Operator.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Operator.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Operator.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Operator.id.in_(qParam.id_list))
    # updated_on based
    if qParam.updated_on_ge is not None:
        query = query.filter(Operator.updated_on >= qParam.updated_on_ge)
    if qParam.updated_on_le is not None:
        query = query.filter(Operator.updated_on <= qParam.updated_on_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Operator.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Operator.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Operator, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def validateStatusChange(
    session: Session, operator: Operator, new_status: OperatorStatus | None
):
    """
    ON_DELIVERY is set and cleared only by the assignment flow of an order.

    Raises:
        exceptions.InvalidStateTransition: If the new status is ON_DELIVERY,
            or if a CONFIRMED or IN_TRANSIT order still holds the operator.
    """
    if new_status is None or new_status == operator.status:
        return
    activeOrder = (
        session.query(Order.id)
        .filter(
            Order.operator_id == operator.id,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        )
        .first()
    )
    if new_status == OperatorStatus.ON_DELIVERY or activeOrder is not None:
        raise exceptions.InvalidStateTransition(
            Operator.status, OperatorStatus(operator.status), new_status
        )


def patchOperator(session: Session, token, fParam: UpdateFormForProvider, request_info):
    operator = session.query(Operator).filter(Operator.id == fParam.id).first()
    if operator is None:
        raise exceptions.InvalidIdentifier()

    validateStatusChange(session, operator, fParam.status)
    updateIfChanged(operator, fParam, [Operator.status.key])
    if isinstance(fParam, UpdateFormForAdmin):
        updateIfChanged(
            operator,
            fParam,
            [
                Operator.first_name.key,
                Operator.last_name.key,
                Operator.license_expiry_date.key,
                Operator.phone_number.key,
            ],
        )

    haveUpdates = session.is_modified(operator)
    if haveUpdates:
        session.commit()
        session.refresh(operator)
        logEvent(token, request_info, jsonable_encoder(operator))
    return operator


## API endpoints [Admin]
@route_admin.post(
    URL_OPERATOR,
    tags=["Operator"],
    response_model=OperatorSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.UniqueViolation(),
            exceptions.InvalidValue(Operator.status),
        ]
    ),
    description="""
    Register a new operator (driver).
    The license number must be unique.
    An operator cannot be created ON_DELIVERY.
    Log the operator creation activity with the associated token.
    """,
)
async def create_operator(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        if fParam.status == OperatorStatus.ON_DELIVERY:
            raise exceptions.InvalidValue(Operator.status)
        operator = Operator(
            first_name=fParam.first_name,
            last_name=fParam.last_name,
            license_number=fParam.license_number,
            license_expiry_date=fParam.license_expiry_date,
            phone_number=fParam.phone_number,
            status=fParam.status,
        )
        session.add(operator)
        session.commit()
        session.refresh(operator)

        logEvent(token, request_info, jsonable_encoder(operator))
        return operator
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_OPERATOR,
    tags=["Operator"],
    response_model=OperatorSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
        ]
    ),
    description="""
    Update an existing operator by ID.
    The license number cannot be changed.
    ON_DELIVERY is managed by order assignment and cannot be set or cleared here.
    """,
)
async def update_operator(
    fParam: UpdateFormForAdmin = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)
        return patchOperator(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_OPERATOR,
    tags=["Operator"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Delete an operator by ID.
    Orders delivered by the operator lose the operator reference.
    Returns 204 even when the operator does not exist.
    """,
)
async def delete_operator(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        operator = session.query(Operator).filter(Operator.id == fParam.id).first()
        if operator is not None:
            deleteOperator(session, operator)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(operator))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_OPERATOR,
    tags=["Operator"],
    response_model=List[OperatorSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch operators with filtering, sorting, and pagination.
    """,
)
async def fetch_operators_for_admin(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_admin)
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchOperator(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.patch(
    URL_OPERATOR,
    tags=["Operator"],
    response_model=OperatorSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
        ]
    ),
    description="""
    Update the duty status of an operator.
    The status of an operator held by a CONFIRMED or IN_TRANSIT order cannot be changed.
    """,
)
async def update_operator_for_provider(
    fParam: UpdateFormForProvider = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        return patchOperator(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_provider.get(
    URL_OPERATOR,
    tags=["Operator"],
    response_model=List[OperatorSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch operators with filtering, sorting, and pagination.
    """,
)
async def fetch_operators_for_provider(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_provider)
):
    try:
        session = sessionMaker()
        validators.providerToken(bearer.credentials, session)
        return searchOperator(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
