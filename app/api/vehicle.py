from datetime import datetime
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from app.api.bearer import bearer_admin, bearer_provider
from app.src.constants import REGEX_LICENSE_PLATE
from app.src.db import Vehicle, Order, sessionMaker
from app.src import exceptions, validators, getters
from app.src.enums import OrderStatus, VehicleStatus
from app.src.loggers import logEvent
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.urls import URL_VEHICLE

route_admin = APIRouter()
route_provider = APIRouter()

ACTIVE_ORDER_STATUSES = [OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT]


## Output Schema
class VehicleSchema(BaseModel):
    id: int
    license_plate: str
    brand: str
    model: str
    year: int
    capacity: Decimal
    status: int
    current_latitude: Optional[float]
    current_longitude: Optional[float]
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    license_plate: str = Field(
        Form(pattern=REGEX_LICENSE_PLATE, min_length=2, max_length=20)
    )
    brand: str = Field(Form(min_length=1, max_length=100))
    model: str = Field(Form(min_length=1, max_length=100))
    year: int = Field(Form(ge=1950, le=2100))
    capacity: Decimal = Field(Form(gt=0, max_digits=18, decimal_places=2))
    status: VehicleStatus = Field(
        Form(description=enumStr(VehicleStatus), default=VehicleStatus.AVAILABLE)
    )
    current_latitude: float | None = Field(Form(ge=-90, le=90, default=None))
    current_longitude: float | None = Field(Form(ge=-180, le=180, default=None))


class UpdateFormForProvider(BaseModel):
    id: int = Field(Form())
    status: VehicleStatus | None = Field(
        Form(description=enumStr(VehicleStatus), default=None)
    )
    current_latitude: float | None = Field(Form(ge=-90, le=90, default=None))
    current_longitude: float | None = Field(Form(ge=-180, le=180, default=None))


class UpdateFormForAdmin(UpdateFormForProvider):
    brand: str | None = Field(Form(min_length=1, max_length=100, default=None))
    model: str | None = Field(Form(min_length=1, max_length=100, default=None))
    year: int | None = Field(Form(ge=1950, le=2100, default=None))
    capacity: Decimal | None = Field(
        Form(gt=0, max_digits=18, decimal_places=2, default=None)
    )


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class OrderBy(IntEnum):
    id = 1
    capacity = 2
    year = 3
    updated_on = 4
    created_on = 5


class QueryParams(BaseModel):
    license_plate: str | None = Field(Query(default=None))
    brand: str | None = Field(Query(default=None))
    model: str | None = Field(Query(default=None))
    status: VehicleStatus | None = Field(
        Query(default=None, description=enumStr(VehicleStatus))
    )
    # capacity based
    capacity_ge: Decimal | None = Field(Query(default=None))
    capacity_le: Decimal | None = Field(Query(default=None))
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
def updateVehicle(vehicle: Vehicle, fParam: UpdateFormForProvider):
    updateIfChanged(
        vehicle,
        fParam,
        [
            Vehicle.status.key,
            Vehicle.current_latitude.key,
            Vehicle.current_longitude.key,
        ],
    )
    if isinstance(fParam, UpdateFormForAdmin):
        updateIfChanged(
            vehicle,
            fParam,
            [
                Vehicle.brand.key,
                Vehicle.model.key,
                Vehicle.year.key,
                Vehicle.capacity.key,
            ],
        )


def validateStatusChange(
    session: Session, vehicle: Vehicle, new_status: VehicleStatus | None
):
    """
    IN_USE is set and cleared only by the assignment flow of an order.

    Raises:
        exceptions.InvalidStateTransition: If the new status is IN_USE, or if
            a CONFIRMED or IN_TRANSIT order still holds the vehicle.
    """
    if new_status is None or new_status == vehicle.status:
        return
    activeOrder = (
        session.query(Order.id)
        .filter(
            Order.vehicle_id == vehicle.id,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        )
        .first()
    )
    if new_status == VehicleStatus.IN_USE or activeOrder is not None:
        raise exceptions.InvalidStateTransition(
            Vehicle.status, VehicleStatus(vehicle.status), new_status
        )


def deleteVehicle(session: Session, vehicle: Vehicle):
    """
    Delete a vehicle, detaching it from every order it was assigned to.
    The caller is responsible for committing the session.
    """
    session.query(Order).filter(Order.vehicle_id == vehicle.id).update(
        {Order.vehicle_id: None}, synchronize_session=False
    )
    session.delete(vehicle)
    session.flush()


def searchVehicle(session: Session, qParam: QueryParams) -> List[Vehicle]:
    query = session.query(Vehicle)

    # Filters
    if qParam.license_plate is not None:
        query = query.filter(Vehicle.license_plate.ilike(f"%{qParam.license_plate}%"))
    if qParam.brand is not None:
        query = query.filter(Vehicle.brand.ilike(f"%{qParam.brand}%"))
    if qParam.model is not None:
        query = query.filter(Vehicle.model.ilike(f"%{qParam.model}%"))
    if qParam.status is not None:
        query = query.filter(Vehicle.status == qParam.status)
    # capacity based
    if qParam.capacity_ge is not None:
        query = query.filter(Vehicle.capacity >= qParam.capacity_ge)
    if qParam.capacity_le is not None:
        query = query.filter(Vehicle.capacity <= qParam.capacity_le)
    # id based
    if qParam.id is not None:
        query = query.filter(Vehicle.id == qParam.id)
    if qParam.id_ge is not None:
        query = query.filter(Vehicle.id >= qParam.id_ge)
    if qParam.id_le is not None:
        query = query.filter(Vehicle.id <= qParam.id_le)
    if qParam.id_list is not None:
        query = query.filter(Vehicle.id.in_(qParam.id_list))
    # updated_on based
    if qParam.updated_on_ge is not None:
        query = query.filter(Vehicle.updated_on >= qParam.updated_on_ge)
    if qParam.updated_on_le is not None:
        query = query.filter(Vehicle.updated_on <= qParam.updated_on_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Vehicle.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Vehicle.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Vehicle, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def patchVehicle(session: Session, token, fParam: UpdateFormForProvider, request_info):
    vehicle = session.query(Vehicle).filter(Vehicle.id == fParam.id).first()
    if vehicle is None:
        raise exceptions.InvalidIdentifier()

    validateStatusChange(session, vehicle, fParam.status)
    updateVehicle(vehicle, fParam)
    haveUpdates = session.is_modified(vehicle)
    if haveUpdates:
        session.commit()
        session.refresh(vehicle)
        logEvent(token, request_info, jsonable_encoder(vehicle))
    return vehicle


## API endpoints [Admin]
@route_admin.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.UniqueViolation(),
            exceptions.InvalidValue(Vehicle.status),
        ]
    ),
    description="""
    Register a new vehicle in the fleet.
    The license plate must be unique.
    The capacity is stored in liters with 2 decimal places.
    A vehicle cannot be created IN_USE.
    Log the vehicle creation activity with the associated token.
    """,
)
async def create_vehicle(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        if fParam.status == VehicleStatus.IN_USE:
            raise exceptions.InvalidValue(Vehicle.status)
        vehicle = Vehicle(
            license_plate=fParam.license_plate,
            brand=fParam.brand,
            model=fParam.model,
            year=fParam.year,
            capacity=fParam.capacity,
            status=fParam.status,
            current_latitude=fParam.current_latitude,
            current_longitude=fParam.current_longitude,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)

        logEvent(token, request_info, jsonable_encoder(vehicle))
        return vehicle
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
        ]
    ),
    description="""
    Update an existing vehicle by ID.
    The license plate cannot be changed.
    Only changed fields are saved.
    IN_USE is managed by order assignment and cannot be set or cleared here.
    """,
)
async def update_vehicle(
    fParam: UpdateFormForAdmin = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)
        return patchVehicle(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_VEHICLE,
    tags=["Vehicle"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Delete a vehicle by ID.
    Orders assigned to the vehicle keep their history but lose the vehicle reference.
    Returns 204 even when the vehicle does not exist.
    """,
)
async def delete_vehicle(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        vehicle = session.query(Vehicle).filter(Vehicle.id == fParam.id).first()
        if vehicle is not None:
            deleteVehicle(session, vehicle)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(vehicle))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch vehicles with filtering, sorting, and pagination.
    """,
)
async def fetch_vehicles_for_admin(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_admin)
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)
        return searchVehicle(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Provider]
@route_provider.patch(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(),
        ]
    ),
    description="""
    Update the status or the current location of a vehicle.
    The status of a vehicle held by a CONFIRMED or IN_TRANSIT order cannot be changed.
    """,
)
async def update_vehicle_for_provider(
    fParam: UpdateFormForProvider = Depends(),
    bearer=Depends(bearer_provider),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.providerToken(bearer.credentials, session)
        return patchVehicle(session, token, fParam, request_info)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_provider.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch vehicles with filtering, sorting, and pagination.
    Use `status=1` to list the vehicles available for assignment.
    """,
)
async def fetch_vehicles_for_provider(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_provider)
):
    try:
        session = sessionMaker()
        validators.providerToken(bearer.credentials, session)
        return searchVehicle(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
