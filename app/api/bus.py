from datetime import datetime
from enum import IntEnum
from typing import List
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin, bearer_driver, bearer_owner
from app.src.db import sessionMaker, Bus
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.enums import OrderIn, UserRole
from app.src.schemas import BusSchema
from app.src.functions import (
    enumStr,
    makeExceptionResponses,
    updateIfChanged,
    promoteToParent,
)
from app.src.urls import URL_BUS

route_admin = APIRouter()
route_driver = APIRouter()
route_owner = APIRouter()


## Input Forms
class CreateForm(BaseModel):
    route_id: int | None = Field(Form(default=None))
    driver_id: int = Field(Form())
    owner_id: int = Field(Form())
    seats: int = Field(Form(ge=1, le=120))
    license_info: str | None = Field(Form(max_length=128, default=None))
    image_url: str | None = Field(Form(default=None))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    route_id: int | None = Field(Form(default=None))
    driver_id: int | None = Field(Form(default=None))
    owner_id: int | None = Field(Form(default=None))
    seats: int | None = Field(Form(ge=1, le=120, default=None))
    license_info: str | None = Field(Form(max_length=128, default=None))
    image_url: str | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    seats = 2
    updated_on = 3
    created_on = 4


class QueryParamsForOW(BaseModel):
    # filters
    route_id: int | None = Field(Query(default=None))
    driver_id: int | None = Field(Query(default=None))
    license_info: str | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # seats based
    seats_ge: int | None = Field(Query(default=None))
    seats_le: int | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParams(QueryParamsForOW):
    owner_id: int | None = Field(Query(default=None))


## Function
def validateReferences(session: Session, fParam: CreateForm | UpdateForm):
    if fParam.route_id is not None:
        validators.existingRoute(fParam.route_id, session, Bus.route_id)
    if fParam.driver_id is not None:
        validators.existingAccount(
            fParam.driver_id, session, Bus.driver_id, UserRole.DRIVER
        )
    if fParam.owner_id is not None:
        validators.existingAccount(
            fParam.owner_id, session, Bus.owner_id, UserRole.OWNER
        )


def searchBus(session: Session, qParam: QueryParams) -> List[Bus]:
    query = session.query(Bus)

    # Filters
    if qParam.route_id is not None:
        query = query.filter(Bus.route_id == qParam.route_id)
    if qParam.driver_id is not None:
        query = query.filter(Bus.driver_id == qParam.driver_id)
    if qParam.owner_id is not None:
        query = query.filter(Bus.owner_id == qParam.owner_id)
    if qParam.license_info is not None:
        query = query.filter(Bus.license_info.ilike(f"%{qParam.license_info}%"))
    # id based
    if qParam.id is not None:
        query = query.filter(Bus.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Bus.id.in_(qParam.id_list))
    # seats based
    if qParam.seats_ge is not None:
        query = query.filter(Bus.seats >= qParam.seats_ge)
    if qParam.seats_le is not None:
        query = query.filter(Bus.seats <= qParam.seats_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Bus.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Bus.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Bus, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.DanglingReference(Bus.route_id),
            exceptions.InvalidValue(Bus.driver_id),
        ]
    ),
    description="""
    Adds a bus to the fleet.
    The route, driver and owner must exist, the driver and owner accounts must have the matching role.
    Seat numbers of the bus run from 1 to seats.
    Logs the bus creation activity with the associated token.
    """,
)
async def create_bus(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        validateReferences(session, fParam)
        bus = Bus(
            route_id=fParam.route_id,
            driver_id=fParam.driver_id,
            owner_id=fParam.owner_id,
            seats=fParam.seats,
            license_info=fParam.license_info,
            image_url=fParam.image_url,
        )
        session.add(bus)
        session.commit()
        session.refresh(bus)

        busData = jsonable_encoder(bus)
        logEvent(token, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.DanglingReference(Bus.route_id),
        ]
    ),
    description="""
    Updates an existing bus.
    Supports partial updates, referenced records must exist.
    Changes are saved only if the bus data has been modified.
    Logs the bus updating activity with the associated token.
    """,
)
async def update_bus(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        bus = session.query(Bus).filter(Bus.id == fParam.id).first()
        if bus is None:
            raise exceptions.InvalidIdentifier()

        validateReferences(session, fParam)
        updateIfChanged(
            bus,
            fParam,
            [
                Bus.route_id.key,
                Bus.driver_id.key,
                Bus.owner_id.key,
                Bus.seats.key,
                Bus.license_info.key,
                Bus.image_url.key,
            ],
        )
        haveUpdates = session.is_modified(bus)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(token, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_BUS,
    tags=["Bus"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Removes a bus from the fleet.
    Tours and bookings referring to the bus are left untouched.
    Logs the deletion activity using the admin's token and request metadata.
    """,
)
async def delete_bus(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        bus = session.query(Bus).filter(Bus.id == fParam.id).first()
        if bus is not None:
            session.delete(bus)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(bus))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches a list of buses.
    Supports filtering by route, driver, owner, seats and metadata.
    Requires a valid admin token.
    """,
)
async def fetch_buses(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Owner]
@route_owner.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches the buses owned by the calling owner.
    """,
)
async def fetch_own_buses(
    qParam: QueryParamsForOW = Depends(),
    bearer=Depends(bearer_owner),
):
    try:
        session = sessionMaker()
        token = validators.ownerToken(bearer.credentials, session)

        qParam = promoteToParent(qParam, QueryParams, owner_id=token.account_id)
        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Driver]
@route_driver.get(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches the bus driven by the calling driver.
    When several buses name the driver, the most recently added one is returned.
    """,
)
async def fetch_own_bus(bearer=Depends(bearer_driver)):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        bus = getters.driverBus(token.account_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()
        return bus
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
