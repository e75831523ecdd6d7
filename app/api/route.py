from datetime import datetime
from enum import IntEnum
from typing import List
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin
from app.src.db import sessionMaker, Route
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.enums import OrderIn
from app.src.schemas import RouteSchema
from app.src.functions import enumStr, makeExceptionResponses, updateIfChanged
from app.src.urls import URL_ROUTE

route_admin = APIRouter()
route_public = APIRouter()


## Input Forms
class CreateForm(BaseModel):
    start: str = Field(Form(min_length=1, max_length=128))
    end: str = Field(Form(min_length=1, max_length=128))
    fare: float = Field(Form(ge=0))
    stops: List[str] = Field(Form(description="Ordered stop names"))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    start: str | None = Field(Form(min_length=1, max_length=128, default=None))
    end: str | None = Field(Form(min_length=1, max_length=128, default=None))
    fare: float | None = Field(Form(ge=0, default=None))
    stops: List[str] | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    start = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    start: str | None = Field(Query(default=None))
    end: str | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # fare based
    fare_ge: float | None = Field(Query(default=None))
    fare_le: float | None = Field(Query(default=None))
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
def searchRoute(session: Session, qParam: QueryParams) -> List[Route]:
    query = session.query(Route)

    # Filters
    if qParam.start is not None:
        query = query.filter(Route.start.ilike(f"%{qParam.start}%"))
    if qParam.end is not None:
        query = query.filter(Route.end.ilike(f"%{qParam.end}%"))
    # id based
    if qParam.id is not None:
        query = query.filter(Route.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Route.id.in_(qParam.id_list))
    # fare based
    if qParam.fare_ge is not None:
        query = query.filter(Route.fare >= qParam.fare_ge)
    if qParam.fare_le is not None:
        query = query.filter(Route.fare <= qParam.fare_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Route.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Route.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Route, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidValue(Route.stops),
        ]
    ),
    description="""
    Creates a new route with its ordered list of stops.
    A route needs at least two stops and the stop names must not be blank.
    The stop list is what tour checkpoints are validated against.
    Logs the route creation activity with the associated token.
    """,
)
async def create_route(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        route = Route(
            start=fParam.start.strip(),
            end=fParam.end.strip(),
            fare=fParam.fare,
            stops=validators.routeStops(fParam.stops, Route.stops),
        )
        session.add(route)
        session.commit()
        session.refresh(route)

        routeData = jsonable_encoder(route)
        logEvent(token, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.InvalidValue(Route.stops),
        ]
    ),
    description="""
    Updates an existing route.
    Supports partial updates, a new stop list replaces the old one entirely.
    Checkpoints already recorded keep the stop names they were recorded with.
    Changes are saved only if the route data has been modified.
    Logs the route updating activity with the associated token.
    """,
)
async def update_route(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        route = session.query(Route).filter(Route.id == fParam.id).first()
        if route is None:
            raise exceptions.InvalidIdentifier()

        if fParam.stops is not None:
            fParam.stops = validators.routeStops(fParam.stops, Route.stops)
        updateIfChanged(
            route,
            fParam,
            [Route.start.key, Route.end.key, Route.fare.key, Route.stops.key],
        )
        haveUpdates = session.is_modified(route)
        if haveUpdates:
            session.commit()
            session.refresh(route)

        routeData = jsonable_encoder(route)
        if haveUpdates:
            logEvent(token, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_ROUTE,
    tags=["Route"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Deletes an existing route.
    Buses and tours referring to the route are left untouched, they read it back as unknown.
    Logs the deletion activity using the admin's token and request metadata.
    """,
)
async def delete_route(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        route = session.query(Route).filter(Route.id == fParam.id).first()
        if route is not None:
            session.delete(route)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(route))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches a list of routes.
    Supports filtering by start, end, fare and metadata.
    Requires a valid admin token.
    """,
)
async def fetch_routes(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Public]
@route_public.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    description="""
    Public endpoint to search routes.
    The start and end filters match case-insensitive substrings.
    No authentication required.
    """,
)
async def fetch_public_routes(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
