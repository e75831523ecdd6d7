from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin, bearer_driver
from app.src.db import sessionMaker, Tour
from app.src import exceptions, validators, getters, tours
from app.src.loggers import logEvent
from app.src.enums import TourStatus, OrderIn
from app.src.schemas import TourSchema, RouteSchema, BusSchema, AccountSchema
from app.src.functions import enumStr, makeExceptionResponses, promoteToParent
from app.src.urls import (
    URL_TOUR,
    URL_TOUR_DETAIL,
    URL_TOUR_START,
    URL_TOUR_CANCEL,
    URL_TOUR_ANALYTICS,
)

route_admin = APIRouter()
route_driver = APIRouter()


## Output Schema
class TourDetailSchema(BaseModel):
    tour: TourSchema
    route: Optional[RouteSchema]
    bus: Optional[BusSchema]
    driver: Optional[AccountSchema]


class TourAnalyticsSchema(BaseModel):
    total_tours: int
    scheduled_tours: int
    active_tours: int
    completed_tours: int
    cancelled_tours: int
    bus_utilization: int
    recent_tours: List[TourSchema]


## Input Forms
class CreateForm(BaseModel):
    route_id: int = Field(Form())
    bus_id: int = Field(Form())
    driver_id: int = Field(Form())
    start_date_time: datetime = Field(Form())
    end_date_time: datetime = Field(Form())
    is_weekly: bool = Field(Form(default=False))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    route_id: int | None = Field(Form(default=None))
    bus_id: int | None = Field(Form(default=None))
    driver_id: int | None = Field(Form(default=None))
    start_date_time: datetime | None = Field(Form(default=None))
    end_date_time: datetime | None = Field(Form(default=None))
    is_weekly: bool | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


class StatusForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    start_date_time = 2
    updated_on = 3
    created_on = 4


class QueryParamsForDR(BaseModel):
    # filters
    route_id: int | None = Field(Query(default=None))
    bus_id: int | None = Field(Query(default=None))
    is_weekly: bool | None = Field(Query(default=None))
    status: TourStatus | None = Field(
        Query(default=None, description=enumStr(TourStatus))
    )
    status_list: List[TourStatus] | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # start_date_time based
    start_date_time_ge: datetime | None = Field(Query(default=None))
    start_date_time_le: datetime | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(
        Query(default=OrderBy.start_date_time, description=enumStr(OrderBy))
    )
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParams(QueryParamsForDR):
    driver_id: int | None = Field(Query(default=None))


## Function
def searchTour(session: Session, qParam: QueryParams) -> List[Tour]:
    return tours.searchTours(
        session,
        promoteToParent(
            qParam, tours.TourSearch, order_by=OrderBy(qParam.order_by).name
        ),
    )


def getDriverTour(session: Session, tourId: int, driverId: int) -> Tour:
    tour = tours.getTour(session, tourId)
    if tour.driver_id != driverId:
        raise exceptions.NoPermission()
    return tour


## API endpoints [Admin]
@route_admin.post(
    URL_TOUR,
    tags=["Tour"],
    response_model=TourSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.DanglingReference(Tour.route_id),
            exceptions.InvalidValue(Tour.start_date_time),
        ]
    ),
    description="""
    Schedules a new tour binding a route, a bus and a driver to a time window.
    The route, bus and driver must exist and the driver account must have the driver role.
    The start_date_time must be before the end_date_time and must not be in the past.
    The tour is created in the `scheduled` status.
    The assigned driver receives a `tour_assigned` notification.
    No overlap check is made against other tours of the same bus or driver.
    Logs the tour creation activity with the associated token.
    """,
)
async def create_tour(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        tour = tours.createTour(session, tours.TourFields(**fParam.model_dump()))
        session.commit()
        session.refresh(tour)

        tourData = jsonable_encoder(tour)
        logEvent(token, request_info, tourData)
        return tourData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_TOUR,
    tags=["Tour"],
    response_model=TourSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.ResourceLocked(Tour),
            exceptions.DanglingReference(Tour.route_id),
            exceptions.InvalidValue(Tour.end_date_time),
        ]
    ),
    description="""
    Updates a scheduled tour.
    Tours in any other status can not be edited.
    Supports partial updates, the start/end ordering is checked against the merged values.
    Changes are saved only if the tour data has been modified, the driver is then notified with `tour_updated`.
    Logs the tour updating activity with the associated token.
    """,
)
async def update_tour(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        tour = tours.getTour(session, fParam.id)
        fields = tours.TourFields(**fParam.model_dump(exclude={"id"}))
        haveUpdates = tours.updateTour(session, tour, fields)
        if haveUpdates:
            session.commit()
            session.refresh(tour)

        tourData = jsonable_encoder(tour)
        if haveUpdates:
            logEvent(token, request_info, tourData)
        return tourData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_TOUR,
    tags=["Tour"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Deletes a tour in any status.
    Recorded checkpoints and notifications of the tour are kept.
    Logs the deletion activity using the admin's token and request metadata.
    """,
)
async def delete_tour(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        tour = session.query(Tour).filter(Tour.id == fParam.id).first()
        if tour is not None:
            tours.deleteTour(session, tour)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(tour))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_TOUR,
    tags=["Tour"],
    response_model=List[TourSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches a list of tours.
    Supports filtering by route, bus, driver, status and start window, with ordering and pagination.
    Requires a valid admin token.
    """,
)
async def fetch_tours(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return searchTour(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_TOUR_DETAIL,
    tags=["Tour"],
    response_model=TourDetailSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches a tour together with its route, bus and driver.
    References which no longer resolve are returned as null.
    """,
)
async def fetch_tour_detail(
    id: int = Query(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        tour = tours.getTour(session, id)
        return tours.tourDetail(session, tour)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_TOUR_CANCEL,
    tags=["Tour"],
    response_model=TourSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.InvalidStateTransition(Tour.status),
        ]
    ),
    description="""
    Cancels a scheduled tour.
    Tours which are already started, in progress, completed or cancelled can not be cancelled.
    Logs the cancellation activity with the associated token.
    """,
)
async def cancel_tour(
    fParam: StatusForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        tour = tours.getTour(session, fParam.id)
        tours.cancelTour(session, tour)
        session.commit()
        session.refresh(tour)

        tourData = jsonable_encoder(tour)
        logEvent(token, request_info, tourData)
        return tourData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_TOUR_ANALYTICS,
    tags=["Tour"],
    response_model=TourAnalyticsSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Summarizes the tours of the fleet.
    Active tours are the started and in-progress ones, bus utilization is the percentage of buses on an active tour.
    The five most recently created tours are included.
    """,
)
async def fetch_tour_analytics(bearer=Depends(bearer_admin)):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return tours.tourAnalytics(session)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Driver]
@route_driver.get(
    URL_TOUR,
    tags=["Tour"],
    response_model=List[TourSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches the tours assigned to the calling driver.
    Supports the same filters, ordering and pagination as the admin listing.
    """,
)
async def fetch_own_tours(
    qParam: QueryParamsForDR = Depends(),
    bearer=Depends(bearer_driver),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        qParam = promoteToParent(qParam, QueryParams, driver_id=token.account_id)
        return searchTour(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.patch(
    URL_TOUR_START,
    tags=["Tour"],
    response_model=TourSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.InvalidStateTransition(Tour.status),
            exceptions.OutsideStartWindow,
        ]
    ),
    description="""
    Starts a scheduled tour assigned to the calling driver.
    A tour can be started from 5 minutes before until 30 minutes after its scheduled start.
    The tour moves to the `started` status.
    Logs the start activity with the associated token.
    """,
)
async def start_tour(
    fParam: StatusForm = Depends(),
    bearer=Depends(bearer_driver),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        tour = getDriverTour(session, fParam.id, token.account_id)
        tours.startTour(session, tour)
        session.commit()
        session.refresh(tour)

        tourData = jsonable_encoder(tour)
        logEvent(token, request_info, tourData)
        return tourData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
