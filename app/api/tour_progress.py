from typing import List
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin, bearer_driver
from app.api.tour import getDriverTour
from app.src.db import sessionMaker, Tour, TourProgress
from app.src import exceptions, validators, getters, tours, progress
from app.src.loggers import logEvent
from app.src.redis import acquireLock, releaseLock
from app.src.schemas import TourProgressSchema
from app.src.functions import makeExceptionResponses
from app.src.urls import URL_TOUR_PROGRESS

route_admin = APIRouter()
route_driver = APIRouter()


## Input Forms
class CreateForm(BaseModel):
    tour_id: int = Field(Form())
    stop_index: int = Field(Form(ge=0))
    stop_name: str | None = Field(Form(max_length=128, default=None))
    latitude: float | None = Field(Form(ge=-90, le=90, default=None))
    longitude: float | None = Field(Form(ge=-180, le=180, default=None))


## API endpoints [Admin]
@route_admin.get(
    URL_TOUR_PROGRESS,
    tags=["Tour Progress"],
    response_model=List[TourProgressSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches the checkpoints of a tour in arrival order.
    Checkpoints of deleted tours are not reachable through this endpoint.
    """,
)
async def fetch_tour_progress(
    tour_id: int = Query(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        tour = tours.getTour(session, tour_id)
        return progress.listProgress(session, tour.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Driver]
@route_driver.post(
    URL_TOUR_PROGRESS,
    tags=["Tour Progress"],
    response_model=TourProgressSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.InvalidStateTransition(Tour.status),
            exceptions.InvalidValue(TourProgress.stop_name),
            exceptions.OutOfSequence,
            exceptions.DuplicateCheckpoint,
            exceptions.LockAcquireTimeout,
        ]
    ),
    description="""
    Records the arrival of the calling driver's tour at a stop of its route.
    Stops must be reached in route order, the stop_index must equal the number of stops already recorded.
    Each stop can be recorded only once.
    The stop_name is optional, when given it must match the route's stop at stop_index.
    The first arrival moves the tour to `in-progress`, the arrival at the last stop completes the tour.
    Writers for the same tour are serialized with a mutex lock.
    Logs the arrival with the associated token.
    """,
)
async def create_tour_progress(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_driver),
    request_info=Depends(getters.requestInfo),
):
    tourLock = None
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        tourLock = acquireLock(Tour.__tablename__, fParam.tour_id)
        tour = getDriverTour(session, fParam.tour_id, token.account_id)
        checkpoint = tours.recordStopArrival(
            session,
            tour,
            fParam.stop_index,
            fParam.stop_name,
            latitude=fParam.latitude,
            longitude=fParam.longitude,
        )
        session.commit()
        session.refresh(checkpoint)
        session.refresh(tour)

        checkpointData = jsonable_encoder(checkpoint)
        logEvent(
            token,
            request_info,
            {**checkpointData, "tour_status": tour.status},
        )
        return checkpointData
    except Exception as e:
        exceptions.handle(e)
    finally:
        releaseLock(tourLock)
        session.close()


@route_driver.get(
    URL_TOUR_PROGRESS,
    tags=["Tour Progress"],
    response_model=List[TourProgressSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches the checkpoints of a tour assigned to the calling driver, in arrival order.
    """,
)
async def fetch_own_tour_progress(
    tour_id: int = Query(),
    bearer=Depends(bearer_driver),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        tour = getDriverTour(session, tour_id, token.account_id)
        return progress.listProgress(session, tour.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
