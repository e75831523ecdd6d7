from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.src.db import sessionMaker, Tour
from app.src import exceptions, tours, tracker
from app.src.schemas import TourSchema, RouteSchema, BusSchema
from app.src.functions import makeExceptionResponses
from app.src.urls import URL_TOUR_LIVE

route_public = APIRouter()


## Output Schema
class TimelineEntrySchema(BaseModel):
    stop_index: int
    stop_name: str
    arrived: bool
    arrived_at: Optional[datetime]
    estimated_arrival: str


class LiveTourSchema(BaseModel):
    tour: TourSchema
    route: Optional[RouteSchema]
    bus: Optional[BusSchema]
    checkpoint_count: int
    total_stops: int
    progress_percentage: int
    current_location: str
    next_stop: str
    timeline: List[TimelineEntrySchema]
    refresh_interval: int


## Query Parameters
class QueryParams(BaseModel):
    route_id: int | None = Field(Query(default=None))
    bus_id: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## API endpoints [Public]
@route_public.get(
    URL_TOUR_LIVE,
    tags=["Live Tracking"],
    response_model=List[LiveTourSchema],
    description="""
    Fetches the live view of every running tour, the ones in `started` or `in-progress` status.
    Each entry carries the progress percentage, the current location, the next stop and a per stop timeline.
    The estimated_arrival of a stop is `Arrived`, `Calculating...` before the first checkpoint, or a HH:MM local time.
    The view is recomputed on every request, clients poll again after refresh_interval seconds.
    No authentication required.
    """,
)
async def fetch_live_tours(qParam: QueryParams = Depends()):
    try:
        session = sessionMaker()
        qTour = tours.TourSearch(
            route_id=qParam.route_id,
            bus_id=qParam.bus_id,
            status_list=tours.ACTIVE_TOUR_STATUS,
            order_by=Tour.start_date_time.key,
            offset=qParam.offset,
            limit=qParam.limit,
        )
        return [
            tracker.trackTour(session, tour)
            for tour in tours.searchTours(session, qTour)
        ]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_public.get(
    URL_TOUR_LIVE + "/{tour_id}",
    tags=["Live Tracking"],
    response_model=LiveTourSchema,
    responses=makeExceptionResponses([exceptions.InvalidIdentifier]),
    description="""
    Fetches the live view of a single tour in any status.
    No authentication required.
    """,
)
async def fetch_live_tour(tour_id: int):
    try:
        session = sessionMaker()
        tour = tours.getTour(session, tour_id)
        return tracker.trackTour(session, tour)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
