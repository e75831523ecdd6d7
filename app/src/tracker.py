"""
Live tracker view model.

Everything here is derived from the persisted tour, its route and its
checkpoints. Nothing is cached, a viewer simply polls again after
`TRACKER_REFRESH_INTERVAL` seconds and gets a fresh derivation.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.orm.session import Session

from app.src.db import Tour, TourProgress
from app.src.constants import (
    TMZ_SECONDARY,
    TRACKER_ARRIVED,
    TRACKER_CALCULATING,
    TRACKER_FINAL_DESTINATION,
    TRACKER_REFRESH_INTERVAL,
    TRACKER_STARTING_POINT,
)
from app.src import getters, progress
from app.src.functions import roundHalfUp


def progressPercentage(checkpointCount: int, totalStops: int) -> int:
    """
    Share of the route covered, as a whole percentage.

    Example:
        >>> progressPercentage(1, 3)
        33
        >>> progressPercentage(2, 3)
        67
    """
    if totalStops <= 0:
        return 0
    return roundHalfUp(100 * checkpointCount / totalStops)


def currentLocation(checkpoints: List[TourProgress]) -> str:
    if not checkpoints:
        return TRACKER_STARTING_POINT
    return checkpoints[-1].stop_name


def nextStop(stops: List[str], checkpointCount: int) -> str:
    if checkpointCount >= len(stops):
        return TRACKER_FINAL_DESTINATION
    return stops[checkpointCount]


def estimatedArrival(
    tour: Tour,
    checkpoints: List[TourProgress],
    stopIndex: int,
    now: Optional[datetime] = None,
) -> datetime | str:
    """
    Estimate when the tour reaches a stop.

    The average time per stop so far is extrapolated over the stops left
    until `stopIndex`.

    Returns:
        datetime | str: `TRACKER_ARRIVED` when the stop already has a
            checkpoint, `TRACKER_CALCULATING` before the first checkpoint,
            the estimated moment otherwise.
    """
    if any(checkpoint.stop_index == stopIndex for checkpoint in checkpoints):
        return TRACKER_ARRIVED
    completed = len(checkpoints)
    if completed == 0:
        return TRACKER_CALCULATING

    now = now if now is not None else datetime.now(timezone.utc)
    averagePerStop = (now - tour.start_date_time) / completed
    stopsRemaining = stopIndex - completed + 1
    return now + averagePerStop * stopsRemaining


def displayTime(moment: datetime | str) -> str:
    """Format an estimate as HH:MM in the display time zone, labels pass through."""
    if isinstance(moment, str):
        return moment
    return moment.astimezone(TMZ_SECONDARY).strftime("%H:%M")


def timeline(
    tour: Tour,
    stops: List[str],
    checkpoints: List[TourProgress],
    now: Optional[datetime] = None,
) -> List[dict]:
    arrivals = {checkpoint.stop_index: checkpoint for checkpoint in checkpoints}
    entries = []
    for stopIndex, stopName in enumerate(stops):
        checkpoint = arrivals.get(stopIndex)
        entries.append(
            {
                "stop_index": stopIndex,
                "stop_name": stopName,
                "arrived": checkpoint is not None,
                "arrived_at": checkpoint.arrived_at if checkpoint else None,
                "estimated_arrival": displayTime(
                    estimatedArrival(tour, checkpoints, stopIndex, now)
                ),
            }
        )
    return entries


def trackTour(session: Session, tour: Tour, now: Optional[datetime] = None) -> dict:
    """
    Build the live view of a tour.

    A route that no longer resolves is treated as having no stops, the
    view is still produced with `route` set to None.
    """
    route = getters.route(tour.route_id, session)
    stops = list(route.stops) if route is not None else []
    checkpoints = progress.listProgress(session, tour.id)
    checkpointCount = len(checkpoints)
    return {
        "tour": tour,
        "route": route,
        "bus": getters.bus(tour.bus_id, session),
        "checkpoint_count": checkpointCount,
        "total_stops": len(stops),
        "progress_percentage": progressPercentage(checkpointCount, len(stops)),
        "current_location": currentLocation(checkpoints),
        "next_stop": nextStop(stops, checkpointCount),
        "timeline": timeline(tour, stops, checkpoints, now),
        "refresh_interval": TRACKER_REFRESH_INTERVAL,
    }
