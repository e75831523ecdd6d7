"""
Append-only log of stop arrivals per tour.

A tour's checkpoints always form the gapless sequence 0, 1, 2, ... in
arrival order. `recordArrival` only accepts the next index of that sequence,
which makes concurrent or repeated submissions of the same stop fail instead
of producing duplicates. The `(tour_id, stop_index)` unique constraint backs
this up for writers that race past the count check.

There is deliberately no update or delete operation.
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from app.src.db import TourProgress
from app.src import exceptions


def countProgress(session: Session, tourId: int) -> int:
    return (
        session.query(func.count(TourProgress.id))
        .filter(TourProgress.tour_id == tourId)
        .scalar()
    )


def listProgress(session: Session, tourId: int) -> List[TourProgress]:
    """Checkpoints of a tour, earliest first."""
    return (
        session.query(TourProgress)
        .filter(TourProgress.tour_id == tourId)
        .order_by(TourProgress.arrived_at.asc(), TourProgress.stop_index.asc())
        .all()
    )


def recordArrival(
    session: Session,
    tourId: int,
    stopIndex: int,
    stopName: str,
    arrivedAt: Optional[datetime] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    totalStops: Optional[int] = None,
) -> TourProgress:
    """
    Append the checkpoint for the next stop of a tour.

    The checkpoint is flushed but not committed, the caller owns the
    transaction and rolls it back when a concurrent insert wins the stop.

    Args:
        session (Session): Active SQLAlchemy session.
        tourId (int): Owning tour.
        stopIndex (int): 0-based index of the stop reached.
        stopName (str): Name of the stop, stored as a copy.
        arrivedAt (datetime, optional): Arrival moment, defaults to now.
        latitude (float, optional): Position at arrival.
        longitude (float, optional): Position at arrival.
        totalStops (int, optional): Length of the route's stop list. When
            given, indices past the end of the route are rejected.

    Returns:
        TourProgress: The new checkpoint.

    Raises:
        exceptions.DuplicateCheckpoint: A checkpoint for this stop exists.
        exceptions.OutOfSequence: `stopIndex` is not the next expected index
            or lies beyond the route.
    """
    existing = (
        session.query(TourProgress.id)
        .filter(TourProgress.tour_id == tourId)
        .filter(TourProgress.stop_index == stopIndex)
        .first()
    )
    if existing is not None:
        raise exceptions.DuplicateCheckpoint(stopIndex)

    expectedIndex = countProgress(session, tourId)
    if stopIndex != expectedIndex:
        raise exceptions.OutOfSequence(expectedIndex, stopIndex)
    if totalStops is not None and stopIndex >= totalStops:
        raise exceptions.OutOfSequence()

    if arrivedAt is None:
        arrivedAt = datetime.now(timezone.utc)
    checkpoint = TourProgress(
        tour_id=tourId,
        stop_index=stopIndex,
        stop_name=stopName,
        arrived_at=arrivedAt,
        latitude=latitude,
        longitude=longitude,
    )
    session.add(checkpoint)
    try:
        session.flush()
    except IntegrityError:
        raise exceptions.DuplicateCheckpoint(stopIndex)
    return checkpoint
