"""
Tour repository and lifecycle state machine.

Every mutation of a tour goes through this module so that the lifecycle
rules hold no matter which application calls it:

    scheduled ──► started ──► in-progress ──► completed
        │
        └──────► cancelled

Functions mutate ORM objects and flush, committing is left to the caller.
`now` is injectable everywhere time matters.
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm.session import Session

from app.src.db import Tour, Bus, Account, DriverNotification, TourProgress
from app.src.constants import (
    TOUR_START_EARLY_WINDOW,
    TOUR_START_LATE_WINDOW,
    RECENT_TOUR_COUNT,
)
from app.src.enums import TourStatus, NotificationType, UserRole, OrderIn
from app.src import exceptions, validators, getters, progress
from app.src.functions import updateIfChanged, roundHalfUp, toUTC


TOUR_STATUS_TRANSITION = {
    TourStatus.SCHEDULED: [TourStatus.STARTED, TourStatus.CANCELLED],
    TourStatus.STARTED: [TourStatus.IN_PROGRESS],
    TourStatus.IN_PROGRESS: [TourStatus.COMPLETED],
    TourStatus.COMPLETED: [],
    TourStatus.CANCELLED: [],
}
ACTIVE_TOUR_STATUS = [TourStatus.STARTED, TourStatus.IN_PROGRESS]


class TourFields(BaseModel):
    route_id: int | None = None
    bus_id: int | None = None
    driver_id: int | None = None
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    is_weekly: bool | None = None


class TourSearch(BaseModel):
    id: int | None = None
    id_list: List[int] | None = None
    route_id: int | None = None
    bus_id: int | None = None
    driver_id: int | None = None
    is_weekly: bool | None = None
    status: TourStatus | None = None
    status_list: List[TourStatus] | None = None
    start_date_time_ge: datetime | None = None
    start_date_time_le: datetime | None = None
    created_on_ge: datetime | None = None
    created_on_le: datetime | None = None
    order_by: str = Tour.start_date_time.key
    order_in: OrderIn = OrderIn.DESC
    offset: int = 0
    limit: int | None = None


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def _transition(tour: Tour, newStatus: TourStatus) -> None:
    validators.stateTransition(
        TOUR_STATUS_TRANSITION, TourStatus(tour.status), newStatus, Tour.status
    )
    tour.status = newStatus.value


def _notify(
    session: Session,
    tour: Tour,
    type: NotificationType,
    title: str,
    message: str,
) -> DriverNotification:
    notification = DriverNotification(
        driver_id=tour.driver_id,
        tour_id=tour.id,
        type=type.value,
        title=title,
        message=message,
    )
    session.add(notification)
    return notification


def _normalize(fields: TourFields) -> TourFields:
    return fields.model_copy(
        update={
            "start_date_time": toUTC(fields.start_date_time),
            "end_date_time": toUTC(fields.end_date_time),
        }
    )


def _validateReferences(session: Session, fields: TourFields) -> None:
    if fields.route_id is not None:
        validators.existingRoute(fields.route_id, session, Tour.route_id)
    if fields.bus_id is not None:
        validators.existingBus(fields.bus_id, session, Tour.bus_id)
    if fields.driver_id is not None:
        validators.existingAccount(
            fields.driver_id, session, Tour.driver_id, UserRole.DRIVER
        )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------
def getTour(session: Session, tourId: int) -> Tour:
    """
    Fetch a tour by id.

    Raises:
        exceptions.InvalidIdentifier: If the tour does not exist.
    """
    tour = session.query(Tour).filter(Tour.id == tourId).first()
    if tour is None:
        raise exceptions.InvalidIdentifier()
    return tour


def searchTours(session: Session, qParam: TourSearch) -> List[Tour]:
    query = session.query(Tour)

    # Filters
    if qParam.id is not None:
        query = query.filter(Tour.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Tour.id.in_(qParam.id_list))
    if qParam.route_id is not None:
        query = query.filter(Tour.route_id == qParam.route_id)
    if qParam.bus_id is not None:
        query = query.filter(Tour.bus_id == qParam.bus_id)
    if qParam.driver_id is not None:
        query = query.filter(Tour.driver_id == qParam.driver_id)
    if qParam.is_weekly is not None:
        query = query.filter(Tour.is_weekly == qParam.is_weekly)
    # status based
    if qParam.status is not None:
        query = query.filter(Tour.status == qParam.status.value)
    if qParam.status_list is not None:
        query = query.filter(Tour.status.in_([s.value for s in qParam.status_list]))
    # start_date_time based
    if qParam.start_date_time_ge is not None:
        query = query.filter(Tour.start_date_time >= qParam.start_date_time_ge)
    if qParam.start_date_time_le is not None:
        query = query.filter(Tour.start_date_time <= qParam.start_date_time_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Tour.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Tour.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Tour, qParam.order_by)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc(), Tour.id.asc())
    else:
        query = query.order_by(orderingAttribute.desc(), Tour.id.desc())

    # Pagination
    query = query.offset(qParam.offset)
    if qParam.limit is not None:
        query = query.limit(qParam.limit)
    return query.all()


def tourDetail(session: Session, tour: Tour) -> dict:
    """
    Enrich a tour with its route, bus and driver.

    References that no longer resolve are reported as None.
    """
    driver = session.query(Account).filter(Account.id == tour.driver_id).first()
    return {
        "tour": tour,
        "route": getters.route(tour.route_id, session),
        "bus": getters.bus(tour.bus_id, session),
        "driver": driver,
    }


def createTour(
    session: Session, fields: TourFields, now: Optional[datetime] = None
) -> Tour:
    """
    Schedule a new tour and tell the driver about it.

    Validation rules:
        - route_id, bus_id, driver_id and both datetimes are required.
        - The referenced route, bus and driver must exist, the driver account
          must have the driver role.
        - start_date_time must be before end_date_time.
        - start_date_time must not be in the past.

    No overlap check is made against other tours of the same bus or driver.

    Raises:
        exceptions.MissingParameter, exceptions.DanglingReference,
        exceptions.InvalidValue
    """
    now = _now(now)
    fields = _normalize(fields)
    for column in [
        Tour.route_id,
        Tour.bus_id,
        Tour.driver_id,
        Tour.start_date_time,
        Tour.end_date_time,
    ]:
        if getattr(fields, column.key) is None:
            raise exceptions.MissingParameter(column)

    _validateReferences(session, fields)
    validators.timeWindow(
        fields.start_date_time, fields.end_date_time, Tour.end_date_time
    )
    if fields.start_date_time < now:
        raise exceptions.InvalidValue(Tour.start_date_time)

    tour = Tour(
        route_id=fields.route_id,
        bus_id=fields.bus_id,
        driver_id=fields.driver_id,
        start_date_time=fields.start_date_time,
        end_date_time=fields.end_date_time,
        is_weekly=bool(fields.is_weekly),
        status=TourStatus.SCHEDULED.value,
    )
    session.add(tour)
    session.flush()

    route = getters.route(tour.route_id, session)
    startDate = fields.start_date_time.date().isoformat()
    _notify(
        session,
        tour,
        NotificationType.TOUR_ASSIGNED,
        "New Tour Assigned",
        f"You have been assigned a new tour: {getters.routeLabel(route)} on {startDate}",
    )
    session.flush()
    return tour


def updateTour(session: Session, tour: Tour, fields: TourFields) -> bool:
    """
    Apply a partial update to a scheduled tour.

    Only scheduled tours can be edited. The not-in-the-past rule of
    creation is not re-checked, the start/end ordering is. The driver gets a
    `tour_updated` notification when something changed.

    Returns:
        bool: True if the tour was modified.

    Raises:
        exceptions.ResourceLocked: The tour is no longer scheduled.
        exceptions.DanglingReference, exceptions.InvalidValue
    """
    if tour.status != TourStatus.SCHEDULED:
        raise exceptions.ResourceLocked(Tour, tour.status)

    fields = _normalize(fields)
    _validateReferences(session, fields)
    startDateTime = fields.start_date_time or tour.start_date_time
    endDateTime = fields.end_date_time or tour.end_date_time
    validators.timeWindow(startDateTime, endDateTime, Tour.end_date_time)

    updateIfChanged(
        tour,
        fields,
        [
            Tour.route_id.key,
            Tour.bus_id.key,
            Tour.driver_id.key,
            Tour.start_date_time.key,
            Tour.end_date_time.key,
            Tour.is_weekly.key,
        ],
    )
    haveUpdates = session.is_modified(tour)
    if haveUpdates:
        route = getters.route(tour.route_id, session)
        _notify(
            session,
            tour,
            NotificationType.TOUR_UPDATED,
            "Tour Updated",
            f"Your tour {getters.routeLabel(route)} was updated. "
            f"Departure: {tour.start_date_time.isoformat()}",
        )
        session.flush()
    return haveUpdates


def deleteTour(session: Session, tour: Tour) -> None:
    """Delete a tour in any status. Checkpoints and notifications are kept."""
    session.delete(tour)
    session.flush()


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------
def canStart(
    tour: Tour,
    now: Optional[datetime] = None,
    earlyWindow: int = TOUR_START_EARLY_WINDOW,
    lateWindow: int = TOUR_START_LATE_WINDOW,
) -> bool:
    """
    Whether a scheduled tour is inside its start window at `now`.

    The bounds are compared against exact, fractional minutes.
    """
    minutesUntilStart = (tour.start_date_time - _now(now)).total_seconds() / 60
    return (
        tour.status == TourStatus.SCHEDULED
        and -lateWindow <= minutesUntilStart <= earlyWindow
    )


def startTour(
    session: Session,
    tour: Tour,
    now: Optional[datetime] = None,
    earlyWindow: int = TOUR_START_EARLY_WINDOW,
    lateWindow: int = TOUR_START_LATE_WINDOW,
) -> Tour:
    """
    Move a tour from scheduled to started.

    Raises:
        exceptions.InvalidStateTransition: The tour is not scheduled.
        exceptions.OutsideStartWindow: Too early or too late to start.
    """
    validators.stateTransition(
        TOUR_STATUS_TRANSITION,
        TourStatus(tour.status),
        TourStatus.STARTED,
        Tour.status,
    )
    if not canStart(tour, now, earlyWindow, lateWindow):
        raise exceptions.OutsideStartWindow()
    tour.status = TourStatus.STARTED.value
    session.flush()
    return tour


def cancelTour(session: Session, tour: Tour) -> Tour:
    """
    Move a scheduled tour to cancelled.

    Raises:
        exceptions.InvalidStateTransition: The tour is not scheduled.
    """
    _transition(tour, TourStatus.CANCELLED)
    session.flush()
    return tour


def completeTour(session: Session, tour: Tour) -> Tour:
    """
    Move a tour to completed. Calling it on a completed tour is a no-op.

    Raises:
        exceptions.InvalidStateTransition: The tour is neither in progress
            nor completed.
    """
    if tour.status == TourStatus.COMPLETED:
        return tour
    _transition(tour, TourStatus.COMPLETED)
    session.flush()
    return tour


def recordStopArrival(
    session: Session,
    tour: Tour,
    stopIndex: int,
    stopName: Optional[str] = None,
    now: Optional[datetime] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> TourProgress:
    """
    Record the arrival of a running tour at the next stop of its route.

    The tour moves to in-progress and `current_stop_index` follows the new
    checkpoint. Reaching the last stop of the route completes the tour.

    Raises:
        exceptions.InvalidStateTransition: The tour is not started or in progress.
        exceptions.DanglingReference: The tour's route no longer exists.
        exceptions.InvalidValue: `stopName` differs from the route's stop.
        exceptions.OutOfSequence, exceptions.DuplicateCheckpoint: see
            `progress.recordArrival`.
    """
    if tour.status not in ACTIVE_TOUR_STATUS:
        raise exceptions.InvalidStateTransition(
            Tour.status, tour.status, TourStatus.IN_PROGRESS.value
        )
    route = validators.existingRoute(tour.route_id, session, Tour.route_id)
    stops = route.stops or []
    if 0 <= stopIndex < len(stops):
        routeStopName = stops[stopIndex]
        if stopName is not None and stopName.strip() != routeStopName:
            raise exceptions.InvalidValue(TourProgress.stop_name)
    else:
        routeStopName = stopName or ""

    checkpoint = progress.recordArrival(
        session,
        tour.id,
        stopIndex,
        routeStopName,
        arrivedAt=_now(now),
        latitude=latitude,
        longitude=longitude,
        totalStops=len(stops),
    )
    if tour.status != TourStatus.IN_PROGRESS:
        _transition(tour, TourStatus.IN_PROGRESS)
    tour.current_stop_index = stopIndex
    if stopIndex == len(stops) - 1:
        completeTour(session, tour)
    session.flush()
    return checkpoint


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
def tourAnalytics(session: Session) -> dict:
    """
    Summarize the fleet's tours.

    Bus utilization is the share of buses currently on a started or
    in-progress tour.
    """
    statusCounts = dict(
        session.query(Tour.status, func.count(Tour.id)).group_by(Tour.status).all()
    )
    activeBuses = (
        session.query(func.count(func.distinct(Tour.bus_id)))
        .filter(Tour.status.in_([s.value for s in ACTIVE_TOUR_STATUS]))
        .scalar()
    )
    totalBuses = session.query(func.count(Bus.id)).scalar()
    busUtilization = roundHalfUp(activeBuses * 100 / totalBuses) if totalBuses else 0
    recentTours = (
        session.query(Tour)
        .order_by(Tour.created_on.desc(), Tour.id.desc())
        .limit(RECENT_TOUR_COUNT)
        .all()
    )
    return {
        "total_tours": sum(statusCounts.values()),
        "scheduled_tours": statusCounts.get(TourStatus.SCHEDULED.value, 0),
        "active_tours": sum(statusCounts.get(s.value, 0) for s in ACTIVE_TOUR_STATUS),
        "completed_tours": statusCounts.get(TourStatus.COMPLETED.value, 0),
        "cancelled_tours": statusCounts.get(TourStatus.CANCELLED.value, 0),
        "bus_utilization": busUtilization,
        "recent_tours": recentTours,
    }
