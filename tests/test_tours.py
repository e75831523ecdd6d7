import pytest
from datetime import datetime, timedelta, timezone

from app.src import exceptions, tours, tracker, progress
from app.src.db import Bus, DriverNotification, Tour, TourProgress
from app.src.enums import TourStatus, NotificationType

UTC = timezone.utc
T_09_00 = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
T_10_00 = datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
T_11_00 = datetime(2025, 1, 1, 11, 0, tzinfo=UTC)


def at(hour, minute):
    return datetime(2025, 1, 1, hour, minute, tzinfo=UTC)


def tourFields(route, bus, driver, **overrides):
    fields = dict(
        route_id=route.id,
        bus_id=bus.id,
        driver_id=driver.id,
        start_date_time=T_10_00,
        end_date_time=T_11_00,
        is_weekly=False,
    )
    fields.update(overrides)
    return tours.TourFields(**fields)


@pytest.fixture
def tour(session, route, bus, driver):
    tour = tours.createTour(session, tourFields(route, bus, driver), now=T_09_00)
    session.commit()
    return tour


def startedTour(session, tour):
    tours.startTour(session, tour, now=at(9, 58))
    session.commit()
    return tour


# Creation
def test_create_tour_is_scheduled_and_notifies_driver(session, tour, driver):
    assert tour.id is not None
    assert tour.status == TourStatus.SCHEDULED
    assert tour.current_stop_index is None

    notification = session.query(DriverNotification).one()
    assert notification.driver_id == driver.id
    assert notification.tour_id == tour.id
    assert notification.type == NotificationType.TOUR_ASSIGNED
    assert notification.message == (
        "You have been assigned a new tour: A → C on 2025-01-01"
    )


def test_create_tour_rejects_end_before_start(session, route, bus, driver):
    fields = tourFields(route, bus, driver, end_date_time=at(9, 30))
    with pytest.raises(exceptions.InvalidValue):
        tours.createTour(session, fields, now=T_09_00)


def test_create_tour_rejects_start_in_the_past(session, route, bus, driver):
    with pytest.raises(exceptions.InvalidValue):
        tours.createTour(session, tourFields(route, bus, driver), now=at(10, 1))


def test_create_tour_rejects_missing_fields(session, route, bus, driver):
    fields = tourFields(route, bus, driver, bus_id=None)
    with pytest.raises(exceptions.MissingParameter):
        tours.createTour(session, fields, now=T_09_00)


def test_create_tour_rejects_dangling_references(session, route, bus, driver):
    with pytest.raises(exceptions.DanglingReference):
        tours.createTour(
            session, tourFields(route, bus, driver, route_id=999), now=T_09_00
        )
    with pytest.raises(exceptions.DanglingReference):
        tours.createTour(
            session, tourFields(route, bus, driver, bus_id=999), now=T_09_00
        )


def test_create_tour_requires_a_driver_account(session, route, bus, driver, owner):
    with pytest.raises(exceptions.InvalidValue):
        tours.createTour(
            session, tourFields(route, bus, driver, driver_id=owner.id), now=T_09_00
        )


def test_naive_datetimes_are_taken_as_utc(session, route, bus, driver):
    fields = tourFields(
        route,
        bus,
        driver,
        start_date_time=datetime(2025, 1, 1, 10, 0),
        end_date_time=datetime(2025, 1, 1, 11, 0),
    )
    tour = tours.createTour(session, fields, now=T_09_00)
    assert tour.start_date_time == T_10_00


# Updates
def test_update_scheduled_tour_notifies_driver(session, tour):
    changed = tours.updateTour(
        session, tour, tours.TourFields(end_date_time=at(11, 30), is_weekly=True)
    )
    session.commit()

    assert changed is True
    assert tour.end_date_time == at(11, 30)
    assert tour.is_weekly is True
    types = [n.type for n in session.query(DriverNotification).all()]
    assert types == [NotificationType.TOUR_ASSIGNED, NotificationType.TOUR_UPDATED]


def test_update_without_changes_is_silent(session, tour):
    changed = tours.updateTour(session, tour, tours.TourFields(start_date_time=T_10_00))
    assert changed is False
    assert session.query(DriverNotification).count() == 1


def test_update_checks_merged_time_window(session, tour):
    with pytest.raises(exceptions.InvalidValue):
        tours.updateTour(session, tour, tours.TourFields(start_date_time=at(11, 30)))


def test_update_does_not_recheck_start_in_the_past(session, tour):
    # Moving the start earlier than "now" is allowed once the tour exists
    changed = tours.updateTour(
        session, tour, tours.TourFields(start_date_time=datetime(2020, 1, 1, tzinfo=UTC))
    )
    assert changed is True


def test_only_scheduled_tours_can_be_updated(session, tour):
    startedTour(session, tour)
    with pytest.raises(exceptions.ResourceLocked):
        tours.updateTour(session, tour, tours.TourFields(is_weekly=True))


# Start window
@pytest.mark.parametrize(
    "now", [at(9, 55), at(9, 58), at(10, 0), at(10, 30)], ids=str
)
def test_start_inside_window(session, tour, now):
    tours.startTour(session, tour, now=now)
    assert tour.status == TourStatus.STARTED


@pytest.mark.parametrize("now", [at(9, 54), at(10, 31), at(12, 0)], ids=str)
def test_start_outside_window(session, tour, now):
    with pytest.raises(exceptions.OutsideStartWindow):
        tours.startTour(session, tour, now=now)
    assert tour.status == TourStatus.SCHEDULED


@pytest.mark.parametrize(
    "early",
    [timedelta(minutes=5, seconds=1), timedelta(minutes=5, seconds=59)],
    ids=str,
)
def test_start_window_counts_partial_minutes(session, tour, early):
    with pytest.raises(exceptions.OutsideStartWindow):
        tours.startTour(session, tour, now=T_10_00 - early)
    assert tour.status == TourStatus.SCHEDULED


def test_start_late_bound_counts_partial_minutes(session, tour):
    with pytest.raises(exceptions.OutsideStartWindow):
        tours.startTour(session, tour, now=T_10_00 + timedelta(minutes=30, seconds=1))


def test_start_window_is_configurable(session, tour):
    tours.startTour(session, tour, now=at(9, 30), earlyWindow=30)
    assert tour.status == TourStatus.STARTED


# Transition guard
def test_start_requires_scheduled_tour(session, tour):
    startedTour(session, tour)
    with pytest.raises(exceptions.InvalidStateTransition) as error:
        tours.startTour(session, tour, now=at(9, 59))
    assert "'started' to 'started'" in error.value.detail


def test_cancel_only_from_scheduled(session, tour):
    tours.cancelTour(session, tour)
    assert tour.status == TourStatus.CANCELLED

    with pytest.raises(exceptions.InvalidStateTransition):
        tours.cancelTour(session, tour)
    with pytest.raises(exceptions.InvalidStateTransition):
        tours.startTour(session, tour, now=at(9, 59))


def test_running_tour_can_not_be_cancelled(session, tour):
    startedTour(session, tour)
    with pytest.raises(exceptions.InvalidStateTransition):
        tours.cancelTour(session, tour)


def test_arrival_requires_running_tour(session, tour):
    with pytest.raises(exceptions.InvalidStateTransition):
        tours.recordStopArrival(session, tour, 0, now=at(10, 10))
    assert progress.countProgress(session, tour.id) == 0


# Stop arrivals
def test_complete_tour_walkthrough(session, tour):
    startedTour(session, tour)
    assert tour.status == TourStatus.STARTED

    tours.recordStopArrival(session, tour, 0, "A", now=at(10, 10))
    session.commit()
    assert tour.status == TourStatus.IN_PROGRESS
    assert tour.current_stop_index == 0
    assert tracker.progressPercentage(progress.countProgress(session, tour.id), 3) == 33

    tours.recordStopArrival(session, tour, 1, "B", now=at(10, 30))
    session.commit()
    assert tour.status == TourStatus.IN_PROGRESS
    assert tour.current_stop_index == 1
    assert tracker.progressPercentage(progress.countProgress(session, tour.id), 3) == 67

    tours.recordStopArrival(session, tour, 2, "C", now=at(10, 50))
    session.commit()
    assert tour.current_stop_index == 2
    assert tracker.progressPercentage(progress.countProgress(session, tour.id), 3) == 100
    assert tour.status == TourStatus.COMPLETED


def test_skipping_a_stop_is_rejected(session, tour):
    startedTour(session, tour)
    tours.recordStopArrival(session, tour, 0, "A", now=at(10, 10))
    session.commit()

    with pytest.raises(exceptions.OutOfSequence):
        tours.recordStopArrival(session, tour, 2, "C", now=at(10, 20))

    checkpoints = progress.listProgress(session, tour.id)
    assert [c.stop_name for c in checkpoints] == ["A"]
    assert tour.current_stop_index == 0


def test_repeated_arrival_is_rejected(session, tour):
    startedTour(session, tour)
    tours.recordStopArrival(session, tour, 0, now=at(10, 10))
    session.commit()

    with pytest.raises(exceptions.DuplicateCheckpoint):
        tours.recordStopArrival(session, tour, 0, now=at(10, 11))


def test_stop_name_defaults_to_route_stop(session, tour):
    startedTour(session, tour)
    checkpoint = tours.recordStopArrival(session, tour, 0, now=at(10, 10))
    assert checkpoint.stop_name == "A"


def test_stop_name_must_match_route(session, tour):
    startedTour(session, tour)
    with pytest.raises(exceptions.InvalidValue):
        tours.recordStopArrival(session, tour, 0, "B", now=at(10, 10))


def test_completed_tour_rejects_arrivals(session, tour):
    startedTour(session, tour)
    for index, minute in enumerate([10, 30, 50]):
        tours.recordStopArrival(session, tour, index, now=at(10, minute))
        session.commit()
    assert tour.status == TourStatus.COMPLETED

    with pytest.raises(exceptions.InvalidStateTransition):
        tours.recordStopArrival(session, tour, 3, now=at(10, 55))
    assert progress.countProgress(session, tour.id) == 3


def test_arrival_on_tour_with_deleted_route(session, tour, route):
    startedTour(session, tour)
    session.delete(route)
    session.commit()
    with pytest.raises(exceptions.DanglingReference):
        tours.recordStopArrival(session, tour, 0, now=at(10, 10))


def test_complete_tour_is_idempotent(session, tour):
    startedTour(session, tour)
    tours.recordStopArrival(session, tour, 0, now=at(10, 10))
    tours.completeTour(session, tour)
    tours.completeTour(session, tour)
    assert tour.status == TourStatus.COMPLETED


def test_complete_requires_progress(session, tour):
    with pytest.raises(exceptions.InvalidStateTransition):
        tours.completeTour(session, tour)


# Repository
def test_delete_tour_keeps_checkpoints(session, tour):
    startedTour(session, tour)
    tours.recordStopArrival(session, tour, 0, now=at(10, 10))
    session.commit()

    tours.deleteTour(session, tour)
    session.commit()
    assert session.query(Tour).count() == 0
    assert session.query(TourProgress).count() == 1
    assert session.query(DriverNotification).count() == 1


def test_tour_detail_reports_dangling_references(session, tour, route, bus):
    session.delete(route)
    session.commit()

    detail = tours.tourDetail(session, tour)
    assert detail["tour"] is tour
    assert detail["route"] is None
    assert detail["bus"] is bus
    assert detail["driver"].id == tour.driver_id


def test_get_tour_unknown_id(session):
    with pytest.raises(exceptions.InvalidIdentifier):
        tours.getTour(session, 404)


def test_search_tours_filters(session, route, bus, driver, otherDriver, makeTour):
    first = makeTour(T_10_00)
    second = makeTour(at(12, 0), status=TourStatus.STARTED.value)
    third = makeTour(at(14, 0), driver_id=otherDriver.id)

    found = tours.searchTours(session, tours.TourSearch(driver_id=driver.id))
    assert [t.id for t in found] == [second.id, first.id]

    found = tours.searchTours(
        session, tours.TourSearch(status=TourStatus.SCHEDULED, order_in=1)
    )
    assert [t.id for t in found] == [first.id, third.id]

    found = tours.searchTours(
        session, tours.TourSearch(start_date_time_ge=at(11, 0), limit=1, order_in=1)
    )
    assert [t.id for t in found] == [second.id]


def test_tour_analytics(session, route, bus, driver, owner, makeTour):
    idleBus = Bus(route_id=route.id, driver_id=driver.id, owner_id=owner.id, seats=20)
    session.add(idleBus)
    session.commit()

    makeTour(T_10_00)
    makeTour(at(11, 0), status=TourStatus.STARTED.value)
    makeTour(at(12, 0), status=TourStatus.IN_PROGRESS.value)
    makeTour(at(13, 0), status=TourStatus.COMPLETED.value)
    makeTour(at(14, 0), status=TourStatus.CANCELLED.value)
    makeTour(at(15, 0))

    summary = tours.tourAnalytics(session)
    assert summary["total_tours"] == 6
    assert summary["scheduled_tours"] == 2
    assert summary["active_tours"] == 2
    assert summary["completed_tours"] == 1
    assert summary["cancelled_tours"] == 1
    # One of the two buses is on an active tour
    assert summary["bus_utilization"] == 50
    assert len(summary["recent_tours"]) == 5


def test_tour_analytics_without_buses(session):
    summary = tours.tourAnalytics(session)
    assert summary["total_tours"] == 0
    assert summary["bus_utilization"] == 0
    assert summary["recent_tours"] == []
