import logging
import threading
import pytest
from datetime import datetime, timedelta, timezone

from app.src.db import DriverNotification
from app.src.enums import NotificationType, TourStatus
from app.src.scheduler import NotificationScheduler, upcomingTours

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def notifications(session):
    session.expire_all()
    return (
        session.query(DriverNotification)
        .filter(DriverNotification.type == NotificationType.TOUR_STARTING_SOON.value)
        .all()
    )


@pytest.fixture
def scheduler():
    return NotificationScheduler(interval=3600)


def test_notifies_tour_starting_in_five_minutes(session, scheduler, makeTour, driver):
    tour = makeTour(NOW + timedelta(minutes=5))

    assert scheduler.checkUpcomingTours(NOW) == 1

    sent = notifications(session)
    assert len(sent) == 1
    assert sent[0].driver_id == driver.id
    assert sent[0].tour_id == tour.id
    assert sent[0].title == "Tour Starting Soon"
    assert sent[0].message == (
        "Your tour A → C starts in 5 minutes. Please prepare to begin."
    )
    assert sent[0].is_read is False


@pytest.mark.parametrize("offset", [timedelta(minutes=5, seconds=30), timedelta(minutes=5, seconds=59)])
def test_partial_minutes_are_floored(session, scheduler, makeTour, offset):
    makeTour(NOW + offset)
    assert scheduler.checkUpcomingTours(NOW) == 1


@pytest.mark.parametrize(
    "offset",
    [
        timedelta(minutes=4, seconds=59),
        timedelta(minutes=6),
        timedelta(minutes=30),
        timedelta(minutes=-5),
    ],
)
def test_ignores_tours_outside_the_lead_minute(session, scheduler, makeTour, offset):
    makeTour(NOW + offset)
    assert scheduler.checkUpcomingTours(NOW) == 0
    assert notifications(session) == []


def test_one_notification_per_tour_across_ticks(session, scheduler, makeTour):
    makeTour(NOW + timedelta(minutes=6, seconds=10))

    emitted = 0
    for minute in range(10):
        emitted += scheduler.checkUpcomingTours(NOW + timedelta(minutes=minute))
    assert emitted == 1
    assert len(notifications(session)) == 1


def test_only_scheduled_tours_are_notified(session, scheduler, makeTour):
    makeTour(NOW + timedelta(minutes=5), status=TourStatus.STARTED.value)
    makeTour(NOW + timedelta(minutes=5), status=TourStatus.CANCELLED.value)
    assert scheduler.checkUpcomingTours(NOW) == 0


def test_upcoming_tours(session, makeTour):
    due = makeTour(NOW + timedelta(minutes=10))
    makeTour(NOW + timedelta(minutes=5))

    assert [tour.id for tour in upcomingTours(session, NOW, 10)] == [due.id]


def test_custom_lead_time(session, makeTour):
    makeTour(NOW + timedelta(minutes=15))
    scheduler = NotificationScheduler(interval=3600, leadTime=15)

    assert scheduler.checkUpcomingTours(NOW) == 1
    assert "starts in 15 minutes" in notifications(session)[0].message


def test_failed_tick_is_logged_and_skipped(caplog):
    def brokenFactory():
        raise RuntimeError("store unavailable")

    scheduler = NotificationScheduler(sessionFactory=brokenFactory, interval=3600)
    with caplog.at_level(logging.ERROR, logger="Scheduler"):
        assert scheduler.tick(NOW) == 0
    assert "tick failed" in caplog.text


def test_start_and_stop(scheduler):
    assert not scheduler.isRunning()

    scheduler.start()
    try:
        assert scheduler.isRunning()
        # Starting twice keeps the single loop
        thread = scheduler._thread
        scheduler.start()
        assert scheduler._thread is thread
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.isRunning()
    # Stopping a stopped scheduler is harmless
    scheduler.stop()


def test_restart_after_timed_out_stop_runs_a_single_loop():
    entered = threading.Event()
    release = threading.Event()

    def slowFactory():
        entered.set()
        release.wait(5)
        raise RuntimeError("store unavailable")

    scheduler = NotificationScheduler(sessionFactory=slowFactory, interval=3600)
    scheduler.start()
    stale = scheduler._thread
    assert entered.wait(5)

    # The running tick outlives the stop timeout
    scheduler.stop(timeout=0.1)
    assert stale.is_alive()

    scheduler.start()
    fresh = scheduler._thread
    release.set()
    try:
        stale.join(5)
        assert not stale.is_alive()
        assert scheduler.isRunning()
    finally:
        scheduler.stop(timeout=5)
    assert not fresh.is_alive()
