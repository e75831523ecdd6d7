import time
import logging
import threading
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone

from app.src.db import sessionMaker, Tour, DriverNotification
from app.src.enums import TourStatus, NotificationType
from app.src.constants import NOTIFICATION_CHECK_INTERVAL, NOTIFICATION_LEAD_TIME
from app.src.functions import minutesUntil
from app.src import getters


logger = logging.getLogger("Scheduler")


def upcomingTours(session: Session, now: datetime, leadTime: int) -> List[Tour]:
    """Scheduled tours whose start lies exactly `leadTime` whole minutes ahead."""
    windowStart = now + timedelta(minutes=leadTime)
    windowEnd = windowStart + timedelta(minutes=1)
    tours = (
        session.query(Tour)
        .filter(Tour.status == TourStatus.SCHEDULED.value)
        .filter(Tour.start_date_time >= windowStart)
        .filter(Tour.start_date_time < windowEnd)
        .all()
    )
    return [
        tour for tour in tours if minutesUntil(tour.start_date_time, now) == leadTime
    ]


def startingSoonNotification(
    session: Session, tour: Tour, leadTime: int
) -> DriverNotification:
    route = getters.route(tour.route_id, session)
    return DriverNotification(
        driver_id=tour.driver_id,
        tour_id=tour.id,
        type=NotificationType.TOUR_STARTING_SOON.value,
        title="Tour Starting Soon",
        message=f"Your tour {getters.routeLabel(route)} starts in {leadTime} minutes. "
        "Please prepare to begin.",
    )


class NotificationScheduler:
    """
    Background loop warning drivers shortly before their tours start.

    Every `interval` seconds the scheduled tours are scanned and a
    `tour_starting_soon` notification is written for each tour starting in
    exactly `leadTime` minutes. A tick that fails is logged and skipped, the
    tours it would have notified are not retried.

    Nothing runs until `start()` is called. Only one instance per deployment
    should be started, every running instance emits its own notifications.
    """

    def __init__(
        self,
        sessionFactory: Callable[[], Session] = sessionMaker,
        interval: float = NOTIFICATION_CHECK_INTERVAL,
        leadTime: int = NOTIFICATION_LEAD_TIME,
    ):
        self.sessionFactory = sessionFactory
        self.interval = interval
        self.leadTime = leadTime
        self._thread: Optional[threading.Thread] = None
        self._stopEvent = threading.Event()

    def isRunning(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop in a daemon thread. No-op when already running."""
        if self.isRunning():
            return
        # A loop left behind by a timed out stop keeps its own, already set event
        self._stopEvent = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stopEvent,),
            name="NotificationScheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("Notification scheduler started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the loop and wait for the running tick to finish."""
        if self._thread is None:
            return
        self._stopEvent.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Notification scheduler stopped")

    def _run(self, stopEvent: threading.Event) -> None:
        while not stopEvent.is_set():
            self.tick()
            stopEvent.wait(self.interval)

    def tick(self, now: Optional[datetime] = None) -> int:
        """Run one scan, swallowing and logging its failure."""
        try:
            return self.checkUpcomingTours(now)
        except Exception:
            logger.exception("Notification scheduler tick failed")
            return 0

    def checkUpcomingTours(self, now: Optional[datetime] = None) -> int:
        """
        Scan once and emit the due notifications.

        Returns:
            int: Number of notifications written.
        """
        now = now if now is not None else datetime.now(timezone.utc)
        session = self.sessionFactory()
        try:
            emitted = 0
            for tour in upcomingTours(session, now, self.leadTime):
                session.add(startingSoonNotification(session, tour, self.leadTime))
                emitted += 1
                logger.info(
                    f"Starting soon notification for tour {tour.id} "
                    f"to driver {tour.driver_id}"
                )
            session.commit()
            return emitted
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def main():
    logging.basicConfig(level=logging.INFO)
    scheduler = NotificationScheduler()
    try:
        scheduler.start()
        while scheduler.isRunning():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
