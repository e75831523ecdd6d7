import os
import tempfile

# Point the store at a throwaway SQLite file before the application is imported
os.environ["DB_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(), "tourbus.db")
os.environ["NOTIFICATION_SCHEDULER"] = "disabled"

import secrets
import pytest
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from app.main import app
from app.api import tour_progress
from app.src import openobserve
from app.src.enums import UserRole, TourStatus
from app.src.db import (
    engine,
    ORMbase,
    sessionMaker,
    Account,
    AccessToken,
    Route,
    Bus,
    Tour,
)


@pytest.fixture(autouse=True)
def database():
    ORMbase.metadata.create_all(engine)
    yield
    ORMbase.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def events(monkeypatch):
    shipped = []
    monkeypatch.setattr(openobserve, "logEvent", lambda eventData: shipped.append(eventData))
    return shipped


@pytest.fixture(autouse=True)
def tourLocks(monkeypatch):
    acquired = []

    def acquireLock(tableName, pk=None, **kwargs):
        acquired.append(f"lock:{tableName}:{pk}")
        return None

    monkeypatch.setattr(tour_progress, "acquireLock", acquireLock)
    monkeypatch.setattr(tour_progress, "releaseLock", lambda lock: None)
    return acquired


@pytest.fixture
def session():
    session = sessionMaker()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


def createAccount(session, role: UserRole, name: str):
    account = Account(role=role.value, display_name=name, email_id=f"{name}@tourbus.lk")
    session.add(account)
    session.flush()
    token = AccessToken(
        account_id=account.id,
        access_token=secrets.token_hex(32),
        expires_at=datetime.now(timezone.utc) + timedelta(days=1),
    )
    session.add(token)
    session.commit()
    return SimpleNamespace(
        id=account.id,
        account=account,
        headers={"Authorization": f"Bearer {token.access_token}"},
    )


def createTour(session, route, bus, driver, start: datetime, **kwargs):
    fields = dict(
        route_id=route.id,
        bus_id=bus.id,
        driver_id=driver.id,
        start_date_time=start,
        end_date_time=start + timedelta(hours=1),
        status=TourStatus.SCHEDULED.value,
    )
    fields.update(kwargs)
    tour = Tour(**fields)
    session.add(tour)
    session.commit()
    return tour


@pytest.fixture
def admin(session):
    return createAccount(session, UserRole.ADMIN, "admin")


@pytest.fixture
def driver(session):
    return createAccount(session, UserRole.DRIVER, "driver")


@pytest.fixture
def otherDriver(session):
    return createAccount(session, UserRole.DRIVER, "relief-driver")


@pytest.fixture
def owner(session):
    return createAccount(session, UserRole.OWNER, "owner")


@pytest.fixture
def passenger(session):
    return createAccount(session, UserRole.PASSENGER, "passenger")


@pytest.fixture
def otherPassenger(session):
    return createAccount(session, UserRole.PASSENGER, "other-passenger")


@pytest.fixture
def route(session):
    route = Route(start="A", end="C", fare=1000, stops=["A", "B", "C"])
    session.add(route)
    session.commit()
    return route


@pytest.fixture
def bus(session, route, driver, owner):
    bus = Bus(route_id=route.id, driver_id=driver.id, owner_id=owner.id, seats=40)
    session.add(bus)
    session.commit()
    return bus


@pytest.fixture
def makeTour(session, route, bus, driver):
    def make(start: datetime, **kwargs):
        return createTour(session, route, bus, driver, start, **kwargs)

    return make
