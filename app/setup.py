import argparse
import secrets
from http import HTTPStatus
from requests import post
from datetime import datetime, timedelta, timezone

from app.src.enums import UserRole
from app.src.urls import URL_ROUTE, URL_BUS, URL_TOUR, URL_BOOKING
from app.src.db import (
    Account,
    AccessToken,
    sessionMaker,
    engine,
    ORMbase,
)

TOKEN_VALIDITY = timedelta(days=30)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def createAccount(session, role: UserRole, displayName: str, emailId: str):
    """Insert an account with a fresh access token, the way the identity provider would."""
    account = Account(role=role.value, display_name=displayName, email_id=emailId)
    session.add(account)
    session.flush()
    token = AccessToken(
        account_id=account.id,
        access_token=secrets.token_hex(32),
        expires_at=datetime.now(timezone.utc) + TOKEN_VALIDITY,
    )
    session.add(token)
    session.flush()
    return account, token


def initDB():
    session = sessionMaker()
    admin, token = createAccount(
        session, UserRole.ADMIN, "Tour bus admin", "admin@tourbus.lk"
    )
    session.commit()
    print(f"* Created admin account {admin.id}, token {token.access_token}")
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"

    # Accounts of every role
    session = sessionMaker()
    _, adminToken = createAccount(
        session, UserRole.ADMIN, "Test admin", "test.admin@tourbus.lk"
    )
    driver, driverToken = createAccount(
        session, UserRole.DRIVER, "Test driver", "test.driver@tourbus.lk"
    )
    owner, ownerToken = createAccount(
        session, UserRole.OWNER, "Test owner", "test.owner@tourbus.lk"
    )
    _, passengerToken = createAccount(
        session, UserRole.PASSENGER, "Test passenger", "test.passenger@tourbus.lk"
    )
    session.commit()
    session.close()
    print("* Created test accounts")
    print(f"  admin     {adminToken.access_token}")
    print(f"  driver    {driverToken.access_token}")
    print(f"  owner     {ownerToken.access_token}")
    print(f"  passenger {passengerToken.access_token}")
    accessToken = {"Authorization": f"Bearer {adminToken.access_token}"}

    # Create Route
    routeData = {
        "start": "Colombo",
        "end": "Kandy",
        "fare": 1000,
        "stops": ["Colombo", "Kadawatha", "Kegalle", "Kandy"],
    }
    route = POST(
        (BASE_URL + "/admin" + URL_ROUTE),
        header=accessToken,
        data=routeData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created route")

    # Create Bus
    busData = {
        "route_id": route.json()["id"],
        "driver_id": driver.id,
        "owner_id": owner.id,
        "seats": 40,
        "license_info": "NB-1234",
    }
    bus = POST(
        (BASE_URL + "/admin" + URL_BUS),
        header=accessToken,
        data=busData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created bus")

    # Create Tour, starting soon enough to be started right away
    startDateTime = datetime.now(timezone.utc) + timedelta(minutes=6)
    tourData = {
        "route_id": route.json()["id"],
        "bus_id": bus.json()["id"],
        "driver_id": driver.id,
        "start_date_time": startDateTime.isoformat(),
        "end_date_time": (startDateTime + timedelta(hours=3)).isoformat(),
        "is_weekly": False,
    }
    POST(
        (BASE_URL + "/admin" + URL_TOUR),
        header=accessToken,
        data=tourData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created tour")

    # Create Booking
    bookingData = {
        "bus_id": bus.json()["id"],
        "seats": [1, 2],
        "travel_date": startDateTime.date().isoformat(),
        "card_last4": "4242",
    }
    POST(
        (BASE_URL + "/passenger" + URL_BOOKING),
        header={"Authorization": f"Bearer {passengerToken.access_token}"},
        data=bookingData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created booking")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()
