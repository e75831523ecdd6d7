from app.src.db import DriverNotification
from app.src.enums import NotificationType


def bookingForm(bus, seats, travelDate="2025-01-01", **kwargs):
    return {"bus_id": bus.id, "seats": seats, "travel_date": travelDate, **kwargs}


def test_booking_and_earnings(client, passenger, owner, bus):
    response = client.post(
        "/passenger/booking",
        data=bookingForm(bus, [2, 1], card_last4="4242"),
        headers=passenger.headers,
    )
    assert response.status_code == 201
    booking = response.json()
    assert booking["seats"] == [1, 2]
    assert booking["fare"] == 2000
    assert booking["status"] == "confirmed"
    assert booking["account_id"] == passenger.id

    response = client.get("/owner/earning", headers=owner.headers)
    assert response.status_code == 200
    earnings = response.json()
    assert earnings["total"] == 200
    assert len(earnings["earnings"]) == 1
    assert earnings["earnings"][0]["route"] == "A → C"
    assert earnings["earnings"][0]["seat_count"] == 2
    assert earnings["earnings"][0]["percentage"] == 10

    response = client.patch(
        "/passenger/booking/cancel", data={"id": booking["id"]}, headers=passenger.headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    # The earning survives the cancellation
    assert client.get("/owner/earning", headers=owner.headers).json()["total"] == 200

    response = client.patch(
        "/passenger/booking/cancel", data={"id": booking["id"]}, headers=passenger.headers
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"


def test_booking_validation(client, passenger, bus):
    response = client.post(
        "/passenger/booking", data=bookingForm(bus, [1, 1]), headers=passenger.headers
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"

    response = client.post(
        "/passenger/booking", data=bookingForm(bus, [41]), headers=passenger.headers
    )
    assert response.status_code == 406

    data = bookingForm(bus, [1])
    data["bus_id"] = bus.id + 100
    response = client.post("/passenger/booking", data=data, headers=passenger.headers)
    assert response.status_code == 404
    assert response.headers["X-Error"] == "DanglingReference"

    response = client.post(
        "/passenger/booking",
        data=bookingForm(bus, [1], card_last4="42"),
        headers=passenger.headers,
    )
    assert response.status_code == 422


def test_passengers_cancel_only_their_bookings(client, passenger, otherPassenger, bus):
    booking = client.post(
        "/passenger/booking", data=bookingForm(bus, [1]), headers=passenger.headers
    ).json()

    response = client.patch(
        "/passenger/booking/cancel", data={"id": booking["id"]}, headers=otherPassenger.headers
    )
    assert response.status_code == 403
    assert client.get("/passenger/booking", headers=otherPassenger.headers).json() == []

    response = client.get("/passenger/booking", headers=passenger.headers)
    assert [b["id"] for b in response.json()] == [booking["id"]]


def test_driver_sees_bus_bookings(client, passenger, driver, otherDriver, bus):
    client.post("/passenger/booking", data=bookingForm(bus, [1]), headers=passenger.headers)
    client.post(
        "/passenger/booking",
        data=bookingForm(bus, [2], travelDate="2025-01-02"),
        headers=passenger.headers,
    )

    response = client.get("/driver/booking", headers=driver.headers)
    assert response.status_code == 200
    assert len(response.json()) == 2

    response = client.get(
        "/driver/booking", params={"travel_date": "2025-01-02"}, headers=driver.headers
    )
    assert [b["seats"] for b in response.json()] == [[2]]

    response = client.get("/driver/booking", headers=otherDriver.headers)
    assert response.status_code == 404


def test_notifications(client, session, driver, otherDriver):
    for tourId in (1, 2):
        session.add(
            DriverNotification(
                driver_id=driver.id,
                tour_id=tourId,
                type=NotificationType.TOUR_ASSIGNED.value,
                title="New Tour Assigned",
                message=f"Tour {tourId}",
            )
        )
    session.commit()

    response = client.get("/driver/notification", headers=driver.headers)
    notifications = response.json()
    assert [n["tour_id"] for n in notifications] == [2, 1]
    assert client.get(
        "/driver/notification/unread/count", headers=driver.headers
    ).json() == {"unread": 2}

    # Notifications of other drivers are out of reach
    response = client.patch(
        "/driver/notification/read",
        data={"id": notifications[0]["id"]},
        headers=otherDriver.headers,
    )
    assert response.status_code == 404

    response = client.patch(
        "/driver/notification/read",
        data={"id": notifications[0]["id"]},
        headers=driver.headers,
    )
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    response = client.get(
        "/driver/notification", params={"is_read": False}, headers=driver.headers
    )
    assert [n["tour_id"] for n in response.json()] == [1]

    response = client.patch("/driver/notification/read/all", headers=driver.headers)
    assert response.json() == {"updated": 1}
    assert client.get(
        "/driver/notification/unread/count", headers=driver.headers
    ).json() == {"unread": 0}


def test_alerts(client, admin, driver):
    response = client.post(
        "/driver/alert", data={"message": "Flat tyre near Kegalle"}, headers=driver.headers
    )
    assert response.status_code == 201
    alert = response.json()
    assert alert["driver_id"] == driver.id
    assert alert["resolved"] is False

    response = client.get(
        "/admin/alert", params={"resolved": False}, headers=admin.headers
    )
    assert [a["id"] for a in response.json()] == [alert["id"]]

    response = client.patch("/admin/alert", data={"id": alert["id"]}, headers=admin.headers)
    assert response.status_code == 200
    assert response.json()["resolved"] is True

    response = client.get(
        "/admin/alert", params={"resolved": False}, headers=admin.headers
    )
    assert response.json() == []

    response = client.patch("/admin/alert", data={"id": 999}, headers=admin.headers)
    assert response.status_code == 404
