from datetime import datetime, timedelta, timezone

from app.src.enums import AppID


def tourForm(route, bus, driver, start):
    return {
        "route_id": route.id,
        "bus_id": bus.id,
        "driver_id": driver.id,
        "start_date_time": start.isoformat(),
        "end_date_time": (start + timedelta(hours=2)).isoformat(),
    }


def createTour(client, admin, route, bus, driver, start=None):
    start = start or datetime.now(timezone.utc) + timedelta(minutes=3)
    response = client.post(
        "/admin/tour", data=tourForm(route, bus, driver, start), headers=admin.headers
    )
    assert response.status_code == 201
    return response.json()


def arrive(client, driver, tourId, stopIndex, **kwargs):
    return client.post(
        "/driver/tour/progress",
        data={"tour_id": tourId, "stop_index": stopIndex, **kwargs},
        headers=driver.headers,
    )


def test_tour_lifecycle(client, admin, driver, route, bus, events, tourLocks):
    tour = createTour(client, admin, route, bus, driver)
    assert tour["status"] == "scheduled"
    assert tour["current_stop_index"] is None
    assert events[-1]["_app_id"] == AppID.ADMIN
    assert events[-1]["_account_id"] == admin.id

    # The driver is told about the assignment
    response = client.get("/driver/notification", headers=driver.headers)
    assert response.status_code == 200
    assert [n["type"] for n in response.json()] == ["tour_assigned"]
    assert "A → C" in response.json()[0]["message"]

    response = client.patch(
        "/driver/tour/start", data={"id": tour["id"]}, headers=driver.headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "started"

    response = arrive(client, driver, tour["id"], 0, stop_name="A", latitude=6.93, longitude=79.85)
    assert response.status_code == 201
    assert response.json()["stop_name"] == "A"
    assert response.json()["latitude"] == 6.93
    assert events[-1]["tour_status"] == "in-progress"
    assert tourLocks[-1] == f"lock:tour:{tour['id']}"

    # Skipping a stop and repeating a stop are both refused
    response = arrive(client, driver, tour["id"], 2)
    assert response.status_code == 406
    assert response.headers["X-Error"] == "OutOfSequence"
    response = arrive(client, driver, tour["id"], 0)
    assert response.status_code == 409
    assert response.headers["X-Error"] == "DuplicateCheckpoint"

    response = client.get(f"/public/tour/live/{tour['id']}")
    assert response.status_code == 200
    view = response.json()
    assert view["progress_percentage"] == 33
    assert view["current_location"] == "A"
    assert view["next_stop"] == "B"
    assert view["refresh_interval"] == 30
    assert [e["arrived"] for e in view["timeline"]] == [True, False, False]
    assert view["timeline"][0]["estimated_arrival"] == "Arrived"

    response = client.get("/public/tour/live")
    assert [v["tour"]["id"] for v in response.json()] == [tour["id"]]

    assert arrive(client, driver, tour["id"], 1).status_code == 201
    response = arrive(client, driver, tour["id"], 2)
    assert response.status_code == 201
    assert events[-1]["tour_status"] == "completed"

    response = client.get(
        "/admin/tour/progress", params={"tour_id": tour["id"]}, headers=admin.headers
    )
    assert [c["stop_index"] for c in response.json()] == [0, 1, 2]

    response = client.get(
        "/admin/tour/detail", params={"id": tour["id"]}, headers=admin.headers
    )
    detail = response.json()
    assert detail["tour"]["status"] == "completed"
    assert detail["tour"]["current_stop_index"] == 2
    assert detail["route"]["stops"] == ["A", "B", "C"]
    assert detail["driver"]["id"] == driver.id

    # Finished tours drop out of the live listing and can not be edited
    assert client.get("/public/tour/live").json() == []
    assert client.get(f"/public/tour/live/{tour['id']}").json()["progress_percentage"] == 100
    response = client.patch(
        "/admin/tour", data={"id": tour["id"], "is_weekly": True}, headers=admin.headers
    )
    assert response.status_code == 409
    assert response.headers["X-Error"] == "ResourceLocked"


def test_create_tour_validation(client, admin, driver, owner, route, bus):
    start = datetime.now(timezone.utc) + timedelta(hours=1)

    data = tourForm(route, bus, driver, start)
    data["end_date_time"] = start.isoformat()
    response = client.post("/admin/tour", data=data, headers=admin.headers)
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"

    data = tourForm(route, bus, driver, start)
    data["route_id"] = route.id + 100
    response = client.post("/admin/tour", data=data, headers=admin.headers)
    assert response.status_code == 404
    assert response.headers["X-Error"] == "DanglingReference"

    # Only driver accounts can be assigned
    data = tourForm(route, bus, owner, start)
    response = client.post("/admin/tour", data=data, headers=admin.headers)
    assert response.status_code == 406

    data = tourForm(route, bus, driver, start - timedelta(days=1))
    response = client.post("/admin/tour", data=data, headers=admin.headers)
    assert response.status_code == 406


def test_update_and_cancel_tour(client, admin, driver, route, bus):
    tour = createTour(client, admin, route, bus, driver)

    response = client.patch(
        "/admin/tour", data={"id": tour["id"], "is_weekly": True}, headers=admin.headers
    )
    assert response.status_code == 200
    assert response.json()["is_weekly"] is True

    response = client.get(
        "/driver/notification/unread/count", headers=driver.headers
    )
    assert response.json() == {"unread": 2}

    response = client.patch(
        "/admin/tour/cancel", data={"id": tour["id"]}, headers=admin.headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = client.patch(
        "/admin/tour/cancel", data={"id": tour["id"]}, headers=admin.headers
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"

    response = client.patch(
        "/driver/tour/start", data={"id": tour["id"]}, headers=driver.headers
    )
    assert response.status_code == 406


def test_start_outside_window(client, admin, driver, route, bus):
    start = datetime.now(timezone.utc) + timedelta(hours=2)
    tour = createTour(client, admin, route, bus, driver, start)

    response = client.patch(
        "/driver/tour/start", data={"id": tour["id"]}, headers=driver.headers
    )
    assert response.status_code == 406
    assert response.headers["X-Error"] == "OutsideStartWindow"


def test_delete_tour(client, admin, driver, route, bus):
    tour = createTour(client, admin, route, bus, driver)

    response = client.request(
        "DELETE", "/admin/tour", data={"id": tour["id"]}, headers=admin.headers
    )
    assert response.status_code == 204

    response = client.get(
        "/admin/tour/detail", params={"id": tour["id"]}, headers=admin.headers
    )
    assert response.status_code == 404
    assert response.headers["X-Error"] == "InvalidIdentifier"

    # Deleting again is not an error
    response = client.request(
        "DELETE", "/admin/tour", data={"id": tour["id"]}, headers=admin.headers
    )
    assert response.status_code == 204


def test_drivers_only_reach_their_own_tours(
    client, admin, driver, otherDriver, route, bus
):
    tour = createTour(client, admin, route, bus, driver)

    response = client.patch(
        "/driver/tour/start", data={"id": tour["id"]}, headers=otherDriver.headers
    )
    assert response.status_code == 403
    assert response.headers["X-Error"] == "NoPermission"

    response = arrive(client, otherDriver, tour["id"], 0)
    assert response.status_code == 403

    assert client.get("/driver/tour", headers=otherDriver.headers).json() == []
    response = client.get("/driver/tour", headers=driver.headers)
    assert [t["id"] for t in response.json()] == [tour["id"]]


def test_arrival_before_start_is_refused(client, admin, driver, route, bus):
    tour = createTour(client, admin, route, bus, driver)

    response = arrive(client, driver, tour["id"], 0)
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidStateTransition"


def test_arrival_with_wrong_stop_name(client, admin, driver, route, bus):
    tour = createTour(client, admin, route, bus, driver)
    client.patch("/driver/tour/start", data={"id": tour["id"]}, headers=driver.headers)

    response = arrive(client, driver, tour["id"], 0, stop_name="B")
    assert response.status_code == 406
    assert response.headers["X-Error"] == "InvalidValue"


def test_authentication(client, admin, driver, passenger, route, bus):
    response = client.get(
        "/admin/tour", headers={"Authorization": "Bearer not-a-token"}
    )
    assert response.status_code == 401
    assert response.headers["X-Error"] == "InvalidToken"

    response = client.get("/admin/tour", headers=driver.headers)
    assert response.status_code == 403
    assert response.headers["X-Error"] == "NoPermission"

    response = client.get("/driver/tour", headers=passenger.headers)
    assert response.status_code == 403


def test_list_tours(client, admin, driver, route, bus):
    now = datetime.now(timezone.utc)
    early = createTour(client, admin, route, bus, driver, now + timedelta(hours=1))
    late = createTour(client, admin, route, bus, driver, now + timedelta(hours=5))

    response = client.get("/admin/tour", headers=admin.headers)
    assert [t["id"] for t in response.json()] == [late["id"], early["id"]]

    response = client.get(
        "/admin/tour", params={"order_in": 1}, headers=admin.headers
    )
    assert [t["id"] for t in response.json()] == [early["id"], late["id"]]

    client.patch("/admin/tour/cancel", data={"id": late["id"]}, headers=admin.headers)
    response = client.get(
        "/admin/tour", params={"status": "cancelled"}, headers=admin.headers
    )
    assert [t["id"] for t in response.json()] == [late["id"]]

    response = client.get(
        "/admin/tour", params={"driver_id": driver.id, "limit": 1}, headers=admin.headers
    )
    assert len(response.json()) == 1


def test_tour_analytics(client, admin, driver, route, bus):
    tour = createTour(client, admin, route, bus, driver)
    createTour(client, admin, route, bus, driver)
    client.patch("/driver/tour/start", data={"id": tour["id"]}, headers=driver.headers)

    response = client.get("/admin/tour/analytics", headers=admin.headers)
    assert response.status_code == 200
    analytics = response.json()
    assert analytics["total_tours"] == 2
    assert analytics["scheduled_tours"] == 1
    assert analytics["active_tours"] == 1
    assert analytics["completed_tours"] == 0
    assert analytics["cancelled_tours"] == 0
    assert analytics["bus_utilization"] == 100
    assert len(analytics["recent_tours"]) == 2


def test_live_view_of_unknown_tour(client):
    response = client.get("/public/tour/live/999")
    assert response.status_code == 404
    assert response.headers["X-Error"] == "InvalidIdentifier"
