from fastapi import FastAPI
from app.api import (
    account,
    route,
    bus,
    tour,
    tour_progress,
    driver_notification,
    live_tracker,
    booking,
    owner_earning,
    alert,
)
from app.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_admin = FastAPI(title="Admin APP")
app_driver = FastAPI(title="Driver APP")
app_owner = FastAPI(title="Owner APP")
app_passenger = FastAPI(title="Passenger APP")
app_public = FastAPI(title="Public APP")

# Tag each app with its AppID
app_admin.state.id = AppID.ADMIN
app_driver.state.id = AppID.DRIVER
app_owner.state.id = AppID.OWNER
app_passenger.state.id = AppID.PASSENGER
app_public.state.id = AppID.PUBLIC


# ------------------------------------------------------
# Admin routers
# ------------------------------------------------------
app_admin.include_router(account.route_admin)
app_admin.include_router(route.route_admin)
app_admin.include_router(bus.route_admin)
app_admin.include_router(tour.route_admin)
app_admin.include_router(tour_progress.route_admin)
app_admin.include_router(alert.route_admin)


# ------------------------------------------------------
# Driver routers
# ------------------------------------------------------
app_driver.include_router(bus.route_driver)
app_driver.include_router(tour.route_driver)
app_driver.include_router(tour_progress.route_driver)
app_driver.include_router(driver_notification.route_driver)
app_driver.include_router(booking.route_driver)
app_driver.include_router(alert.route_driver)


# ------------------------------------------------------
# Owner routers
# ------------------------------------------------------
app_owner.include_router(bus.route_owner)
app_owner.include_router(owner_earning.route_owner)


# ------------------------------------------------------
# Passenger routers
# ------------------------------------------------------
app_passenger.include_router(booking.route_passenger)


# ------------------------------------------------------
# Public routers
# ------------------------------------------------------
app_public.include_router(route.route_public)
app_public.include_router(live_tracker.route_public)
