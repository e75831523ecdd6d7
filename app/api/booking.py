from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_driver, bearer_passenger
from app.src.db import sessionMaker, Booking
from app.src import exceptions, validators, getters, ledger
from app.src.loggers import logEvent
from app.src.functions import makeExceptionResponses
from app.src.urls import URL_BOOKING, URL_BOOKING_CANCEL

route_passenger = APIRouter()
route_driver = APIRouter()


## Output Schema
class BookingSchema(BaseModel):
    id: int
    account_id: int
    bus_id: int
    seats: List[int]
    travel_date: str
    fare: float
    status: str
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    bus_id: int = Field(Form())
    seats: List[int] = Field(Form(description="Seat numbers, 1 to the bus capacity"))
    travel_date: date = Field(Form())
    card_last4: str | None = Field(Form(pattern=r"^\d{4}$", default=None))


class CancelForm(BaseModel):
    id: int = Field(Form())


## API endpoints [Passenger]
@route_passenger.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.DanglingReference(Booking.bus_id),
            exceptions.MissingParameter(Booking.seats),
            exceptions.InvalidValue(Booking.seats),
        ]
    ),
    description="""
    Books seats on a bus for a travel date.
    The bus and its route must exist, seat numbers must be unique and within the bus capacity.
    The fare is the route fare times the number of seats.
    The simulated card payment and the owner's earning are recorded together with the booking.
    Seats are not checked against other bookings of the same bus and date.
    Logs the booking activity with the associated token.
    """,
)
async def create_booking(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_passenger),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.passengerToken(bearer.credentials, session)

        booking = ledger.createBooking(
            session,
            token.account_id,
            fParam.bus_id,
            fParam.seats,
            fParam.travel_date,
            fParam.card_last4,
        )
        session.commit()
        session.refresh(booking)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_passenger.patch(
    URL_BOOKING_CANCEL,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=makeExceptionResponses(
        [
            exceptions.InvalidToken,
            exceptions.NoPermission,
            exceptions.InvalidIdentifier,
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Cancels a confirmed booking of the calling passenger.
    The seats are not released to any pool and the owner's earning is kept.
    Logs the cancellation activity with the associated token.
    """,
)
async def cancel_booking(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_passenger),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.passengerToken(bearer.credentials, session)

        booking = session.query(Booking).filter(Booking.id == fParam.id).first()
        if booking is None:
            raise exceptions.InvalidIdentifier()

        ledger.cancelBooking(session, booking, token.account_id)
        session.commit()
        session.refresh(booking)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_passenger.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches the bookings of the calling passenger, newest first.
    """,
)
async def fetch_own_bookings(bearer=Depends(bearer_passenger)):
    try:
        session = sessionMaker()
        token = validators.passengerToken(bearer.credentials, session)

        return ledger.passengerBookings(session, token.account_id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Driver]
@route_driver.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Fetches the confirmed bookings of the bus driven by the calling driver.
    Optionally restricted to a single travel date.
    """,
)
async def fetch_bus_bookings(
    travel_date: date | None = Query(default=None),
    bearer=Depends(bearer_driver),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        bus = getters.driverBus(token.account_id, session)
        if bus is None:
            raise exceptions.InvalidIdentifier()
        return ledger.busBookings(session, bus.id, travel_date)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
