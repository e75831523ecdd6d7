"""
Bookings and the owner earnings derived from them.

A booking, its simulated payment and the owner's share are written in the
same transaction. Earnings are never recalculated afterwards, cancelling a
booking leaves its earning row as it was.

Seats are not reserved against other bookings, two confirmed bookings may
hold the same seat of the same bus on the same date.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm.session import Session

from app.src.db import Booking, Bus, OwnerEarning, Payment, Route
from app.src.constants import CURRENCY, OWNER_EARNING_PERCENTAGE
from app.src.enums import BookingStatus, PaymentMethod, PaymentStatus
from app.src import exceptions, validators, getters
from app.src.functions import roundHalfUp


BOOKING_STATUS_TRANSITION = {
    BookingStatus.CONFIRMED: [BookingStatus.CANCELLED],
    BookingStatus.CANCELLED: [],
}


def ownerShare(grossFare: Decimal | float, percentage: int) -> int:
    """
    Owner's rounded share of a gross fare.

    Example:
        >>> ownerShare(2000, 10)
        200
    """
    return roundHalfUp(Decimal(str(grossFare)) * percentage / 100)


def validateSeats(seats: List[int], bus: Bus) -> List[int]:
    """
    Check the requested seat numbers against the bus.

    Raises:
        exceptions.MissingParameter: No seat requested.
        exceptions.InvalidValue: A seat is repeated or outside 1..bus.seats.
    """
    if not seats:
        raise exceptions.MissingParameter(Booking.seats)
    if len(set(seats)) != len(seats):
        raise exceptions.InvalidValue(Booking.seats)
    for seat in seats:
        if seat < 1 or seat > bus.seats:
            raise exceptions.InvalidValue(Booking.seats)
    return sorted(seats)


def recordOwnerEarning(
    session: Session,
    booking: Booking,
    bus: Bus,
    route: Route,
    percentage: int = OWNER_EARNING_PERCENTAGE,
) -> OwnerEarning:
    earning = OwnerEarning(
        owner_id=bus.owner_id,
        bus_id=bus.id,
        booking_id=booking.id,
        route=getters.routeLabel(route),
        travel_date=booking.travel_date,
        seat_count=len(booking.seats),
        gross_fare=booking.fare,
        percentage=percentage,
        amount=ownerShare(booking.fare, percentage),
    )
    session.add(earning)
    return earning


def recordPayment(
    session: Session,
    booking: Booking,
    bus: Bus,
    cardLast4: Optional[str] = None,
) -> Payment:
    payment = Payment(
        booking_id=booking.id,
        account_id=booking.account_id,
        bus_id=bus.id,
        route_id=bus.route_id,
        amount=booking.fare,
        currency=CURRENCY,
        method=PaymentMethod.CARD.value,
        status=PaymentStatus.SUCCEEDED.value,
        card_last4=cardLast4,
    )
    session.add(payment)
    return payment


def createBooking(
    session: Session,
    accountId: int,
    busId: int,
    seats: List[int],
    travelDate: date,
    cardLast4: Optional[str] = None,
) -> Booking:
    """
    Book seats on a bus and record the payment and the owner's earning.

    The gross fare is the route fare times the number of seats. Nothing is
    committed, the caller commits the three records together.

    Raises:
        exceptions.DanglingReference: The bus or its route does not exist.
        exceptions.MissingParameter, exceptions.InvalidValue: Bad seat list.
    """
    bus = validators.existingBus(busId, session, Booking.bus_id)
    route = validators.existingRoute(bus.route_id, session, Bus.route_id)
    seats = validateSeats(seats, bus)

    booking = Booking(
        account_id=accountId,
        bus_id=bus.id,
        seats=seats,
        travel_date=travelDate.isoformat(),
        fare=Decimal(str(route.fare)) * len(seats),
        status=BookingStatus.CONFIRMED.value,
    )
    session.add(booking)
    session.flush()

    recordPayment(session, booking, bus, cardLast4)
    recordOwnerEarning(session, booking, bus, route)
    session.flush()
    return booking


def cancelBooking(session: Session, booking: Booking, accountId: int) -> Booking:
    """
    Cancel a confirmed booking of the calling passenger.

    Raises:
        exceptions.NoPermission: The booking belongs to someone else.
        exceptions.InvalidStateTransition: The booking is already cancelled.
    """
    if booking.account_id != accountId:
        raise exceptions.NoPermission()
    validators.stateTransition(
        BOOKING_STATUS_TRANSITION,
        BookingStatus(booking.status),
        BookingStatus.CANCELLED,
        Booking.status,
    )
    booking.status = BookingStatus.CANCELLED.value
    session.flush()
    return booking


def passengerBookings(session: Session, accountId: int) -> List[Booking]:
    return (
        session.query(Booking)
        .filter(Booking.account_id == accountId)
        .order_by(Booking.created_on.desc(), Booking.id.desc())
        .all()
    )


def busBookings(
    session: Session, busId: int, travelDate: Optional[date] = None
) -> List[Booking]:
    """Confirmed bookings of a bus, optionally for a single travel date."""
    query = (
        session.query(Booking)
        .filter(Booking.bus_id == busId)
        .filter(Booking.status == BookingStatus.CONFIRMED.value)
    )
    if travelDate is not None:
        query = query.filter(Booking.travel_date == travelDate.isoformat())
    return query.order_by(Booking.travel_date.asc(), Booking.id.asc()).all()


def ownerEarnings(session: Session, ownerId: int) -> List[OwnerEarning]:
    return (
        session.query(OwnerEarning)
        .filter(OwnerEarning.owner_id == ownerId)
        .order_by(OwnerEarning.created_on.desc(), OwnerEarning.id.desc())
        .all()
    )


def totalEarnings(session: Session, ownerId: int) -> Decimal:
    total = (
        session.query(func.sum(OwnerEarning.amount))
        .filter(OwnerEarning.owner_id == ownerId)
        .scalar()
    )
    return total if total is not None else Decimal(0)
