from datetime import timezone
from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    TypeDecorator,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from app.src.constants import DB_URL, CURRENCY
from app.src.enums import (
    UserRole,
    TourStatus,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
)


# Global DBMS variables
engine = create_engine(url=DB_URL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()

JSONDocument = JSON().with_variant(JSONB, "postgresql")


class UTCDateTime(TypeDecorator):
    """
    Timezone aware timestamp which is always read back in UTC.

    PostgreSQL keeps the offset natively, SQLite drops it. Values are
    normalized to UTC on the way in and tagged as UTC on the way out so that
    comparisons against `datetime.now(timezone.utc)` work on both backends.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ----------------------------------- General DB Models ---------------------------------------#
class Account(ORMbase):
    """
    Represents a user profile mirrored from the external identity provider.

    Every person using the platform (passenger, driver, bus owner or
    administrator) has exactly one account. The role decides which
    sub-application the account may use.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        role (String(16)):
            Role of the account, one of `UserRole`.
            Defaults to `UserRole.PASSENGER`.

        display_name (String(64)):
            Optional human readable name.

        email_id (String(256)):
            Optional email address. Unique when present.

        phone_number (String(32)):
            Optional contact number.

        photo_url (TEXT):
            Optional link to a profile picture.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp indicating when the account was created.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    role = Column(String(16), nullable=False, default=UserRole.PASSENGER.value)
    display_name = Column(String(64))
    email_id = Column(String(256), unique=True)
    phone_number = Column(String(32))
    photo_url = Column(TEXT)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class AccessToken(ORMbase):
    """
    Session token issued by the external identity provider.

    The service never mints tokens, it only resolves an incoming bearer
    token to its account and checks the expiry.

    Columns:
        id (Integer):
            Primary key.

        account_id (Integer):
            Foreign key referencing `account.id`. Cascades on delete.

        access_token (String(64)):
            Opaque bearer token. Unique and indexed.

        expires_at (DateTime):
            Moment after which the token is rejected.

        created_on (DateTime):
            Timestamp indicating when the token was mirrored.
    """

    __tablename__ = "access_token"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer, ForeignKey("account.id", ondelete="CASCADE"), nullable=False
    )
    access_token = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(UTCDateTime, nullable=False)
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Route(ORMbase):
    """
    Represents a bus route with its ordered list of stops.

    The stop list is the ground truth against which tour progress
    checkpoints are validated: its length is the number of checkpoints a
    tour needs to complete, and its order is the only accepted arrival order.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the route.

        start (String(128)):
            Name of the departure town.

        end (String(128)):
            Name of the destination town.

        fare (Numeric):
            Fare of a single seat for the whole route. Must not be negative.

        stops (JSON):
            Ordered array of stop names.

        updated_on (DateTime):
            Timestamp automatically updated whenever the route is modified.

        created_on (DateTime):
            Timestamp indicating when the route was created.
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    start = Column(String(128), nullable=False)
    end = Column(String(128), nullable=False)
    fare = Column(Numeric(10, 2), nullable=False, default=0)
    stops = Column(JSONDocument, nullable=False, default=list)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Bus(ORMbase):
    """
    Represents a bus in the fleet.

    References to the route, driver and owner are plain identifiers, the
    store does not enforce them. They are checked when the bus is written
    and tolerated as unknown when read.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the bus.

        route_id (Integer):
            Optional identifier of the route the bus usually serves.

        driver_id (Integer):
            Identifier of the account driving the bus.

        owner_id (Integer):
            Identifier of the account owning the bus. Earnings are credited to it.

        seats (Integer):
            Seating capacity. Seat numbers run from 1 to `seats`.

        license_info (String(128)):
            Optional registration or license details.

        image_url (TEXT):
            Optional link to a picture of the bus.

        updated_on (DateTime):
            Timestamp automatically updated whenever the bus is modified.

        created_on (DateTime):
            Timestamp indicating when the bus was created.
    """

    __tablename__ = "bus"

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, index=True)
    driver_id = Column(Integer, nullable=False, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    seats = Column(Integer, nullable=False)
    license_info = Column(String(128))
    image_url = Column(TEXT)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Tour(ORMbase):
    """
    Represents a scheduled trip binding a route, a bus and a driver to a time window.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the tour.

        route_id (Integer):
            Identifier of the route travelled. Not enforced by the store.

        bus_id (Integer):
            Identifier of the bus used. Not enforced by the store.

        driver_id (Integer):
            Identifier of the driver account assigned. Not enforced by the store.

        start_date_time (DateTime):
            Scheduled departure. Must be before `end_date_time`.

        end_date_time (DateTime):
            Scheduled arrival.

        is_weekly (Boolean):
            Informational recurrence flag. No occurrences are generated from it.

        status (String(16)):
            Current lifecycle state, one of `TourStatus`.
            Defaults to `TourStatus.SCHEDULED`.

        current_stop_index (Integer):
            Index of the last stop reached. Null until the first checkpoint,
            afterwards always the number of checkpoints minus one.

        updated_on (DateTime):
            Timestamp automatically updated whenever the tour is modified.

        created_on (DateTime):
            Timestamp indicating when the tour was created.
    """

    __tablename__ = "tour"

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, nullable=False, index=True)
    bus_id = Column(Integer, nullable=False, index=True)
    driver_id = Column(Integer, nullable=False, index=True)
    start_date_time = Column(UTCDateTime, nullable=False)
    end_date_time = Column(UTCDateTime, nullable=False)
    is_weekly = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default=TourStatus.SCHEDULED.value)
    current_stop_index = Column(Integer)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class TourProgress(ORMbase):
    """
    Immutable record of a tour reaching one stop of its route.

    Checkpoints are written once and never updated. Deleting a tour does not
    remove them.

    Columns:
        id (Integer):
            Primary key.

        tour_id (Integer):
            Identifier of the owning tour.

        stop_index (Integer):
            0-based position of the stop in the route's stop list.
            Unique per tour.

        stop_name (String(128)):
            Copy of the stop name at the time of arrival.

        arrived_at (DateTime):
            Moment the driver reported the arrival.

        latitude (Float):
            Optional latitude of the bus at arrival.

        longitude (Float):
            Optional longitude of the bus at arrival.
    """

    __tablename__ = "tour_progress"
    __table_args__ = (UniqueConstraint("tour_id", "stop_index"),)

    id = Column(Integer, primary_key=True)
    tour_id = Column(Integer, nullable=False, index=True)
    stop_index = Column(Integer, nullable=False)
    stop_name = Column(String(128), nullable=False)
    arrived_at = Column(UTCDateTime, nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)


class DriverNotification(ORMbase):
    """
    One-shot message addressed to a driver.

    Columns:
        id (Integer):
            Primary key.

        driver_id (Integer):
            Identifier of the receiving driver account.

        tour_id (Integer):
            Identifier of the tour the message is about.

        type (String(32)):
            One of `NotificationType`.

        title (String(128)):
            Short headline.

        message (TEXT):
            Body text.

        is_read (Boolean):
            Whether the driver has read it. Defaults to false.

        created_on (DateTime):
            Timestamp indicating when the notification was emitted.
    """

    __tablename__ = "driver_notification"

    id = Column(Integer, primary_key=True)
    driver_id = Column(Integer, nullable=False, index=True)
    tour_id = Column(Integer, index=True)
    type = Column(String(32), nullable=False)
    title = Column(String(128), nullable=False)
    message = Column(TEXT, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Booking(ORMbase):
    """
    Seat reservation made by a passenger on a bus for a travel date.

    Columns:
        id (Integer):
            Primary key.

        account_id (Integer):
            Identifier of the passenger account.

        bus_id (Integer):
            Identifier of the bus booked.

        seats (JSON):
            Array of reserved seat numbers.

        travel_date (String(10)):
            Travel date in ISO format (YYYY-MM-DD).

        fare (Numeric):
            Gross fare paid, route fare times seat count.

        status (String(16)):
            One of `BookingStatus`. Defaults to `BookingStatus.CONFIRMED`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the booking is modified.

        created_on (DateTime):
            Timestamp indicating when the booking was created.
    """

    __tablename__ = "booking"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, nullable=False, index=True)
    bus_id = Column(Integer, nullable=False, index=True)
    seats = Column(JSONDocument, nullable=False)
    travel_date = Column(String(10), nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    status = Column(
        String(16), nullable=False, default=BookingStatus.CONFIRMED.value
    )
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Payment(ORMbase):
    """
    Record of the simulated payment captured with a booking.

    Columns:
        id (Integer):
            Primary key.

        booking_id (Integer):
            Identifier of the booking paid for.

        account_id (Integer):
            Identifier of the paying passenger.

        bus_id (Integer):
            Identifier of the bus booked.

        route_id (Integer):
            Identifier of the route of the bus at booking time.

        amount (Numeric):
            Amount charged.

        currency (String(3)):
            ISO currency code.

        method (String(16)):
            One of `PaymentMethod`.

        status (String(16)):
            One of `PaymentStatus`.

        card_last4 (String(4)):
            Last four digits of the card, when paid by card.

        created_on (DateTime):
            Timestamp indicating when the payment was recorded.
    """

    __tablename__ = "payment"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, nullable=False, index=True)
    account_id = Column(Integer, nullable=False)
    bus_id = Column(Integer, nullable=False)
    route_id = Column(Integer)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default=CURRENCY)
    method = Column(String(16), nullable=False, default=PaymentMethod.CARD.value)
    status = Column(
        String(16), nullable=False, default=PaymentStatus.SUCCEEDED.value
    )
    card_last4 = Column(String(4))
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class OwnerEarning(ORMbase):
    """
    Revenue share credited to a bus owner for one booking.

    Written once at booking time and never recalculated, not even when the
    booking is later cancelled.

    Columns:
        id (Integer):
            Primary key.

        owner_id (Integer):
            Identifier of the credited owner account.

        bus_id (Integer):
            Identifier of the bus booked.

        booking_id (Integer):
            Identifier of the booking the share comes from.

        route (String(256)):
            Route label at booking time ("start → end").

        travel_date (String(10)):
            Travel date of the booking.

        seat_count (Integer):
            Number of seats in the booking.

        gross_fare (Numeric):
            Gross fare of the booking.

        percentage (Integer):
            Share percentage applied.

        amount (Numeric):
            Credited amount, the rounded share of the gross fare.

        created_on (DateTime):
            Timestamp indicating when the earning was recorded.
    """

    __tablename__ = "owner_earning"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    bus_id = Column(Integer, nullable=False)
    booking_id = Column(Integer, nullable=False, unique=True)
    route = Column(String(256))
    travel_date = Column(String(10))
    seat_count = Column(Integer, nullable=False)
    gross_fare = Column(Numeric(10, 2), nullable=False)
    percentage = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    created_on = Column(UTCDateTime, nullable=False, default=func.now())


class Alert(ORMbase):
    """
    Message raised by a driver for the administrators.

    Columns:
        id (Integer):
            Primary key.

        driver_id (Integer):
            Identifier of the driver raising the alert.

        message (TEXT):
            Free text describing the situation.

        resolved (Boolean):
            Whether an administrator has handled it.

        updated_on (DateTime):
            Timestamp automatically updated whenever the alert is modified.

        created_on (DateTime):
            Timestamp indicating when the alert was raised.
    """

    __tablename__ = "alert"

    id = Column(Integer, primary_key=True)
    driver_id = Column(Integer, nullable=False, index=True)
    message = Column(TEXT, nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)
    # Metadata
    updated_on = Column(UTCDateTime, onupdate=func.now())
    created_on = Column(UTCDateTime, nullable=False, default=func.now())
