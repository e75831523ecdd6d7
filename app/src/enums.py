from enum import IntEnum, Enum


class AppID(IntEnum):
    ADMIN = 1
    DRIVER = 2
    OWNER = 3
    PASSENGER = 4
    PUBLIC = 5


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class UserRole(str, Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    OWNER = "owner"
    ADMIN = "admin"


class TourStatus(str, Enum):
    SCHEDULED = "scheduled"
    STARTED = "started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NotificationType(str, Enum):
    TOUR_STARTING_SOON = "tour_starting_soon"
    TOUR_ASSIGNED = "tour_assigned"
    TOUR_UPDATED = "tour_updated"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CARD = "card"
    WALLET = "wallet"
    CASH = "cash"


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
