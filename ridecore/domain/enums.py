"""Domain enumerations."""

import enum


class RideStatus(str, enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# A rider may hold at most one ride in any of these statuses.
ACTIVE_STATUSES = frozenset(
    {RideStatus.REQUESTED, RideStatus.ACCEPTED, RideStatus.ONGOING}
)

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})


class RideAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    MARK_REACHED = "mark_reached"
    START = "start"
    COMPLETE = "complete"
    REASSIGN = "reassign"


class VehicleType(str, enum.Enum):
    CAR = "car"
    SEDAN = "sedan"
    SUV = "suv"
    AUTO = "auto"
    BIKE = "bike"
    SCOOTER = "scooter"


class PaymentMode(str, enum.Enum):
    CASH = "cash"
    ONLINE = "online"


class CancelActor(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


class PromotionKind(str, enum.Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class DriverStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


class NotificationType(str, enum.Enum):
    TRIP_REQUESTED = "trip-requested"
    TRIP_ACCEPTED = "trip-accepted"
    TRIP_STARTED = "trip-started"
    TRIP_COMPLETED = "trip-completed"
    TRIP_CANCELLED = "trip-cancelled"
    DRIVER_REACHED = "driver-reached"
