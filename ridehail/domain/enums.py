"""Domain enumerations and state-transition rules."""

import enum


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DRIVER_ARRIVED = "driver_arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


# State machine: maps current status -> set of valid next statuses
ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.ACCEPTED,
        OrderStatus.CANCELLED,
        OrderStatus.TIMEOUT,
    },
    OrderStatus.ACCEPTED: {OrderStatus.DRIVER_ARRIVED, OrderStatus.CANCELLED},
    OrderStatus.DRIVER_ARRIVED: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.TIMEOUT: set(),
}

# Statuses during which a driver is attached and the vehicle is moving
ACTIVE_TRIP_STATUSES = frozenset(
    {OrderStatus.ACCEPTED, OrderStatus.DRIVER_ARRIVED, OrderStatus.IN_PROGRESS}
)


class OrderType(str, enum.Enum):
    IMMEDIATE = "immediate"
    RESERVED = "reserved"


class PayStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class DriverStatus(str, enum.Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    BUSY = "busy"


class DriverVerifyStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EventKind(str, enum.Enum):
    ORDER_CREATED = "order.created"
    ORDER_ACCEPTED = "order.accepted"
    DRIVER_ARRIVED = "order.driver_arrived"
    TRIP_STARTED = "order.trip_started"
    ORDER_COMPLETED = "order.completed"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_TIMEOUT = "order.timeout"
    ORDER_PAID = "order.paid"
    ORDER_RATED = "order.rated"
