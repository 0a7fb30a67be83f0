"""
Domain records and the pure functions that reason about them.

Records are immutable snapshots handed out by the repositories; nothing in
the domain mutates them.  State-machine checks and derived predicates
(``can_cancel``, ``is_completed`` ...) are plain functions so the engine,
the API layer and the tests share one definition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .enums import (
    ORDER_TRANSITIONS,
    DriverStatus,
    DriverVerifyStatus,
    OrderStatus,
    OrderType,
    PayStatus,
)
from .errors import InvalidArgumentError, InvalidStateError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize to cents; floats go through ``str`` to avoid binary noise."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidArgumentError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidArgumentError(f"longitude out of range: {self.longitude}")


@dataclass(frozen=True)
class RoutePoint:
    latitude: float
    longitude: float
    timestamp: datetime


@dataclass(frozen=True)
class PaymentInfo:
    method: str
    transaction_id: str
    paid_at: Optional[datetime] = None


@dataclass(frozen=True)
class FareBreakdown:
    """Itemized fare.  ``total`` is the only price the engine records."""

    base: Decimal = ZERO
    distance: Decimal = ZERO
    duration: Decimal = ZERO
    night: Decimal = ZERO
    other: Decimal = ZERO
    coupon_discount: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("base", "distance", "duration", "night", "other", "coupon_discount"):
            amount = to_money(getattr(self, name))
            if amount < 0:
                raise InvalidArgumentError(f"fare component {name} is negative")
            object.__setattr__(self, name, amount)
        if self.total < 0:
            raise InvalidArgumentError("coupon discount exceeds the fare")

    @property
    def total(self) -> Decimal:
        return (
            self.base + self.distance + self.duration + self.night + self.other
        ) - self.coupon_discount


# ── Entities ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Order:
    id: int
    order_no: str
    passenger_id: int
    start: Location
    end: Location
    start_address: str
    end_address: str
    order_type: OrderType = OrderType.IMMEDIATE
    status: OrderStatus = OrderStatus.PENDING
    pay_status: PayStatus = PayStatus.UNPAID
    driver_id: Optional[int] = None

    estimated_distance: Optional[Decimal] = None
    estimated_duration: Optional[int] = None
    estimated_price: Optional[Decimal] = None
    actual_distance: Optional[Decimal] = None
    actual_duration: Optional[int] = None
    actual_price: Optional[Decimal] = None
    fare: FareBreakdown = field(default_factory=FareBreakdown)

    reserved_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    cancel_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    remark: Optional[str] = None
    route: tuple[RoutePoint, ...] = ()

    passenger_rating: Optional[float] = None
    passenger_comment: Optional[str] = None
    driver_rating: Optional[float] = None
    driver_comment: Optional[str] = None
    payment_info: Optional[PaymentInfo] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0


@dataclass(frozen=True)
class Driver:
    id: int
    name: str = ""
    car_plate: str = ""
    verify_status: DriverVerifyStatus = DriverVerifyStatus.PENDING
    status: DriverStatus = DriverStatus.OFFLINE
    location: Optional[Location] = None
    h3_cell: Optional[str] = None
    last_location_update: Optional[datetime] = None
    online_at: Optional[datetime] = None
    offline_at: Optional[datetime] = None
    rating: float = 5.0
    total_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    total_income: Decimal = ZERO
    this_month_income: Decimal = ZERO
    this_week_income: Decimal = ZERO
    today_income: Decimal = ZERO


@dataclass(frozen=True)
class Passenger:
    id: int
    name: str
    phone: Optional[str] = None


# ── Order predicates ──────────────────────────────────────────────────


def can_transition(order: Order, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(order.status, set())


def ensure_transition(order: Order, target: OrderStatus) -> None:
    """Raise ``InvalidStateError`` unless *order* may move to *target*."""
    if can_transition(order, target):
        return
    allowed_from = sorted(
        source.value
        for source, targets in ORDER_TRANSITIONS.items()
        if target in targets
    )
    raise InvalidStateError(
        f"Order {order.order_no} cannot move from {order.status.value} "
        f"to {target.value}",
        current=order.status.value,
        expected=allowed_from,
    )


def can_cancel(order: Order) -> bool:
    return can_transition(order, OrderStatus.CANCELLED)


def is_completed(order: Order) -> bool:
    return order.status == OrderStatus.COMPLETED


def is_paid(order: Order) -> bool:
    return order.pay_status == PayStatus.PAID


def trip_duration_minutes(order: Order) -> int:
    """Whole minutes between start and completion; 0 if either is missing."""
    if not order.started_at or not order.completed_at:
        return 0
    return round((order.completed_at - order.started_at).total_seconds() / 60)


def latest_timestamp(order: Order) -> Optional[datetime]:
    """Most recent lifecycle stamp.  ``reserved_at`` is a schedule, not a stamp."""
    stamps = [
        ts
        for ts in (
            order.created_at,
            order.accepted_at,
            order.arrived_at,
            order.started_at,
            order.completed_at,
            order.cancelled_at,
        )
        if ts is not None
    ]
    return max(stamps) if stamps else None


def next_timestamp(order: Order, now: datetime) -> datetime:
    """*now*, nudged forward so it is strictly later than any prior stamp."""
    latest = latest_timestamp(order)
    if latest is not None and now <= latest:
        return latest + timedelta(microseconds=1)
    return now


# ── Driver predicates ─────────────────────────────────────────────────


def is_dispatchable(driver: Driver) -> bool:
    return (
        driver.status == DriverStatus.ONLINE
        and driver.verify_status == DriverVerifyStatus.APPROVED
        and driver.location is not None
    )


def completion_rate(driver: Driver) -> int:
    """Percentage of finished orders that were completed (100 if none)."""
    if driver.total_orders == 0:
        return 100
    return round(driver.completed_orders / driver.total_orders * 100)
