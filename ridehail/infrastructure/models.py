"""
SQLAlchemy ORM models.

Tables
------
* ``passengers`` -- riders that can place orders (lookup only)
* ``drivers``    -- driver directory rows: status, location, counters, income
* ``orders``     -- one row per dispatch request, mutated through its lifecycle

Relations are plain foreign-key ids; there are no ORM relationships or
back-references, every cross-entity read goes through a repository.

Indexes
-------
* **Unique** on ``orders.order_no`` (business key, collision-checked).
* **B-Tree** on ``orders.status``, ``passenger_id``, ``driver_id`` and
  ``created_at`` for dispatch boards and stats.
* **B-Tree** on ``drivers.h3_cell`` and (``status``, ``verify_status``) for
  nearby-driver candidate lookups.
"""

import enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from .database import Base
from ridehail.domain.enums import (
    DriverStatus,
    DriverVerifyStatus,
    OrderStatus,
    OrderType,
    PayStatus,
)


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    # store the lowercase values, not the member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


def _money(**kwargs) -> Column:
    return Column(Numeric(10, 2, asdecimal=True), **kwargs)


class PassengerModel(Base):
    __tablename__ = "passengers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    car_plate = Column(String(50), unique=True, nullable=False)

    status = Column(_enum(DriverStatus, "driverstatus"), default=DriverStatus.OFFLINE, nullable=False)
    verify_status = Column(
        _enum(DriverVerifyStatus, "driververifystatus"),
        default=DriverVerifyStatus.PENDING,
        nullable=False,
    )

    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)
    last_location_update = Column(DateTime(timezone=True), nullable=True)
    online_at = Column(DateTime(timezone=True), nullable=True)
    offline_at = Column(DateTime(timezone=True), nullable=True)

    rating = Column(Float, default=5.0, nullable=False)
    total_orders = Column(Integer, default=0, nullable=False)
    completed_orders = Column(Integer, default=0, nullable=False)
    cancelled_orders = Column(Integer, default=0, nullable=False)

    total_income = _money(default=0, nullable=False)
    this_month_income = _money(default=0, nullable=False)
    this_week_income = _money(default=0, nullable=False)
    today_income = _money(default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_drivers_cell", "h3_cell"),
        Index("idx_drivers_dispatch", "status", "verify_status"),
    )


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_no = Column(String(32), unique=True, nullable=False)
    passenger_id = Column(Integer, ForeignKey("passengers.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)

    order_type = Column(_enum(OrderType, "ordertype"), default=OrderType.IMMEDIATE, nullable=False)
    status = Column(_enum(OrderStatus, "orderstatus"), default=OrderStatus.PENDING, nullable=False)
    pay_status = Column(_enum(PayStatus, "paystatus"), default=PayStatus.UNPAID, nullable=False)

    start_latitude = Column(Float, nullable=False)
    start_longitude = Column(Float, nullable=False)
    start_address = Column(String(200), nullable=False)
    end_latitude = Column(Float, nullable=False)
    end_longitude = Column(Float, nullable=False)
    end_address = Column(String(200), nullable=False)

    estimated_distance = _money(nullable=True)  # km
    estimated_duration = Column(Integer, nullable=True)  # minutes
    estimated_price = _money(nullable=True)
    actual_distance = _money(nullable=True)
    actual_duration = Column(Integer, nullable=True)
    actual_price = _money(nullable=True)

    base_price = _money(default=0, nullable=False)
    distance_price = _money(default=0, nullable=False)
    duration_price = _money(default=0, nullable=False)
    night_price = _money(default=0, nullable=False)
    other_price = _money(default=0, nullable=False)
    coupon_discount = _money(default=0, nullable=False)

    reserved_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    cancel_reason = Column(String(50), nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    remark = Column(Text, nullable=True)
    route = Column(JSON, nullable=True)  # [{"latitude", "longitude", "timestamp"}]

    passenger_rating = Column(Float, nullable=True)
    passenger_comment = Column(Text, nullable=True)
    driver_rating = Column(Float, nullable=True)
    driver_comment = Column(Text, nullable=True)
    payment_info = Column(JSON, nullable=True)  # {"method", "transaction_id", "paid_at"}

    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_passenger", "passenger_id"),
        Index("idx_orders_driver", "driver_id"),
        Index("idx_orders_created", "created_at"),
    )
