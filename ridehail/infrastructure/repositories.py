"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Reads return immutable domain records, never
ORM rows.  Order mutations are conditional UPDATEs (compare-and-set): the
caller states the status (and optionally version / pay status) it observed,
and the write only lands if the row still matches.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OrderModel, PassengerModel
from ridehail.domain.entities import (
    FareBreakdown,
    Location,
    Order,
    Passenger,
    PaymentInfo,
    RoutePoint,
)
from ridehail.domain.enums import OrderStatus, PayStatus
from ridehail.domain.errors import NotFoundError


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _parse_ts(raw: Optional[str]) -> Optional[datetime]:
    return as_utc(datetime.fromisoformat(raw)) if raw else None


# ── Serialisation helpers ─────────────────────────────────────────────


def fare_columns(fare: FareBreakdown) -> dict[str, Decimal]:
    return {
        "base_price": fare.base,
        "distance_price": fare.distance,
        "duration_price": fare.duration,
        "night_price": fare.night,
        "other_price": fare.other,
        "coupon_discount": fare.coupon_discount,
    }


def dump_route(points: tuple[RoutePoint, ...]) -> list[dict[str, Any]]:
    return [
        {
            "latitude": p.latitude,
            "longitude": p.longitude,
            "timestamp": p.timestamp.isoformat(),
        }
        for p in points
    ]


def dump_payment(info: PaymentInfo) -> dict[str, Any]:
    return {
        "method": info.method,
        "transaction_id": info.transaction_id,
        "paid_at": info.paid_at.isoformat() if info.paid_at else None,
    }


def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for key, value in values.items():
        if key == "fare":
            columns.update(fare_columns(value))
        elif key == "route":
            columns["route"] = dump_route(value)
        elif key == "payment_info":
            columns["payment_info"] = dump_payment(value)
        else:
            columns[key] = value
    return columns


def order_to_entity(row: OrderModel) -> Order:
    payment = None
    if row.payment_info:
        payment = PaymentInfo(
            method=row.payment_info["method"],
            transaction_id=row.payment_info["transaction_id"],
            paid_at=_parse_ts(row.payment_info.get("paid_at")),
        )
    return Order(
        id=row.id,
        order_no=row.order_no,
        passenger_id=row.passenger_id,
        driver_id=row.driver_id,
        order_type=row.order_type,
        status=row.status,
        pay_status=row.pay_status,
        start=Location(row.start_latitude, row.start_longitude),
        end=Location(row.end_latitude, row.end_longitude),
        start_address=row.start_address,
        end_address=row.end_address,
        estimated_distance=row.estimated_distance,
        estimated_duration=row.estimated_duration,
        estimated_price=row.estimated_price,
        actual_distance=row.actual_distance,
        actual_duration=row.actual_duration,
        actual_price=row.actual_price,
        fare=FareBreakdown(
            base=row.base_price,
            distance=row.distance_price,
            duration=row.duration_price,
            night=row.night_price,
            other=row.other_price,
            coupon_discount=row.coupon_discount,
        ),
        reserved_at=as_utc(row.reserved_at),
        accepted_at=as_utc(row.accepted_at),
        arrived_at=as_utc(row.arrived_at),
        started_at=as_utc(row.started_at),
        completed_at=as_utc(row.completed_at),
        cancelled_at=as_utc(row.cancelled_at),
        cancel_reason=row.cancel_reason,
        cancelled_by=row.cancelled_by,
        remark=row.remark,
        route=tuple(
            RoutePoint(p["latitude"], p["longitude"], _parse_ts(p["timestamp"]))
            for p in (row.route or [])
        ),
        passenger_rating=row.passenger_rating,
        passenger_comment=row.passenger_comment,
        driver_rating=row.driver_rating,
        driver_comment=row.driver_comment,
        payment_info=payment,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        version=row.version,
    )


# ── Repositories ──────────────────────────────────────────────────────


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        order_no: str,
        passenger_id: int,
        start: Location,
        end: Location,
        created_at: datetime,
        **values: Any,
    ) -> Order:
        """Insert a new order; a duplicate ``order_no`` raises IntegrityError."""
        row = OrderModel(
            order_no=order_no,
            passenger_id=passenger_id,
            start_latitude=start.latitude,
            start_longitude=start.longitude,
            end_latitude=end.latitude,
            end_longitude=end.longitude,
            status=OrderStatus.PENDING,
            pay_status=PayStatus.UNPAID,
            version=0,
            created_at=created_at,
            updated_at=created_at,
            **_to_columns(values),
        )
        self.session.add(row)
        await self.session.flush()
        return order_to_entity(row)

    async def find(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return order_to_entity(row) if row else None

    async def get(self, order_id: int) -> Order:
        order = await self.find(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_by_order_no(self, order_no: str) -> Order:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.order_no == order_no)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Order {order_no} not found")
        return order_to_entity(row)

    async def compare_and_set(
        self,
        order_id: int,
        values: dict[str, Any],
        *,
        status: Optional[OrderStatus] = None,
        pay_status: Optional[PayStatus] = None,
        version: Optional[int] = None,
        unrated_by: Optional[str] = None,
    ) -> bool:
        """
        Apply *values* only if the row still matches every given condition.

        Returns ``False`` when another writer got there first (or the
        conditions never held); the caller decides which error that is.
        """
        stmt = update(OrderModel).where(OrderModel.id == order_id)
        if status is not None:
            stmt = stmt.where(OrderModel.status == status)
        if pay_status is not None:
            stmt = stmt.where(OrderModel.pay_status == pay_status)
        if version is not None:
            stmt = stmt.where(OrderModel.version == version)
        if unrated_by == "passenger":
            stmt = stmt.where(OrderModel.passenger_rating.is_(None))
        elif unrated_by == "driver":
            stmt = stmt.where(OrderModel.driver_rating.is_(None))

        stmt = stmt.values(version=OrderModel.version + 1, **_to_columns(values))
        result = await self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_pending(self, limit: int = 20) -> list[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.status == OrderStatus.PENDING)
            .order_by(OrderModel.created_at, OrderModel.id)
            .limit(limit)
        )
        return [order_to_entity(row) for row in result.scalars().all()]

    async def count_by_status(self) -> dict[OrderStatus, int]:
        result = await self.session.execute(
            select(OrderModel.status, func.count()).group_by(OrderModel.status)
        )
        counts = {status: 0 for status in OrderStatus}
        for status, count in result.all():
            counts[OrderStatus(status)] = count
        return counts

    async def count_created_since(self, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(OrderModel)
            .where(OrderModel.created_at >= since)
        )
        return result.scalar() or 0

    async def paid_revenue_since(self, since: datetime) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(OrderModel.actual_price), 0))
            .where(OrderModel.created_at >= since)
            .where(OrderModel.pay_status == PayStatus.PAID)
        )
        return Decimal(str(result.scalar() or 0))


class PassengerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, passenger_id: int) -> Passenger:
        row = await self.session.get(PassengerModel, passenger_id)
        if row is None:
            raise NotFoundError(f"Passenger {passenger_id} not found")
        return Passenger(id=row.id, name=row.name, phone=row.phone)
