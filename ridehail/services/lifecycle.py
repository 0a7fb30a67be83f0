"""
Order Lifecycle Engine
======================

    PENDING -> ACCEPTED -> DRIVER_ARRIVED -> IN_PROGRESS -> COMPLETED
       |           |             |
       +-> TIMEOUT +-------------+-> CANCELLED

Concurrency safety
------------------
* Every operation is one transaction (``unit_of_work``).  The order write
  and the driver updates it triggers commit or roll back together.
* Order writes are **compare-and-set** on the status the operation read.  Of
  N concurrent ``accept_order`` calls exactly one UPDATE matches; the rest
  affect zero rows and fail with ``InvalidStateError``.
* Accept also compare-and-sets the driver from ONLINE to BUSY, so one driver
  cannot win two orders at once.
* Notifications go out only after commit, as background tasks the engine
  never awaits inline.  ``drain()`` waits for them (shutdown, tests).

Timestamps
----------
Each transition stamps ``max(now, previous stamp + 1us)`` so lifecycle
timestamps are strictly increasing even on a coarse clock.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .base import Clock, DirectoryFactory, TransactionalService, utc_now
from ridehail.config import Settings, settings as default_settings
from ridehail.domain.entities import (
    ZERO,
    FareBreakdown,
    Location,
    Order,
    PaymentInfo,
    RoutePoint,
    ensure_transition,
    is_completed,
    next_timestamp,
    to_money,
    trip_duration_minutes,
)
from ridehail.domain.enums import (
    ACTIVE_TRIP_STATUSES,
    DriverStatus,
    DriverVerifyStatus,
    EventKind,
    OrderStatus,
    OrderType,
    PayStatus,
)
from ridehail.domain.errors import (
    ConflictError,
    InternalError,
    InvalidArgumentError,
    InvalidStateError,
)
from ridehail.domain.pricing import PricingEngine
from ridehail.infrastructure.notifications import NotificationSink
from ridehail.infrastructure.repositories import OrderRepository, PassengerRepository

logger = logging.getLogger(__name__)

_ORDER_NO_ALPHABET = string.ascii_uppercase + string.digits
CANCEL_REASON_MAX_LENGTH = 50


def generate_order_no(prefix: str = "TX", now: Optional[datetime] = None) -> str:
    """``TX`` + UTC timestamp to the second + 6 random base-36 characters."""
    now = now or utc_now()
    suffix = "".join(secrets.choice(_ORDER_NO_ALPHABET) for _ in range(6))
    return f"{prefix}{now:%Y%m%d%H%M%S}{suffix}"


@dataclass(frozen=True)
class OrderStats:
    by_status: dict[OrderStatus, int]
    today_orders: int
    today_revenue: Decimal

    @property
    def total_orders(self) -> int:
        return sum(self.by_status.values())


class OrderLifecycle(TransactionalService):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sink: NotificationSink,
        *,
        pricing: Optional[PricingEngine] = None,
        directory_factory: Optional[DirectoryFactory] = None,
        order_no_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Clock] = None,
        config: Settings = default_settings,
    ):
        super().__init__(
            session_factory, directory_factory=directory_factory, clock=clock
        )
        self._sink = sink
        self._config = config
        self._pricing = pricing or PricingEngine.from_settings(config)
        self._order_no_factory = order_no_factory or (
            lambda: generate_order_no(config.order_no_prefix, self._clock())
        )
        self._pending: set[asyncio.Task] = set()

    # ── Creation ──────────────────────────────────────────────────────

    async def create_order(
        self,
        passenger_id: int,
        start: Location,
        end: Location,
        start_address: str,
        end_address: str,
        *,
        order_type: OrderType = OrderType.IMMEDIATE,
        reserved_at: Optional[datetime] = None,
        estimated_price: Optional[Decimal] = None,
        remark: Optional[str] = None,
    ) -> Order:
        if order_type == OrderType.RESERVED and reserved_at is None:
            raise InvalidArgumentError("A reserved order needs reserved_at")

        now = self._clock()
        estimate = self._pricing.estimate(start, end, reserved_at or now)
        if estimated_price is None:
            price, fare = estimate.price, estimate.fare
        else:
            price, fare = to_money(estimated_price), FareBreakdown()
            if price < 0:
                raise InvalidArgumentError("estimated_price must not be negative")

        attempts = self._config.order_no_max_attempts
        for attempt in range(1, attempts + 1):
            order_no = self._order_no_factory()
            try:
                async with self._transaction() as session:
                    await PassengerRepository(session).get(passenger_id)
                    order = await OrderRepository(session).create(
                        order_no=order_no,
                        passenger_id=passenger_id,
                        start=start,
                        end=end,
                        created_at=now,
                        order_type=order_type,
                        start_address=start_address,
                        end_address=end_address,
                        reserved_at=reserved_at,
                        remark=remark,
                        estimated_distance=estimate.distance_km,
                        estimated_duration=estimate.duration_minutes,
                        estimated_price=price,
                        fare=fare,
                    )
            except ConflictError:
                logger.warning(
                    "Order number %s collided (attempt %d/%d)", order_no, attempt, attempts
                )
                continue

            logger.info(
                "Order %s created for passenger %d (est. %s)", order.order_no, passenger_id, price
            )
            self._publish(EventKind.ORDER_CREATED, order)
            return order

        raise InternalError(
            f"Could not allocate a unique order number after {attempts} attempts"
        )

    # ── Dispatch ──────────────────────────────────────────────────────

    async def accept_order(self, order_id: int, driver_id: int) -> Order:
        """First driver to claim a PENDING order wins; losers get InvalidStateError."""
        async with self._transaction() as session:
            orders = OrderRepository(session)
            directory = self._directory(session)

            order = await orders.get(order_id)
            ensure_transition(order, OrderStatus.ACCEPTED)

            driver = await directory.get_driver(driver_id)
            if driver.verify_status != DriverVerifyStatus.APPROVED:
                raise InvalidStateError(
                    f"Driver {driver_id} is not approved",
                    current=driver.verify_status.value,
                    expected=[DriverVerifyStatus.APPROVED.value],
                )
            if driver.status != DriverStatus.ONLINE:
                raise InvalidStateError(
                    f"Driver {driver_id} is not online",
                    current=driver.status.value,
                    expected=[DriverStatus.ONLINE.value],
                )

            values = {
                "status": OrderStatus.ACCEPTED,
                "driver_id": driver_id,
                "accepted_at": next_timestamp(order, self._clock()),
            }
            await self._swap(orders, order, values)

            if not await directory.set_status(
                driver_id, DriverStatus.BUSY, expected=DriverStatus.ONLINE
            ):
                raise InvalidStateError(
                    f"Driver {driver_id} is no longer online",
                    expected=[DriverStatus.ONLINE.value],
                )
            order = await orders.get(order_id)

        logger.info("Order %s accepted by driver %d", order.order_no, driver_id)
        self._publish(EventKind.ORDER_ACCEPTED, order)
        return order

    async def driver_arrived(self, order_id: int) -> Order:
        return await self._advance(
            order_id, OrderStatus.DRIVER_ARRIVED, "arrived_at", EventKind.DRIVER_ARRIVED
        )

    async def start_trip(self, order_id: int) -> Order:
        return await self._advance(
            order_id, OrderStatus.IN_PROGRESS, "started_at", EventKind.TRIP_STARTED
        )

    async def timeout_order(self, order_id: int) -> Order:
        """Expire an order nobody accepted; called by an external sweeper."""
        return await self._advance(
            order_id, OrderStatus.TIMEOUT, None, EventKind.ORDER_TIMEOUT
        )

    # ── Completion / cancellation ─────────────────────────────────────

    async def complete_trip(
        self,
        order_id: int,
        actual_price: Decimal,
        *,
        fare: Optional[FareBreakdown] = None,
        actual_distance: Optional[Decimal] = None,
        actual_duration: Optional[int] = None,
    ) -> Order:
        price = to_money(actual_price)
        if price < 0:
            raise InvalidArgumentError("actual_price must not be negative")
        if fare is not None and fare.total != price:
            raise InvalidArgumentError(
                f"Itemized fare totals {fare.total}, not the actual price {price}"
            )

        async with self._transaction() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            ensure_transition(order, OrderStatus.COMPLETED)

            completed_at = next_timestamp(order, self._clock())
            if actual_duration is None:
                actual_duration = trip_duration_minutes(
                    replace(order, completed_at=completed_at)
                )
            values: dict[str, Any] = {
                "status": OrderStatus.COMPLETED,
                "completed_at": completed_at,
                "actual_price": price,
                "actual_duration": actual_duration,
            }
            if actual_distance is not None:
                values["actual_distance"] = to_money(actual_distance)
            if fare is not None:
                values["fare"] = fare
            await self._swap(orders, order, values)

            if order.driver_id is not None:
                await self._release_driver(session, order.driver_id, completed=True)
            order = await orders.get(order_id)

        logger.info("Order %s completed (%s)", order.order_no, price)
        self._publish(EventKind.ORDER_COMPLETED, order, actual_price=str(price))
        return order

    async def cancel_order(self, order_id: int, reason: str, cancelled_by: int) -> Order:
        if len(reason) > CANCEL_REASON_MAX_LENGTH:
            raise InvalidArgumentError(
                f"Cancel reason longer than {CANCEL_REASON_MAX_LENGTH} characters"
            )

        async with self._transaction() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            ensure_transition(order, OrderStatus.CANCELLED)

            values = {
                "status": OrderStatus.CANCELLED,
                "cancelled_at": next_timestamp(order, self._clock()),
                "cancel_reason": reason,
                "cancelled_by": cancelled_by,
            }
            await self._swap(orders, order, values)

            if order.driver_id is not None:
                await self._release_driver(session, order.driver_id, completed=False)
            order = await orders.get(order_id)

        logger.info("Order %s cancelled by %d: %s", order.order_no, cancelled_by, reason)
        self._publish(
            EventKind.ORDER_CANCELLED, order, reason=reason, cancelled_by=cancelled_by
        )
        return order

    # ── Post-trip ─────────────────────────────────────────────────────

    async def pay_order(self, order_id: int, payment: PaymentInfo) -> Order:
        async with self._transaction() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            if order.pay_status != PayStatus.UNPAID:
                raise InvalidStateError(
                    f"Order {order.order_no} is already {order.pay_status.value}",
                    current=order.pay_status.value,
                    expected=[PayStatus.UNPAID.value],
                )

            if payment.paid_at is None:
                payment = replace(payment, paid_at=self._clock())
            values = {"pay_status": PayStatus.PAID, "payment_info": payment}
            if not await orders.compare_and_set(
                order_id, values, status=order.status, pay_status=PayStatus.UNPAID
            ):
                raise InvalidStateError(
                    f"Order {order.order_no} was paid or changed concurrently",
                    expected=[PayStatus.UNPAID.value],
                )

            if order.driver_id is not None:
                await self._directory(session).update_income(
                    order.driver_id, order.actual_price or ZERO
                )
            order = await orders.get(order_id)

        logger.info("Order %s paid via %s", order.order_no, payment.method)
        self._publish(EventKind.ORDER_PAID, order, method=payment.method)
        return order

    async def rate_order(
        self,
        order_id: int,
        is_passenger_rating: bool,
        rating: float,
        comment: Optional[str] = None,
    ) -> Order:
        """
        Record one party's rating of a completed order.

        A passenger rating is also folded into the driver's running average.
        Each party rates at most once.
        """
        if not self._config.min_rating <= rating <= self._config.max_rating:
            raise InvalidArgumentError(
                f"Rating must be between {self._config.min_rating} and {self._config.max_rating}"
            )
        party = "passenger" if is_passenger_rating else "driver"

        async with self._transaction() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            if not is_completed(order):
                raise InvalidStateError(
                    f"Order {order.order_no} is not completed",
                    current=order.status.value,
                    expected=[OrderStatus.COMPLETED.value],
                )

            values = {f"{party}_rating": float(rating), f"{party}_comment": comment}
            if not await orders.compare_and_set(
                order_id, values, status=OrderStatus.COMPLETED, unrated_by=party
            ):
                raise InvalidStateError(
                    f"The {party} has already rated order {order.order_no}"
                )

            if is_passenger_rating and order.driver_id is not None:
                await self._directory(session).update_rating(order.driver_id, rating)
            order = await orders.get(order_id)

        self._publish(EventKind.ORDER_RATED, order, party=party, rating=float(rating))
        return order

    async def record_route_point(
        self,
        order_id: int,
        latitude: float,
        longitude: float,
        timestamp: Optional[datetime] = None,
    ) -> Order:
        """Append a GPS sample while a driver is attached to the order."""
        Location(latitude, longitude)  # validates the range
        attempts = self._config.route_append_max_attempts
        for attempt in range(1, attempts + 1):
            async with self._transaction() as session:
                orders = OrderRepository(session)
                order = await orders.get(order_id)
                if order.status not in ACTIVE_TRIP_STATUSES:
                    raise InvalidStateError(
                        f"Order {order.order_no} is not on an active trip",
                        current=order.status.value,
                        expected=sorted(s.value for s in ACTIVE_TRIP_STATUSES),
                    )
                sample = RoutePoint(latitude, longitude, timestamp or self._clock())
                if await orders.compare_and_set(
                    order_id, {"route": order.route + (sample,)}, version=order.version
                ):
                    return await orders.get(order_id)
            logger.warning(
                "Route append on order %d raced (attempt %d/%d)", order_id, attempt, attempts
            )
        raise InternalError(f"Route update on order {order_id} kept racing")

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_order(self, order_id: int) -> Order:
        async with self._transaction() as session:
            return await OrderRepository(session).get(order_id)

    async def get_order_by_no(self, order_no: str) -> Order:
        async with self._transaction() as session:
            return await OrderRepository(session).get_by_order_no(order_no)

    async def list_pending(self, limit: int = 20) -> list[Order]:
        if limit < 1:
            raise InvalidArgumentError("limit must be positive")
        async with self._transaction() as session:
            return await OrderRepository(session).list_pending(limit)

    async def order_stats(self) -> OrderStats:
        midnight = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        async with self._transaction() as session:
            orders = OrderRepository(session)
            return OrderStats(
                by_status=await orders.count_by_status(),
                today_orders=await orders.count_created_since(midnight),
                today_revenue=to_money(await orders.paid_revenue_since(midnight)),
            )

    # ── Notifications ─────────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait until every queued notification has been handed to the sink."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _publish(self, kind: EventKind, order: Order, **extra: Any) -> None:
        payload = {
            "order_no": order.order_no,
            "status": order.status.value,
            "passenger_id": order.passenger_id,
            "driver_id": order.driver_id,
            **extra,
        }
        task = asyncio.get_running_loop().create_task(
            self._deliver(kind, order.id, payload)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, kind: EventKind, order_id: int, payload: dict[str, Any]) -> None:
        try:
            await self._sink.emit(kind, order_id, payload)
        except Exception:
            logger.exception("Failed to deliver %s for order %d", kind.value, order_id)

    # ── Internals ─────────────────────────────────────────────────────

    async def _advance(
        self,
        order_id: int,
        target: OrderStatus,
        stamp_field: Optional[str],
        event: EventKind,
    ) -> Order:
        """Side-effect-free transition: status (+ timestamp) only."""
        async with self._transaction() as session:
            orders = OrderRepository(session)
            order = await orders.get(order_id)
            ensure_transition(order, target)

            values: dict[str, Any] = {"status": target}
            if stamp_field:
                values[stamp_field] = next_timestamp(order, self._clock())
            await self._swap(orders, order, values)
            order = await orders.get(order_id)

        logger.info("Order %s -> %s", order.order_no, target.value)
        self._publish(event, order)
        return order

    async def _swap(
        self, orders: OrderRepository, order: Order, values: dict[str, Any]
    ) -> None:
        """Compare-and-set on the status *order* was read with."""
        if not await orders.compare_and_set(order.id, values, status=order.status):
            raise InvalidStateError(
                f"Order {order.order_no} is no longer {order.status.value}",
                expected=[order.status.value],
            )

    async def _release_driver(
        self, session: AsyncSession, driver_id: int, completed: bool
    ) -> None:
        directory = self._directory(session)
        await directory.set_status(driver_id, DriverStatus.ONLINE)
        await directory.increment_order_stats(driver_id, completed)
