"""
Shared test fixtures.

Each test gets its own file-backed SQLite database (via aiosqlite) so the
suite runs without Docker / PostgreSQL / Redis.  A file rather than
``:memory:`` keeps every pooled connection on its own transaction, which the
concurrency tests rely on.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ridehail.api.app import create_app
from ridehail.api.middleware import limiter
from ridehail.domain.entities import Location
from ridehail.domain.enums import DriverStatus, DriverVerifyStatus, EventKind
from ridehail.domain.matching import location_cell
from ridehail.infrastructure.database import Base
from ridehail.infrastructure.models import DriverModel, PassengerModel
from ridehail.infrastructure.notifications import NotificationSink
from ridehail.services.fleet import FleetService
from ridehail.services.lifecycle import OrderLifecycle

# People's Square, Shanghai
POINT_A = Location(31.23, 121.47)
POINT_B = Location(31.30, 121.50)


class FrozenClock:
    """Deterministic clock; 10:00 UTC keeps quotes outside the night window."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class RecordingSink(NotificationSink):
    def __init__(self, fail: bool = False):
        self.events: list[tuple[EventKind, int, dict[str, Any]]] = []
        self.fail = fail

    async def emit(self, kind: EventKind, order_id: int, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("sink unavailable")
        self.events.append((kind, order_id, payload))

    def kinds(self) -> list[EventKind]:
        return [kind for kind, _, _ in self.events]


class Seeder:
    """Inserts passengers and drivers directly, bypassing the services."""

    def __init__(self, factory: async_sessionmaker[AsyncSession]):
        self.factory = factory
        self._plates = 0

    async def passenger(self, name: str = "Li Wei", phone: Optional[str] = None) -> int:
        async with self.factory() as session:
            row = PassengerModel(name=name, phone=phone)
            session.add(row)
            await session.commit()
            return row.id

    async def driver(
        self,
        *,
        location: Optional[Location] = POINT_A,
        status: DriverStatus = DriverStatus.ONLINE,
        verify_status: DriverVerifyStatus = DriverVerifyStatus.APPROVED,
        rating: float = 5.0,
        total_orders: int = 0,
        completed_orders: int = 0,
        total_income: Decimal = Decimal("0"),
    ) -> int:
        self._plates += 1
        async with self.factory() as session:
            row = DriverModel(
                name=f"Driver {self._plates}",
                car_plate=f"沪A{self._plates:05d}",
                status=status,
                verify_status=verify_status,
                current_latitude=location.latitude if location else None,
                current_longitude=location.longitude if location else None,
                h3_cell=location_cell(location) if location else None,
                rating=rating,
                total_orders=total_orders,
                completed_orders=completed_orders,
                total_income=total_income,
                this_month_income=total_income,
                this_week_income=total_income,
                today_income=total_income,
            )
            session.add(row)
            await session.commit()
            return row.id


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh database file, dispose afterwards."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ridehail.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def lifecycle(session_factory, sink, clock) -> AsyncGenerator[OrderLifecycle, None]:
    lifecycle = OrderLifecycle(session_factory, sink, clock=clock)
    yield lifecycle
    await lifecycle.drain()


@pytest.fixture
def fleet(session_factory, clock) -> FleetService:
    return FleetService(session_factory, clock=clock)


@pytest_asyncio.fixture
async def app(session_factory, sink) -> AsyncGenerator[FastAPI, None]:
    """App wired to the per-test database and the recording sink."""
    limiter.reset()
    app = create_app(session_factory=session_factory, sink=sink)
    yield app
    await app.state.lifecycle.drain()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def run_trip(
    lifecycle: OrderLifecycle,
    passenger_id: int,
    driver_id: int,
    actual_price: Decimal = Decimal("42.50"),
):
    """Create an order and drive it to COMPLETED."""
    order = await lifecycle.create_order(
        passenger_id, POINT_A, POINT_B, "People's Square", "Wujiaochang"
    )
    await lifecycle.accept_order(order.id, driver_id)
    await lifecycle.driver_arrived(order.id)
    await lifecycle.start_trip(order.id)
    return await lifecycle.complete_trip(order.id, actual_price)
