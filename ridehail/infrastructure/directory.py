"""
Driver Directory adapter.

The lifecycle engine reads driver state and issues a handful of
well-defined updates through ``DriverDirectory``; it never touches driver
rows itself.  ``SqlDriverDirectory`` implements the interface over the
``drivers`` table inside the caller's session, so driver updates share the
order transition's transaction.

Every mutation is one UPDATE expressed relative to the stored values
(``col = col + :n``), which makes concurrent updates to the same driver
lossless without explicit row locks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DriverModel
from .repositories import as_utc
from ridehail.domain.entities import Driver, Location, to_money
from ridehail.domain.enums import DriverStatus, DriverVerifyStatus
from ridehail.domain.errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)


def driver_to_entity(row: DriverModel) -> Driver:
    location = None
    if row.current_latitude is not None and row.current_longitude is not None:
        location = Location(row.current_latitude, row.current_longitude)
    return Driver(
        id=row.id,
        name=row.name,
        car_plate=row.car_plate,
        verify_status=row.verify_status,
        status=row.status,
        location=location,
        h3_cell=row.h3_cell,
        last_location_update=as_utc(row.last_location_update),
        online_at=as_utc(row.online_at),
        offline_at=as_utc(row.offline_at),
        rating=row.rating,
        total_orders=row.total_orders,
        completed_orders=row.completed_orders,
        cancelled_orders=row.cancelled_orders,
        total_income=to_money(row.total_income),
        this_month_income=to_money(row.this_month_income),
        this_week_income=to_money(row.this_week_income),
        today_income=to_money(row.today_income),
    )


class DriverDirectory(ABC):
    """Operations the core needs from the (external) driver directory."""

    @abstractmethod
    async def get_driver(self, driver_id: int) -> Driver: ...

    @abstractmethod
    async def set_status(
        self,
        driver_id: int,
        status: DriverStatus,
        expected: Optional[DriverStatus] = None,
    ) -> bool:
        """Set *status*; with *expected*, only if the driver is still in it."""

    @abstractmethod
    async def increment_order_stats(self, driver_id: int, completed: bool) -> Driver: ...

    @abstractmethod
    async def update_income(self, driver_id: int, amount: Decimal) -> Driver: ...

    @abstractmethod
    async def update_rating(self, driver_id: int, rating: float) -> Driver: ...

    @abstractmethod
    async def update_location(
        self, driver_id: int, location: Location, cell: str
    ) -> Driver: ...

    @abstractmethod
    async def list_dispatchable(
        self, cells: Optional[set[str]] = None
    ) -> list[Driver]: ...

    @abstractmethod
    async def rebucket(self, cell_of: Callable[[Location], str]) -> int:
        """Recompute every located driver's cell; return how many moved."""


class SqlDriverDirectory(DriverDirectory):
    def __init__(self, session: AsyncSession, clock=None):
        self.session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _find(self, driver_id: int) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.id == driver_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_driver(self, driver_id: int) -> Driver:
        row = await self._find(driver_id)
        if row is None:
            raise NotFoundError(f"Driver {driver_id} not found")
        return driver_to_entity(row)

    async def _update(self, driver_id: int, **values) -> Driver:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundError(f"Driver {driver_id} not found")
        return await self.get_driver(driver_id)

    async def set_status(
        self,
        driver_id: int,
        status: DriverStatus,
        expected: Optional[DriverStatus] = None,
    ) -> bool:
        values: dict = {"status": status}
        if status == DriverStatus.ONLINE:
            values["online_at"] = self._clock()
        elif status == DriverStatus.OFFLINE:
            values["offline_at"] = self._clock()

        stmt = update(DriverModel).where(DriverModel.id == driver_id)
        if expected is not None:
            stmt = stmt.where(DriverModel.status == expected)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug("Driver %d -> %s", driver_id, status.value)
            return True
        # distinguish a missing driver from a lost compare-and-set
        await self.get_driver(driver_id)
        return False

    async def increment_order_stats(self, driver_id: int, completed: bool) -> Driver:
        values = {"total_orders": DriverModel.total_orders + 1}
        if completed:
            values["completed_orders"] = DriverModel.completed_orders + 1
        else:
            values["cancelled_orders"] = DriverModel.cancelled_orders + 1
        return await self._update(driver_id, **values)

    async def update_income(self, driver_id: int, amount: Decimal) -> Driver:
        amount = to_money(amount)
        return await self._update(
            driver_id,
            total_income=DriverModel.total_income + amount,
            this_month_income=DriverModel.this_month_income + amount,
            this_week_income=DriverModel.this_week_income + amount,
            today_income=DriverModel.today_income + amount,
        )

    async def update_rating(self, driver_id: int, rating: float) -> Driver:
        """Fold *rating* into the running average, weighted by total orders."""
        rating = float(rating)
        weighted = (DriverModel.rating * DriverModel.total_orders + rating) / (
            DriverModel.total_orders + 1
        )
        return await self._update(
            driver_id,
            rating=case((DriverModel.total_orders > 0, weighted), else_=rating),
        )

    async def update_location(
        self, driver_id: int, location: Location, cell: str
    ) -> Driver:
        return await self._update(
            driver_id,
            current_latitude=location.latitude,
            current_longitude=location.longitude,
            h3_cell=cell,
            last_location_update=self._clock(),
        )

    async def list_dispatchable(
        self, cells: Optional[set[str]] = None
    ) -> list[Driver]:
        if cells is not None and not cells:
            raise InvalidArgumentError("empty cell covering")
        query = (
            select(DriverModel)
            .where(DriverModel.status == DriverStatus.ONLINE)
            .where(DriverModel.verify_status == DriverVerifyStatus.APPROVED)
            .where(DriverModel.current_latitude.is_not(None))
            .where(DriverModel.current_longitude.is_not(None))
        )
        if cells is not None:
            query = query.where(DriverModel.h3_cell.in_(sorted(cells)))
        result = await self.session.execute(query)
        return [driver_to_entity(row) for row in result.scalars().all()]

    async def rebucket(self, cell_of: Callable[[Location], str]) -> int:
        result = await self.session.execute(
            select(
                DriverModel.id,
                DriverModel.current_latitude,
                DriverModel.current_longitude,
                DriverModel.h3_cell,
            )
            .where(DriverModel.current_latitude.is_not(None))
            .where(DriverModel.current_longitude.is_not(None))
        )
        moved = 0
        for driver_id, latitude, longitude, current in result.all():
            cell = cell_of(Location(latitude, longitude))
            if cell == current:
                continue
            await self.session.execute(
                update(DriverModel)
                .where(DriverModel.id == driver_id)
                .values(h3_cell=cell)
                .execution_options(synchronize_session=False)
            )
            moved += 1
        return moved
