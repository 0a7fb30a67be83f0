"""Driver-facing operations: location reports, availability, nearby search."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .base import Clock, DirectoryFactory, TransactionalService
from ridehail.config import Settings, settings as default_settings
from ridehail.domain.entities import Driver, Location
from ridehail.domain.enums import DriverStatus, DriverVerifyStatus
from ridehail.domain.errors import InvalidArgumentError, InvalidStateError
from ridehail.domain.matching import covering_cells, location_cell, rank_nearby

logger = logging.getLogger(__name__)


class FleetService(TransactionalService):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        directory_factory: Optional[DirectoryFactory] = None,
        clock: Optional[Clock] = None,
        config: Settings = default_settings,
    ):
        super().__init__(
            session_factory, directory_factory=directory_factory, clock=clock
        )
        self._config = config

    async def find_nearby(
        self,
        center: Location,
        radius_km: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> list[Driver]:
        """Online, approved drivers within *radius_km*, best-rated first."""
        radius_km = self._config.nearby_radius_km if radius_km is None else radius_km
        limit = self._config.nearby_limit if limit is None else limit
        if radius_km < 0:
            raise InvalidArgumentError("radius_km must not be negative")
        if limit < 1:
            raise InvalidArgumentError("limit must be positive")

        cells = covering_cells(
            center, radius_km, self._config.h3_resolution, self._config.h3_max_ring
        )
        async with self._transaction() as session:
            candidates = await self._directory(session).list_dispatchable(cells)

        nearby = rank_nearby(candidates, center, radius_km, limit)
        logger.debug(
            "Nearby search: %d candidates, %d within %.1f km",
            len(candidates), len(nearby), radius_km,
        )
        return nearby

    async def update_location(self, driver_id: int, location: Location) -> Driver:
        cell = location_cell(location, self._config.h3_resolution)
        async with self._transaction() as session:
            return await self._directory(session).update_location(
                driver_id, location, cell
            )

    async def rebucket(self) -> int:
        """
        Re-bin every located driver at the configured H3 resolution.

        Cells are stored at the resolution in force when a driver last
        reported a location, so a resolution change leaves older rows in
        cells the covering no longer produces.
        """
        resolution = self._config.h3_resolution
        async with self._transaction() as session:
            moved = await self._directory(session).rebucket(
                lambda location: location_cell(location, resolution)
            )
        if moved:
            logger.info("Re-bucketed %d drivers at H3 resolution %d", moved, resolution)
        return moved

    async def set_availability(self, driver_id: int, status: DriverStatus) -> Driver:
        """
        Driver goes online or offline.  BUSY is owned by the order lifecycle
        and can neither be requested nor left through here.
        """
        if status == DriverStatus.BUSY:
            raise InvalidArgumentError("busy is set by order acceptance only")

        async with self._transaction() as session:
            directory = self._directory(session)
            driver = await directory.get_driver(driver_id)
            if driver.status == DriverStatus.BUSY:
                raise InvalidStateError(
                    f"Driver {driver_id} is on a trip",
                    current=driver.status.value,
                    expected=[DriverStatus.ONLINE.value, DriverStatus.OFFLINE.value],
                )
            if (
                status == DriverStatus.ONLINE
                and driver.verify_status != DriverVerifyStatus.APPROVED
            ):
                raise InvalidStateError(
                    f"Driver {driver_id} is not approved",
                    current=driver.verify_status.value,
                    expected=[DriverVerifyStatus.APPROVED.value],
                )
            if not await directory.set_status(driver_id, status, expected=driver.status):
                raise InvalidStateError(
                    f"Driver {driver_id} changed status concurrently",
                    expected=[driver.status.value],
                )
            driver = await directory.get_driver(driver_id)

        logger.info("Driver %d is now %s", driver_id, status.value)
        return driver
