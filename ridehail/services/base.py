"""Transaction boundary shared by the service classes."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridehail.domain.errors import ConflictError, InternalError
from ridehail.infrastructure.database import unit_of_work
from ridehail.infrastructure.directory import DriverDirectory, SqlDriverDirectory

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
DirectoryFactory = Callable[[AsyncSession, Clock], DriverDirectory]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionalService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        directory_factory: Optional[DirectoryFactory] = None,
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self._directory_factory = directory_factory or SqlDriverDirectory
        self._clock = clock or utc_now

    def _directory(self, session: AsyncSession) -> DriverDirectory:
        return self._directory_factory(session, self._clock)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """
        One unit of work.  Domain errors pass through untouched; storage
        errors become ``ConflictError`` (uniqueness) or ``InternalError``.
        """
        try:
            async with unit_of_work(self._session_factory) as session:
                yield session
        except IntegrityError as exc:
            raise ConflictError(f"Uniqueness violation: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            logger.error("Storage failure: %s", exc)
            raise InternalError(f"Storage failure: {exc}") from exc
