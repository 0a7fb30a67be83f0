"""
FastAPI application factory.

* Builds the order lifecycle engine and fleet service and wires them to
  the configured notification sink.
* Maps the dispatch error taxonomy onto HTTP status codes.
* Re-bins drivers at the configured H3 resolution on startup.
* Drains queued notifications and closes pools on shutdown.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridehail.api.middleware import limiter
from ridehail.api.routes import admin, drivers, orders
from ridehail.config import Settings, settings as default_settings
from ridehail.domain.errors import (
    ConflictError,
    DispatchError,
    InternalError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from ridehail.infrastructure import database, redis_client
from ridehail.infrastructure.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    RedisNotificationSink,
)
from ridehail.services.fleet import FleetService
from ridehail.services.lifecycle import OrderLifecycle

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
    InvalidArgumentError: 422,
    InternalError: 500,
}


def build_sink(config: Settings) -> NotificationSink:
    if config.notification_backend == "redis":
        return RedisNotificationSink(redis_client.get_redis(), config.notification_channel)
    return LoggingNotificationSink()


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Re-bin drivers on startup; flush notifications and release pools on shutdown."""
    await app.state.fleet.rebucket()
    yield
    await app.state.lifecycle.drain()
    if app.state.owns_infrastructure:
        await redis_client.close_pool()
        await database.engine.dispose()


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    sink: Optional[NotificationSink] = None,
    config: Settings = default_settings,
) -> FastAPI:
    app = FastAPI(
        title="Ride-Hailing Dispatch API",
        description=(
            "Order lifecycle for a ride-hailing platform: creation, "
            "first-come driver acceptance, trip progress, payment and "
            "rating, plus nearby-driver search."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Services
    app.state.owns_infrastructure = session_factory is None
    session_factory = session_factory or database.async_session_factory
    app.state.lifecycle = OrderLifecycle(
        session_factory, sink or build_sink(config), config=config
    )
    app.state.fleet = FleetService(session_factory, config=config)

    # Error mapping
    app.add_exception_handler(DispatchError, dispatch_error_handler)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(orders.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
