"""
Notification sinks for order lifecycle events.

The engine hands every committed transition to a ``NotificationSink`` and
does not wait for delivery.  Delivery is at-least-once from the engine's
point of view; consumers de-duplicate on ``event_id``.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
from pydantic import BaseModel, Field

from ridehail.domain.enums import EventKind

logger = logging.getLogger(__name__)


class OrderEvent(BaseModel):
    """Wire envelope published for every lifecycle event."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: EventKind
    order_id: int
    payload: dict[str, Any] = {}
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "ridehail-dispatch"


class NotificationSink(ABC):
    @abstractmethod
    async def emit(self, kind: EventKind, order_id: int, payload: dict[str, Any]) -> None: ...


class RedisNotificationSink(NotificationSink):
    """Publishes JSON envelopes on a Redis pub/sub channel."""

    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def emit(self, kind: EventKind, order_id: int, payload: dict[str, Any]) -> None:
        event = OrderEvent(kind=kind, order_id=order_id, payload=payload)
        receivers = await self.redis.publish(self.channel, event.model_dump_json())
        logger.info(
            "Published %s for order %d to %s (%d receivers)",
            kind.value, order_id, self.channel, receivers,
        )


class LoggingNotificationSink(NotificationSink):
    """Local-development sink: writes the envelope to the log."""

    async def emit(self, kind: EventKind, order_id: int, payload: dict[str, Any]) -> None:
        event = OrderEvent(kind=kind, order_id=order_id, payload=payload)
        logger.info("[LOCAL EVENT] %s", event.model_dump_json())
