"""
Lightweight event bus - in-process listeners plus optional Redis fan-out.

Publishers call publish() with an event object. Local listeners registered
for the event class run in registration order; a failing listener is logged
and never stops the others. When a Redis client is supplied, events are also
published on a channel so other instances can react.

Key events:
- WebhookNotificationSent: a failure alert went out for (provider, event)
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

CHANNEL = "hookwarden:events"

Listener = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class WebhookNotificationSent:
    provider: str
    event: str
    failure_count: int
    log_id: Optional[str]
    channels: tuple[str, ...]
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class EventDispatcher:
    def __init__(self, redis=None):
        self._listeners: dict[type, list[Listener]] = {}
        self._redis = redis

    def subscribe(self, event_type: type, listener: Listener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def listeners_for(self, event_type: type) -> list[Listener]:
        return list(self._listeners.get(event_type, []))

    async def publish(self, event: Any) -> None:
        for listener in self.listeners_for(type(event)):
            try:
                await listener(event)
            except Exception as e:
                logger.error(
                    "Event listener %s failed for %s: %s",
                    getattr(listener, "__name__", repr(listener)),
                    type(event).__name__,
                    str(e),
                )

        if self._redis is not None:
            payload = json.dumps(
                {"type": type(event).__name__, "data": asdict(event)}, default=str
            )
            try:
                await self._redis.publish(CHANNEL, payload)
                logger.debug("Event published: %s", type(event).__name__)
            except Exception:
                logger.warning("Failed to publish event: %s", type(event).__name__)
