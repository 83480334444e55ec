"""
In-process event publication for channel sync

Subscribers are called in registration order. A failing subscriber is
logged and skipped; it never affects the sync that published the event
or the other subscribers.
"""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Union

from channel_sync.utils.logging import get_safe_logger

logger = get_safe_logger("channel_sync.events")

AVAILABILITY_PUSHED = "availability_pushed"
RATES_PUSHED = "rates_pushed"
RESERVATIONS_PULLED = "reservations_pulled"
RESERVATION_IMPORTED = "reservation_imported"

EVENT_NAMES = (
    AVAILABILITY_PUSHED,
    RATES_PUSHED,
    RESERVATIONS_PULLED,
    RESERVATION_IMPORTED,
)


@dataclass(frozen=True)
class ChannelEvent:
    name: str
    channel: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[ChannelEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Typed callback registry keyed by event name"""

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, name: str, handler: EventHandler) -> None:
        if name not in EVENT_NAMES:
            raise ValueError(f"Unknown channel event: {name}")
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(name, [])
        if handler in handlers:
            handlers.remove(handler)

    def subscribers(self, name: str) -> List[EventHandler]:
        return list(self._subscribers.get(name, []))

    async def publish(self, event: ChannelEvent) -> int:
        """Deliver to every subscriber; returns the number that failed"""
        failed = 0
        for handler in self.subscribers(event.name):
            handler_name = getattr(handler, "__qualname__", repr(handler))
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                failed += 1
                logger.error(
                    "event_subscriber_failed",
                    event_name=event.name,
                    channel=event.channel,
                    handler=handler_name,
                    error=str(e),
                )
        return failed
