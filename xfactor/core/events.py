"""
Event Bus.

Central publish/subscribe hub for every viral growth lifecycle event
(trigger received, action evaluated, loop executed, invite sent, errors).

The bus is an ordinary object: the composition root constructs one and hands
it to every component that publishes or subscribes.

Usage:
    bus = EventBus()
    unsubscribe = bus.subscribe(EventType.INVITE_SENT, handler)
    await bus.publish(ViralEvent.create(EventType.INVITE_SENT, {"user_id": "u1"}))
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, Union

from loguru import logger

from .types import ALL_EVENTS, EventType

EventHandler = Callable[["ViralEvent"], Union[Awaitable[None], None]]

DEFAULT_MAX_HISTORY_SIZE = 10_000


def _channel(event_type: EventType | str) -> str:
    """Normalize an event type to the plain string used as a channel key."""
    if isinstance(event_type, Enum):
        return str(event_type.value)
    return str(event_type)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ViralEvent:
    """An immutable fact published once on the bus."""

    event_type: str
    timestamp: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_type", _channel(self.event_type))
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @classmethod
    def create(
        cls,
        event_type: EventType | str,
        payload: Mapping[str, Any] | None = None,
    ) -> ViralEvent:
        """Build an event stamped with the current UTC time."""
        return cls(event_type=_channel(event_type), timestamp=utc_now_iso(), payload=payload or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the external event shape."""
        return {
            "eventType": self.event_type,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
        }


class EventBus:
    """
    Publish/subscribe hub with a bounded history buffer.

    - Handlers may be plain callables or coroutine functions.
    - All handlers for one event run concurrently and are awaited together.
    - A failing handler is logged and never affects other handlers or the publisher.
    """

    def __init__(self, max_history_size: int = DEFAULT_MAX_HISTORY_SIZE):
        if max_history_size < 1:
            raise ValueError("max_history_size must be at least 1")
        self.max_history_size = max_history_size
        # channel -> ordered set of handlers (dict keys keep subscription order)
        self._subscribers: dict[str, dict[EventHandler, None]] = {}
        self._history: deque[ViralEvent] = deque(maxlen=max_history_size)

    async def publish(self, event: ViralEvent) -> None:
        """
        Record the event and deliver it to its channel and to wildcard subscribers.

        Args:
            event: Event to publish
        """
        self._history.append(event)

        handlers = [
            *self._subscribers.get(event.event_type, {}),
            *self._subscribers.get(ALL_EVENTS, {}),
        ]
        if not handlers:
            return

        await asyncio.gather(*(self._deliver(handler, event) for handler in handlers))

    async def _deliver(self, handler: EventHandler, event: ViralEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Error in event handler for {}", event.event_type)

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe a handler to one event type, or to every event with ``"*"``.

        Subscribing the same handler twice to the same channel has no effect.

        Returns:
            Callable that removes exactly this handler from exactly this channel
        """
        channel = _channel(event_type)
        self._subscribers.setdefault(channel, {})[handler] = None

        def unsubscribe() -> None:
            handlers = self._subscribers.get(channel)
            if handlers is not None:
                handlers.pop(handler, None)

        return unsubscribe

    def get_history(
        self,
        event_type: EventType | str | None = None,
        limit: int | None = None,
    ) -> list[ViralEvent]:
        """Snapshot of retained events, optionally filtered and truncated to the last ``limit``."""
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        events = list(self._history)
        if event_type is not None:
            channel = _channel(event_type)
            events = [e for e in events if e.event_type == channel]
        if limit is not None:
            events = events[-limit:] if limit else []
        return events

    def clear_history(self) -> None:
        """Empty the history buffer. Subscriptions are untouched."""
        self._history.clear()

    def get_subscriber_count(self, event_type: EventType | str | None = None) -> int:
        if event_type is not None:
            return len(self._subscribers.get(_channel(event_type), {}))
        return sum(len(handlers) for handlers in self._subscribers.values())
