"""Progress events published by the gateway and the request dispatcher.

Events are fire-and-forget: ``publish()`` never blocks and never raises, so
observers cannot influence control flow. Each subscriber owns a bounded queue;
when it is full the oldest event is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A single progress notification.

    Attributes:
        name: Dotted event name, e.g. ``gateway.retry`` or ``request.state``.
        data: Event payload (never contains credentials).
        timestamp: Wall-clock time the event was created.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """In-process publish/subscribe hub backed by per-subscriber asyncio queues."""

    def __init__(self, max_queue: int = 256) -> None:
        self._max_queue = max_queue
        self._subscribers: list[asyncio.Queue[Event]] = []

    def publish(self, name: str, **data: Any) -> Event:
        """Deliver an event to every current subscriber."""
        event = Event(name=name, data=data)
        logger.debug("event %s %s", name, data)
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
        return event

    def subscribe(self) -> asyncio.Queue[Event]:
        """Register and return a new subscriber queue."""
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def stream(self) -> AsyncIterator[Event]:
        """Yield events until the consumer stops iterating."""
        queue = self.subscribe()
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
