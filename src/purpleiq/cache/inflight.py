"""Response coordinator: cache lookup plus in-flight request de-duplication.

Guarantees at most one running computation per key. The first caller for a
key starts the computation as a task and registers it; concurrent callers
with the same key await that same task. Check and registration happen with
no ``await`` in between, so they are atomic on the event loop.

Cancellation is reference-counted: each caller awaits the task through
``asyncio.shield``. A cancelled caller only cancels the shared task when it
was the last one waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from purpleiq.cache.response_cache import ResponseCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class InFlightRequest(Generic[T]):
    key: str
    task: asyncio.Task[T]
    waiters: int = 0


class ResponseCoordinator(Generic[T]):
    """Serve responses from cache, or compute them once per key.

    Args:
        cache: TTL cache for successful results. ``None`` disables caching
            (de-duplication still applies).
    """

    def __init__(self, cache: ResponseCache[T] | None = None) -> None:
        self._cache = cache
        self._inflight: dict[str, InFlightRequest[T]] = {}

    @property
    def cache(self) -> ResponseCache[T] | None:
        return self._cache

    def in_flight(self) -> int:
        return len(self._inflight)

    def is_in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def get_or_compute(self, key: str, compute_fn: Callable[[], Awaitable[T]]) -> T:
        """Return the cached response for *key*, or compute it exactly once.

        Every concurrent caller with the same key receives the same result
        object, or the same exception. Failures are never cached.
        """
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("cache hit %s", key)
                return cached

        entry = self._inflight.get(key)
        if entry is None:
            task: asyncio.Task[T] = asyncio.ensure_future(compute_fn())
            entry = InFlightRequest(key=key, task=task)
            self._inflight[key] = entry
            task.add_done_callback(lambda t, e=entry: self._settle(e, t))
        else:
            logger.debug("joining in-flight request %s", key)

        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            if entry.waiters == 1 and not entry.task.done():
                self._unregister(entry)
                entry.task.cancel()
                logger.debug("last waiter cancelled; cancelling computation %s", key)
            raise
        finally:
            entry.waiters -= 1

    def _unregister(self, entry: InFlightRequest[T]) -> None:
        if self._inflight.get(entry.key) is entry:
            del self._inflight[entry.key]

    def _settle(self, entry: InFlightRequest[T], task: asyncio.Task[T]) -> None:
        self._unregister(entry)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("computation for %s failed: %s", entry.key, exc)
            return
        if self._cache is not None:
            self._cache.set(entry.key, task.result())
