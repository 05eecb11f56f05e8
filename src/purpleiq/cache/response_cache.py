"""TTL response cache.

Entries expire lazily (checked on every read) and are also purged by
``sweep()``, which the service runs periodically. Mutations contain no
suspension points, so the cache needs no lock under asyncio.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from purpleiq.cache.keys import project_of

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """One cached response."""

    key: str
    response: T
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class ResponseCache(Generic[T]):
    """Key → response map with a fixed time-to-live.

    Args:
        ttl: Seconds an entry stays valid.
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> T | None:
        """Return the live response for *key*, or None (expired entries are dropped)."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.response

    def set(self, key: str, response: T) -> None:
        self._entries[key] = CacheEntry(key=key, response=response, created_at=self._clock(), ttl=self.ttl)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_project(self, project_id: str) -> int:
        """Drop every entry whose key belongs to *project_id*."""
        doomed = [k for k in self._entries if project_of(k) == project_id]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries; returns how many were removed."""
        now = self._clock()
        doomed = [k for k, e in self._entries.items() if e.expired(now)]
        for k in doomed:
            del self._entries[k]
        if doomed:
            logger.debug("cache sweep removed %d expired entries", len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / total, 3) if total else 0.0,
            "ttlSeconds": self.ttl,
        }
