"""Per-project vector store with brute-force cosine similarity search.

Each project's records are loaded from the persistence backend once and then
served from memory. Operations on one project are serialized by a
per-project ``asyncio.Lock``; different projects never contend. Backend I/O
runs in a worker thread so the event loop is never blocked on disk.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import AsyncIterator, Sequence

from purpleiq.errors import DimensionMismatchError
from purpleiq.store.models import EmbeddingRecord, ScoredChunk
from purpleiq.store.persistence import InMemoryPersistence, VectorPersistence, validate_project_id

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*, in [-1.0, 1.0].

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = dot / math.sqrt(norm_a * norm_b)
    return max(-1.0, min(1.0, score))


class VectorStore:
    """Add, search and delete embedded chunks, partitioned by project.

    Args:
        persistence: Backend implementing load/save/delete. Defaults to an
            in-memory backend.
    """

    def __init__(self, persistence: VectorPersistence | None = None) -> None:
        self._persistence = persistence if persistence is not None else InMemoryPersistence()
        self._records: dict[str, list[EmbeddingRecord]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _lock(self, project_id: str) -> AsyncIterator[None]:
        """Hold the project's lock; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        self._lock_users[project_id] = self._lock_users.get(project_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[project_id] -= 1
            if not self._lock_users[project_id]:
                del self._lock_users[project_id]
                del self._locks[project_id]

    async def _load(self, project_id: str) -> list[EmbeddingRecord]:
        """Return cached records for *project_id*, loading them on first use. Caller holds the lock."""
        records = self._records.get(project_id)
        if records is None:
            records = await asyncio.to_thread(self._persistence.load, project_id)
            self._records[project_id] = records
        return records

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add(self, project_id: str, records: Sequence[EmbeddingRecord]) -> int:
        """Append *records* to the project's store and persist.

        All records must share the dimension of the vectors already stored
        for the project (or of each other, for an empty project).

        Returns:
            The number of records now stored for the project.

        Raises:
            DimensionMismatchError: On inconsistent vector dimensions; nothing
                is written in that case.
        """
        validate_project_id(project_id)
        if not records:
            return await self.count(project_id)

        async with self._lock(project_id):
            existing = await self._load(project_id)
            expected = existing[0].dimension if existing else records[0].dimension
            for record in records:
                if record.dimension != expected:
                    raise DimensionMismatchError(expected, record.dimension)

            updated = [*existing, *records]
            await asyncio.to_thread(self._persistence.save, project_id, updated)
            self._records[project_id] = updated
            logger.info("stored %d vectors for project %s (total %d)", len(records), project_id, len(updated))
            return len(updated)

    async def delete(self, project_id: str) -> None:
        """Remove every record of *project_id*. Idempotent."""
        validate_project_id(project_id)
        async with self._lock(project_id):
            await asyncio.to_thread(self._persistence.delete, project_id)
            self._records.pop(project_id, None)
            logger.info("deleted vectors for project %s", project_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(
        self,
        project_id: str,
        query_vector: Sequence[float],
        top_k: int = 5,
        min_similarity: float = 0.4,
    ) -> list[ScoredChunk]:
        """Return up to *top_k* chunks with similarity >= *min_similarity*, best first."""
        scored = await self._score(project_id, query_vector)
        hits = [s for s in scored if s.similarity >= min_similarity]
        return hits[: max(0, top_k)]

    async def search_all(
        self,
        project_id: str,
        query_vector: Sequence[float],
        top_k: int = 10,
    ) -> list[ScoredChunk]:
        """Return the *top_k* most similar chunks regardless of any threshold."""
        scored = await self._score(project_id, query_vector)
        return scored[: max(0, top_k)]

    async def count(self, project_id: str) -> int:
        validate_project_id(project_id)
        async with self._lock(project_id):
            return len(await self._load(project_id))

    async def documents(self, project_id: str) -> dict[str, int]:
        """Return ``{document_name: chunk_count}`` for the project."""
        validate_project_id(project_id)
        async with self._lock(project_id):
            counts: dict[str, int] = {}
            for record in await self._load(project_id):
                name = record.chunk.document_name
                counts[name] = counts.get(name, 0) + 1
            return counts

    async def dimension(self, project_id: str) -> int | None:
        validate_project_id(project_id)
        async with self._lock(project_id):
            records = await self._load(project_id)
            return records[0].dimension if records else None

    async def _score(self, project_id: str, query_vector: Sequence[float]) -> list[ScoredChunk]:
        validate_project_id(project_id)
        async with self._lock(project_id):
            records = list(await self._load(project_id))

        if records and len(query_vector) != records[0].dimension:
            raise DimensionMismatchError(records[0].dimension, len(query_vector))
        scored = [
            ScoredChunk(chunk=r.chunk, similarity=cosine_similarity(query_vector, r.vector))
            for r in records
        ]
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored
