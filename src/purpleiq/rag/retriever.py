"""Dense retriever over the project vector store.

The query is embedded with the same model used at ingest and compared
against every stored chunk. Chunks at or above ``min_similarity`` are
returned best-first. When none qualify, the best ``fallback_top_k`` chunks
are returned anyway and the result is marked degraded, so generation can
still proceed with low-confidence context.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from purpleiq.config import RetrievalCfg
from purpleiq.errors import DimensionMismatchError, ProviderError
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.store.models import ScoredChunk
from purpleiq.store.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalResult:
    """Chunks selected for a query plus search-quality metadata.

    Attributes:
        chunks: Selected chunks, best first.
        degraded: True if no chunk met the threshold and the best
            below-threshold chunks were used instead.
        best_similarity: Highest similarity seen (0.0 if nothing was scored).
        threshold: Threshold the search ran with.
        error: Embedding failure message when retrieval was skipped.
    """

    chunks: tuple[ScoredChunk, ...] = field(default_factory=tuple)
    degraded: bool = False
    best_similarity: float = 0.0
    threshold: float = 0.0
    error: str | None = None

    @property
    def documents(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for s in self.chunks:
            seen.setdefault(s.chunk.document_name, None)
        return tuple(seen)

    def search_quality(self) -> dict[str, Any]:
        sims = [s.similarity for s in self.chunks]
        return {
            "chunksFound": len(self.chunks),
            "minScore": round(min(sims), 4) if sims else None,
            "maxScore": round(max(sims), 4) if sims else None,
            "bestScore": round(self.best_similarity, 4),
            "threshold": self.threshold,
            "degraded": self.degraded,
        }


class Retriever:
    """Embed a query and search one project's vectors.

    Args:
        store: Vector store to search.
        embeddings: Embedding backend (must match the ingest model).
        config: top-k and threshold settings.
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingGenerator,
        config: RetrievalCfg | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._config = config or RetrievalCfg()

    async def retrieve(
        self,
        project_id: str,
        query: str,
        credentials: Mapping[str, str] | None = None,
    ) -> RetrievalResult:
        """Return relevant chunks for *query*.

        Embedding failures and a query vector whose dimension differs from
        the project index do not raise: they are logged and an empty,
        degraded result carrying the error message is returned.
        """
        cfg = self._config
        if await self._store.count(project_id) == 0:
            logger.info("project %s has no indexed documents", project_id)
            return RetrievalResult(threshold=cfg.min_similarity)

        try:
            query_vector = await self._embeddings.generate_embedding(query, credentials)
        except ProviderError as exc:
            logger.warning("query embedding failed, continuing without document context: %s", exc)
            return RetrievalResult(degraded=True, threshold=cfg.min_similarity, error=str(exc))

        try:
            hits = await self._store.search(project_id, query_vector, cfg.top_k, cfg.min_similarity)
            best = [] if hits else await self._store.search_all(project_id, query_vector, cfg.fallback_top_k)
        except DimensionMismatchError as exc:
            logger.error(
                "query vector does not fit the index of project %s: %s",
                project_id,
                exc,
            )
            return RetrievalResult(degraded=True, threshold=cfg.min_similarity, error=str(exc))

        if hits:
            logger.debug(
                "retrieved %d chunks for project %s (best %.4f)", len(hits), project_id, hits[0].similarity
            )
            return RetrievalResult(
                chunks=tuple(hits),
                best_similarity=hits[0].similarity,
                threshold=cfg.min_similarity,
            )

        best_score = best[0].similarity if best else 0.0
        logger.info(
            "no chunks above %.2f for project %s; best match %.4f, using degraded context",
            cfg.min_similarity,
            project_id,
            best_score,
        )
        return RetrievalResult(
            chunks=tuple(best),
            degraded=True,
            best_similarity=best_score,
            threshold=cfg.min_similarity,
        )
