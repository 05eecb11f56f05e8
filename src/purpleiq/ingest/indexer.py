"""Document indexer: chunk, embed and store one document.

For each document:
1. Split the text with the boundary chunker.
2. Embed the chunk texts in batches via the EmbeddingGenerator.
3. Append one EmbeddingRecord per chunk to the project's vector store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from purpleiq.ingest.base import BaseChunker
from purpleiq.ingest.boundary import BoundaryChunker
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.store.models import EmbeddingRecord
from purpleiq.store.persistence import validate_project_id
from purpleiq.store.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexResult:
    """Outcome of indexing one document."""

    document_name: str
    chunks: int
    total_vectors: int


class DocumentIndexer:
    """Chunk, embed and store documents for a project.

    Args:
        store: Destination vector store.
        embeddings: Embedding backend.
        chunker: Defaults to a ``BoundaryChunker`` with default sizes.
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingGenerator,
        chunker: BaseChunker | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._chunker = chunker or BoundaryChunker()

    async def index(
        self,
        project_id: str,
        document_name: str,
        text: str,
        credentials: Mapping[str, str] | None = None,
    ) -> IndexResult:
        """Index *text* under *document_name*; returns counts.

        Empty documents are accepted and produce zero chunks.
        """
        validate_project_id(project_id)
        chunks = self._chunker.chunk(text, document_name=document_name, project_id=project_id)
        if not chunks:
            logger.info("no indexable text in %s", document_name)
            return IndexResult(document_name, 0, await self._store.count(project_id))

        vectors = await self._embeddings.generate_embeddings([c.text for c in chunks], credentials)
        records = [
            EmbeddingRecord(chunk=c, vector=tuple(v), project_id=project_id)
            for c, v in zip(chunks, vectors)
        ]
        total = await self._store.add(project_id, records)
        logger.info("indexed %s: %d chunks", document_name, len(records))
        return IndexResult(document_name, len(records), total)
