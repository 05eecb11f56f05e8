"""Tests for the document indexer (chunk → embed → store)."""

from __future__ import annotations

import pytest

from purpleiq.config import EmbeddingCfg
from purpleiq.errors import InvalidProjectIdError
from purpleiq.ingest import BoundaryChunker, DocumentIndexer
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.store import VectorStore


async def _embed(model: str, texts: list[str], **kwargs) -> list[list[float]]:
    return [[float(len(t)), 1.0, 0.0] for t in texts]


def _indexer(store: VectorStore) -> DocumentIndexer:
    embeddings = EmbeddingGenerator(
        EmbeddingCfg(model="ollama/nomic-embed-text", batch_size=2),
        credentials=CredentialStore(use_env=False),
        embed_fn=_embed,
    )
    return DocumentIndexer(store, embeddings, BoundaryChunker(200, 20))


@pytest.mark.asyncio
async def test_index_stores_one_vector_per_chunk() -> None:
    store = VectorStore()
    text = "The login page validates credentials. " * 30
    result = await _indexer(store).index("acme", "prd.md", text)

    assert result.document_name == "prd.md"
    assert result.chunks > 1
    assert result.total_vectors == result.chunks
    assert await store.documents("acme") == {"prd.md": result.chunks}


@pytest.mark.asyncio
async def test_index_accumulates_across_documents() -> None:
    store = VectorStore()
    indexer = _indexer(store)
    first = await indexer.index("acme", "a.md", "Short document about checkout.")
    second = await indexer.index("acme", "b.md", "Another short document about search.")
    assert first.total_vectors == 1
    assert second.total_vectors == 2


@pytest.mark.asyncio
async def test_index_empty_document_adds_nothing() -> None:
    store = VectorStore()
    result = await _indexer(store).index("acme", "empty.md", "   ")
    assert result.chunks == 0
    assert await store.count("acme") == 0


@pytest.mark.asyncio
async def test_index_rejects_bad_project_id() -> None:
    with pytest.raises(InvalidProjectIdError):
        await _indexer(VectorStore()).index("a/b", "doc.md", "text")
