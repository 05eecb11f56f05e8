"""Tests for cosine similarity and the per-project vector store."""

from __future__ import annotations

import asyncio
import math

import pytest

from purpleiq.errors import DimensionMismatchError, InvalidProjectIdError
from purpleiq.store import Chunk, EmbeddingRecord, VectorStore, cosine_similarity


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(text: str, vector: list[float], project: str = "proj", index: int = 0, doc: str = "doc.md") -> EmbeddingRecord:
    chunk = Chunk(
        text=text,
        index=index,
        char_start=0,
        char_end=len(text),
        char_length=len(text),
        document_name=doc,
        project_id=project,
    )
    return EmbeddingRecord(chunk=chunk, vector=tuple(vector), project_id=project)


def _unit(dim: int, i: int) -> list[float]:
    v = [0.0] * dim
    v[i] = 1.0
    return v


# ---------------------------------------------------------------------------
# cosine_similarity
# ---------------------------------------------------------------------------


def test_cosine_identical_vectors_is_one() -> None:
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_cosine_opposite_vectors_is_minus_one() -> None:
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)


def test_cosine_orthogonal_vectors_is_zero() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_zero_vector_returns_zero() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_is_scale_invariant() -> None:
    assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)


def test_cosine_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


# ---------------------------------------------------------------------------
# add / count / delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_returns_total_and_count() -> None:
    store = VectorStore()
    total = await store.add("proj", [_record("a", [1.0, 0.0]), _record("b", [0.0, 1.0], index=1)])
    assert total == 2
    assert await store.count("proj") == 2
    assert await store.dimension("proj") == 2


@pytest.mark.asyncio
async def test_add_rejects_dimension_mismatch_without_writing() -> None:
    store = VectorStore()
    await store.add("proj", [_record("a", [1.0, 0.0])])
    with pytest.raises(DimensionMismatchError):
        await store.add("proj", [_record("b", [1.0, 0.0, 0.0])])
    assert await store.count("proj") == 1


@pytest.mark.asyncio
async def test_projects_are_isolated() -> None:
    store = VectorStore()
    await store.add("alpha", [_record("a", [1.0, 0.0], project="alpha")])
    assert await store.count("beta") == 0
    assert await store.search("beta", [1.0, 0.0]) == []


@pytest.mark.asyncio
async def test_delete_is_idempotent() -> None:
    store = VectorStore()
    await store.add("proj", [_record("a", [1.0, 0.0])])
    await store.delete("proj")
    await store.delete("proj")
    assert await store.count("proj") == 0


@pytest.mark.asyncio
async def test_project_locks_released_after_use() -> None:
    store = VectorStore()
    await asyncio.gather(
        store.add("proj", [_record("a", [1.0, 0.0])]),
        store.add("proj", [_record("b", [0.0, 1.0], index=1)]),
        store.count("other"),
    )
    assert await store.count("proj") == 2
    await store.delete("proj")
    assert store._locks == {}


@pytest.mark.asyncio
async def test_documents_counts_chunks_per_document() -> None:
    store = VectorStore()
    await store.add(
        "proj",
        [
            _record("a", [1.0, 0.0], doc="prd.md"),
            _record("b", [0.0, 1.0], index=1, doc="prd.md"),
            _record("c", [1.0, 1.0], doc="design.pdf"),
        ],
    )
    assert await store.documents("proj") == {"prd.md": 2, "design.pdf": 1}


@pytest.mark.asyncio
async def test_invalid_project_id_rejected() -> None:
    store = VectorStore()
    with pytest.raises(InvalidProjectIdError):
        await store.count("../etc")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_filters_by_threshold_and_orders_best_first() -> None:
    store = VectorStore()
    await store.add(
        "proj",
        [
            _record("exact", [1.0, 0.0], index=0),
            _record("close", [0.9, 0.1], index=1),
            _record("far", [0.0, 1.0], index=2),
        ],
    )
    hits = await store.search("proj", [1.0, 0.0], top_k=5, min_similarity=0.4)
    assert [h.chunk.text for h in hits] == ["exact", "close"]
    assert hits[0].similarity >= hits[1].similarity


@pytest.mark.asyncio
async def test_search_respects_top_k() -> None:
    store = VectorStore()
    await store.add("proj", [_record(f"c{i}", [1.0, i * 0.01], index=i) for i in range(10)])
    hits = await store.search("proj", [1.0, 0.0], top_k=3, min_similarity=0.0)
    assert len(hits) == 3


@pytest.mark.asyncio
async def test_search_all_ignores_threshold() -> None:
    store = VectorStore()
    await store.add("proj", [_record("far", [0.0, 1.0]), _record("farther", [-1.0, 0.0], index=1)])
    assert await store.search("proj", [1.0, 0.0], min_similarity=0.4) == []
    best = await store.search_all("proj", [1.0, 0.0], top_k=1)
    assert [b.chunk.text for b in best] == ["far"]


@pytest.mark.asyncio
async def test_search_768_dim_five_chunk_scenario() -> None:
    """Similarities 0.9, 0.7, 0.5, 0.3, 0.1 against e1 → top three above 0.4."""
    dim = 768
    e1 = _unit(dim, 0)
    records = []
    for i, s in enumerate([0.9, 0.7, 0.5, 0.3, 0.1]):
        v = [0.0] * dim
        v[0] = s
        v[1] = math.sqrt(1.0 - s * s)
        records.append(_record(f"chunk-{i}", v, index=i))

    store = VectorStore()
    await store.add("proj", records)
    hits = await store.search("proj", e1, top_k=5, min_similarity=0.4)

    assert [h.chunk.text for h in hits] == ["chunk-0", "chunk-1", "chunk-2"]
    assert [round(h.similarity, 4) for h in hits] == [0.9, 0.7, 0.5]


@pytest.mark.asyncio
async def test_search_query_dimension_mismatch_raises() -> None:
    store = VectorStore()
    await store.add("proj", [_record("a", [1.0, 0.0])])
    with pytest.raises(DimensionMismatchError):
        await store.search("proj", [1.0, 0.0, 0.0])
