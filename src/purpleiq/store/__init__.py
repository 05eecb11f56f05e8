"""PurpleIQ vector store layer."""

from purpleiq.store.models import Chunk, EmbeddingRecord, ScoredChunk
from purpleiq.store.persistence import (
    InMemoryPersistence,
    JsonFilePersistence,
    VectorPersistence,
    validate_project_id,
)
from purpleiq.store.sqlite import SqlitePersistence
from purpleiq.store.vector_store import VectorStore, cosine_similarity

__all__ = [
    "Chunk",
    "EmbeddingRecord",
    "ScoredChunk",
    "VectorPersistence",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "SqlitePersistence",
    "VectorStore",
    "cosine_similarity",
    "validate_project_id",
]
