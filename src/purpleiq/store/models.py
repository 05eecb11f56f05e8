"""Domain models for the vector store layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Chunk:
    """A bounded, contiguous span of a source document.

    ``text`` is exactly ``source[char_start:char_end]``: chunk boundaries
    never include leading or trailing whitespace, and ``char_length`` equals
    ``char_end - char_start``.
    """

    text: str
    index: int
    char_start: int
    char_end: int
    char_length: int
    document_name: str = ""
    project_id: str = ""
    section: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "index": self.index,
            "charStart": self.char_start,
            "charEnd": self.char_end,
            "charLength": self.char_length,
            "documentName": self.document_name,
            "projectId": self.project_id,
            "section": self.section,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chunk:
        text = str(data.get("text", ""))
        start = int(data.get("charStart", 0))
        return cls(
            text=text,
            index=int(data.get("index", data.get("chunkIndex", 0))),
            char_start=start,
            char_end=int(data.get("charEnd", start + len(text))),
            char_length=int(data.get("charLength", len(text))),
            document_name=str(data.get("documentName", "")),
            project_id=str(data.get("projectId", "")),
            section=data.get("section"),
        )


@dataclass(frozen=True)
class EmbeddingRecord:
    """One chunk plus its embedding vector."""

    chunk: Chunk
    vector: tuple[float, ...]
    project_id: str

    @property
    def dimension(self) -> int:
        return len(self.vector)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "embedding": list(self.vector),
            "chunk": self.chunk.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddingRecord:
        return cls(
            chunk=Chunk.from_dict(data.get("chunk", {})),
            vector=tuple(float(x) for x in data.get("embedding", [])),
            project_id=str(data.get("projectId", "")),
        )


@dataclass(frozen=True)
class ScoredChunk:
    """A retrieved chunk with its cosine similarity to the query."""

    chunk: Chunk
    similarity: float

    def source_ref(self) -> dict[str, Any]:
        """Citation payload returned to callers alongside an answer."""
        return {
            "documentName": self.chunk.document_name,
            "chunkIndex": self.chunk.index,
            "similarity": round(self.similarity, 4),
        }
