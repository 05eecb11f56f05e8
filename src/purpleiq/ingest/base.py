"""Base chunker interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from purpleiq.store.models import Chunk


class BaseChunker(ABC):
    """Abstract base for document chunkers.

    Sizes are measured in characters. Subclasses implement ``chunk()`` and
    may use ``_make_chunk()`` to build Chunk objects from raw spans.
    """

    def __init__(self, target_size: int = 800, overlap: int = 100) -> None:
        if target_size < 1:
            raise ValueError("target_size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self.target_size = target_size
        self.overlap = overlap

    @abstractmethod
    def chunk(self, text: str, document_name: str = "", project_id: str = "") -> list[Chunk]:
        """Split *text* into Chunk objects.

        Args:
            text: Full decoded text of the source document.
            document_name: Name of the source document (copied onto each chunk).
            project_id: Owning project (copied onto each chunk).

        Returns:
            Ordered list of non-empty Chunks with sequential ``index``.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    @staticmethod
    def _make_chunk(
        text: str,
        start: int,
        end: int,
        index: int,
        document_name: str,
        project_id: str,
        section: str | None = None,
    ) -> Chunk | None:
        """Build a Chunk for the raw span ``text[start:end]``; None if it is blank.

        Surrounding whitespace is trimmed and the offsets narrowed to match,
        so ``text[chunk.char_start:chunk.char_end] == chunk.text``.
        """
        raw = text[start:end]
        body = raw.strip()
        if not body:
            return None
        start += len(raw) - len(raw.lstrip())
        end = start + len(body)
        return Chunk(
            text=body,
            index=index,
            char_start=start,
            char_end=end,
            char_length=len(body),
            document_name=document_name,
            project_id=project_id,
            section=section,
        )
