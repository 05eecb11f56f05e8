"""Boundary-aware chunker.

Strategy:
- Walk the text with a cursor. The candidate end of each chunk is
  ``cursor + target_size``.
- Search ``[max(cursor + MIN, end - WINDOW), min(end + WINDOW, len)]`` for a
  natural boundary, in priority order: paragraph break, sentence terminator
  followed by whitespace, single newline. Within a class the match nearest
  the candidate end wins. Without any match the chunk is cut at the target.
- The next chunk starts ``overlap`` characters before the previous cut
  (always advancing by at least one character).
- A short tail (<= MIN characters) or a tail that fits in one target is
  emitted whole.

Target size is clamped to [200, 1000] characters; overlap is clamped to 20 %
of the target. No chunk span exceeds ``target_size + WINDOW`` characters.
"""

from __future__ import annotations

import logging
import re

from purpleiq.ingest.base import BaseChunker
from purpleiq.store.models import Chunk

logger = logging.getLogger(__name__)

MIN_CHUNK_SIZE = 200
MAX_CHUNK_SIZE = 1000
BOUNDARY_WINDOW = 200
MAX_OVERLAP_RATIO = 0.2

_SENTENCE_END_RE = re.compile(r"[.!?]\s+")
_MD_HEADING_RE = re.compile(r"^#+\s+(.+)$")
_NUMBERED_HEADING_RE = re.compile(r"^\d+\.?\s+[A-Z]")


class BoundaryChunker(BaseChunker):
    """Split text at paragraph, sentence or line boundaries near a target size."""

    def __init__(self, target_size: int = 800, overlap: int = 100) -> None:
        super().__init__(target_size=target_size, overlap=overlap)
        self.target_size = max(MIN_CHUNK_SIZE, min(MAX_CHUNK_SIZE, target_size))
        self.overlap = min(overlap, int(self.target_size * MAX_OVERLAP_RATIO))

    @property
    def max_span(self) -> int:
        return self.target_size + BOUNDARY_WINDOW

    def chunk(self, text: str, document_name: str = "", project_id: str = "") -> list[Chunk]:
        if not text or not text.strip():
            return []

        length = len(text)
        chunks: list[Chunk] = []
        cursor = 0

        while cursor < length:
            end = cursor + self.target_size
            if length - cursor <= MIN_CHUNK_SIZE or end >= length:
                self._append(chunks, text, cursor, length, document_name, project_id)
                break

            split = self._find_split(text, cursor, end)
            self._append(chunks, text, cursor, split, document_name, project_id)
            cursor = max(cursor + 1, split - self.overlap)

        logger.debug(
            "chunked %s into %d chunks (target=%d, overlap=%d)",
            document_name or "<text>",
            len(chunks),
            self.target_size,
            self.overlap,
        )
        return chunks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append(
        self,
        chunks: list[Chunk],
        text: str,
        start: int,
        end: int,
        document_name: str,
        project_id: str,
    ) -> None:
        body = text[start:end]
        chunk = self._make_chunk(
            text,
            start,
            end,
            len(chunks),
            document_name,
            project_id,
            section=detect_section(body),
        )
        if chunk is not None:
            chunks.append(chunk)

    def _find_split(self, text: str, cursor: int, end: int) -> int:
        """Return the cut offset for the chunk starting at *cursor*."""
        lo = max(cursor + MIN_CHUNK_SIZE, end - BOUNDARY_WINDOW)
        hi = min(end + BOUNDARY_WINDOW, len(text))
        window = text[lo:hi]

        for candidates in (
            _offsets_after(window, "\n\n"),
            [m.end() for m in _SENTENCE_END_RE.finditer(window)],
            _offsets_after(window, "\n"),
        ):
            positions = [lo + c for c in candidates if lo + c <= hi]
            if positions:
                return min(positions, key=lambda p: (abs(p - end), p))

        return end


def _offsets_after(window: str, needle: str) -> list[int]:
    """Offsets just past every occurrence of *needle* in *window*."""
    offsets: list[int] = []
    start = window.find(needle)
    while start != -1:
        offsets.append(start + len(needle))
        start = window.find(needle, start + 1)
    return offsets


def detect_section(text: str) -> str | None:
    """Return a section label from the first three non-empty lines, if any.

    Recognised: markdown headings (``# Title``), numbered headings
    (``2. Scope``) and short all-caps lines (``OVERVIEW``).
    """
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()][:3]
    for line in lines:
        if m := _MD_HEADING_RE.match(line):
            return m.group(1).strip()
        if _NUMBERED_HEADING_RE.match(line):
            return line
        if len(line) < 100 and line == line.upper() and any(c.isalpha() for c in line):
            return line
    return None
