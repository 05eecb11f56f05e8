"""Context assembler: retrieved chunks → prompt context under a token budget.

Format per chunk::

    [Document <n>: <document name>]
    <chunk text>

Chunks are joined with ``\\n\\n---\\n\\n`` in retrieval order (best first)
until the token budget is reached. Conversation history, when present, is
appended after the document context.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from purpleiq.providers.llm_client import count_tokens
from purpleiq.store.models import ScoredChunk

_SEPARATOR = "\n\n---\n\n"
_DEFAULT_BUDGET = 8_192


@dataclass
class AssembledContext:
    text: str = ""
    chunks: list[ScoredChunk] = field(default_factory=list)
    total_tokens: int = 0
    truncated: bool = False

    def sources(self) -> list[dict[str, Any]]:
        return [s.source_ref() for s in self.chunks]


def format_chunk(position: int, scored: ScoredChunk) -> str:
    return f"[Document {position}: {scored.chunk.document_name}]\n{scored.chunk.text}"


def assemble(
    chunks: list[ScoredChunk] | tuple[ScoredChunk, ...],
    *,
    history: str = "",
    token_budget: int = _DEFAULT_BUDGET,
    model: str = "openai/gpt-4o-mini",
) -> AssembledContext:
    """Build prompt context from *chunks* and optional *history*.

    Args:
        chunks: Retrieved chunks, best first.
        history: Pre-rendered conversation context block.
        token_budget: Maximum tokens for the document part.
        model: Model used for token counting.

    Returns:
        AssembledContext with the rendered text and the chunks that fit.
    """
    result = AssembledContext()
    parts: list[str] = []

    for scored in chunks:
        block = format_chunk(len(parts) + 1, scored)
        tokens = count_tokens(model, block)
        if parts and result.total_tokens + tokens > token_budget:
            result.truncated = True
            break
        parts.append(block)
        result.chunks.append(scored)
        result.total_tokens += tokens

    text = _SEPARATOR.join(parts)
    if history:
        text = f"{text}\n\n{history}" if text else history
    result.text = text
    return result
