"""Exponential backoff policy shared by the gateway and the embedding generator."""

from __future__ import annotations

from dataclasses import dataclass

from purpleiq.config import RetryCfg
from purpleiq.errors import RETRYABLE_KINDS, ProviderError, RateLimitError


@dataclass(frozen=True)
class BackoffPolicy:
    """Delays of ``base_delay * 2**attempt`` seconds, capped at ``max_delay``.

    With the defaults the retries of one model wait 1s, 2s and 4s.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 4.0

    @classmethod
    def from_config(cls, cfg: RetryCfg) -> BackoffPolicy:
        return cls(max_retries=cfg.max_retries, base_delay=cfg.base_delay, max_delay=cfg.max_delay)

    def should_retry(self, error: ProviderError, attempt: int) -> bool:
        """True if *error* is retryable and *attempt* (0-based) is below the limit."""
        return error.kind in RETRYABLE_KINDS and attempt < self.max_retries

    def delay(self, attempt: int, error: ProviderError | None = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``.

        A provider ``retry-after`` hint replaces the computed delay, still
        bounded by ``max_delay``.
        """
        if isinstance(error, RateLimitError) and error.retry_after:
            return max(0.0, min(float(error.retry_after), self.max_delay))
        return min(self.base_delay * (2 ** attempt), self.max_delay)
