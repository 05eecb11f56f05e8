"""Liveness checks for providers, embeddings and vector search.

Each check runs under a deadline and reports one of three states:

  - ``up``: the check passed within half the deadline;
  - ``degraded``: the check passed, but slowly;
  - ``down``: the check failed or hit the deadline.

Failures are classified with the same taxonomy the gateway uses, so a
report says *why* a provider is down (missing key, rate limit, timeout...).
The overall status is ``unhealthy`` if any check is down, ``degraded`` if
any is slow, and ``healthy`` otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from purpleiq.config import PurpleIQConfig
from purpleiq.errors import (
    InvalidResponseError,
    ModelUnavailableError,
    ProviderTimeoutError,
    classify_exception,
)
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.providers.llm_client import acomplete, build_messages, provider_of
from purpleiq.providers.rate_limiter import RateLimiter
from purpleiq.store.models import Chunk, EmbeddingRecord
from purpleiq.store.vector_store import VectorStore

logger = logging.getLogger(__name__)

CompleteFn = Callable[..., Awaitable[str]]

PING_PROMPT = "Reply with the single word: ok"
EMBEDDING_SAMPLE = "This is a test for the embedding service"
SEARCH_PROJECT = "health-check"


class HealthState(str, Enum):
    UP = "up"
    DEGRADED = "degraded"
    DOWN = "down"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of one check.

    Attributes:
        name: Check name (provider name, ``embedding`` or ``vectorSearch``).
        state: up, degraded or down.
        response_time_ms: Wall time the check took.
        error: Failure message when down.
        kind: Error taxonomy value when down.
    """

    name: str
    state: HealthState
    response_time_ms: float
    error: str | None = None
    kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.state.value,
            "responseTime": f"{self.response_time_ms:.0f}ms",
        }
        if self.error is not None:
            data["error"] = self.error
            data["kind"] = self.kind
        return data


@dataclass(frozen=True)
class HealthReport:
    status: str
    checks: dict[str, CheckResult]
    total_time_ms: float

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checks": {name: c.to_dict() for name, c in self.checks.items()},
            "totalCheckTime": f"{self.total_time_ms:.0f}ms",
        }


def overall_status(checks: Mapping[str, CheckResult]) -> str:
    states = {c.state for c in checks.values()}
    if HealthState.DOWN in states:
        return "unhealthy"
    if HealthState.DEGRADED in states:
        return "degraded"
    return "healthy"


class HealthChecker:
    """Run liveness checks against the configured backends.

    Provider checks send one tiny completion to each provider's first model,
    bypassing failover so every provider is judged on its own. They are
    counted by *rate_limiter* when one is given.

    Args:
        config: Provider order, models and the per-call timeout.
        credentials: Key lookup. Defaults to environment lookup.
        embeddings: Embedding backend; defaults to one built from ``config``.
        rate_limiter: Call-rate tracker shared with the gateway.
        complete_fn: Coroutine performing one completion call.
        timeout: Per-check deadline; defaults to ``providers.timeout``.
        clock: Monotonic time source, in seconds.
    """

    def __init__(
        self,
        config: PurpleIQConfig,
        *,
        credentials: CredentialStore | None = None,
        embeddings: EmbeddingGenerator | None = None,
        rate_limiter: RateLimiter | None = None,
        complete_fn: CompleteFn = acomplete,
        timeout: float | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._config = config
        self._credentials = credentials or CredentialStore()
        self._embeddings = embeddings or EmbeddingGenerator(
            config.embedding, retry=config.retry, credentials=self._credentials
        )
        self._rate_limiter = rate_limiter
        self._complete = complete_fn
        self.timeout = timeout if timeout is not None else config.providers.timeout
        self._clock = clock

    @property
    def slow_after(self) -> float:
        return self.timeout / 2

    async def run_all(self, credentials: Mapping[str, str] | None = None) -> HealthReport:
        """Run every check concurrently and summarize."""
        start = self._clock()
        providers = self._config.provider_order()
        results = await asyncio.gather(
            *(self.check_provider(p, credentials) for p in providers),
            self.check_embedding(credentials),
            self.check_vector_search(),
        )
        checks = {r.name: r for r in results}
        report = HealthReport(
            status=overall_status(checks),
            checks=checks,
            total_time_ms=(self._clock() - start) * 1000,
        )
        log = logger.info if report.healthy else logger.warning
        log(
            "health check %s: %s",
            report.status,
            ", ".join(f"{n}={c.state.value}" for n, c in checks.items()),
        )
        return report

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    async def check_provider(
        self, provider: str, credentials: Mapping[str, str] | None = None
    ) -> CheckResult:
        models = self._config.providers.models.get(provider) or []

        async def ping() -> None:
            if not models:
                raise ModelUnavailableError(
                    None, provider, message=f"No models configured for {provider}"
                )
            model = models[0]
            api_key = self._credentials.resolve(provider, credentials)
            if self._rate_limiter is not None:
                self._rate_limiter.record_call(provider, model)
            content = await self._complete(
                model,
                build_messages(PING_PROMPT, None, provider),
                api_key=api_key or None,
                max_tokens=5,
                temperature=0.0,
                timeout=self.timeout,
            )
            if not isinstance(content, str) or not content.strip():
                raise InvalidResponseError(provider, "empty response content", model=model)

        return await self._run(provider, ping, provider=provider, model=models[0] if models else None)

    async def check_embedding(self, credentials: Mapping[str, str] | None = None) -> CheckResult:
        model = self._embeddings.model
        provider = provider_of(model)

        async def embed() -> None:
            vector = await self._embeddings.generate_embedding(EMBEDDING_SAMPLE, credentials)
            if not vector:
                raise InvalidResponseError(provider, "empty embedding vector", model=model)

        return await self._run("embedding", embed, provider=provider, model=model)

    async def check_vector_search(self) -> CheckResult:
        """Index two vectors in a scratch in-memory store and search them."""

        async def search() -> None:
            store = VectorStore()
            await store.add(
                SEARCH_PROJECT,
                [_scratch_record(0, (0.1, 0.2, 0.3)), _scratch_record(1, (0.3, -0.2, 0.0))],
            )
            hits = await store.search(SEARCH_PROJECT, (0.4, 0.5, 0.6), top_k=1, min_similarity=0.5)
            if not hits or hits[0].chunk.index != 0:
                raise RuntimeError("vector search returned the wrong nearest chunk")

        return await self._run("vectorSearch", search)

    async def _run(
        self,
        name: str,
        check: Callable[[], Awaitable[None]],
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> CheckResult:
        start = self._clock()
        try:
            await asyncio.wait_for(check(), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = ProviderTimeoutError(provider or name, self.timeout, model=model)
        except Exception as exc:
            error = classify_exception(exc, provider, model)
        else:
            elapsed = self._clock() - start
            state = HealthState.DEGRADED if elapsed > self.slow_after else HealthState.UP
            return CheckResult(name, state, elapsed * 1000)

        elapsed = self._clock() - start
        logger.warning("%s check failed (%s): %s", name, error.kind.value, error)
        return CheckResult(name, HealthState.DOWN, elapsed * 1000, error=str(error), kind=error.kind.value)


def _scratch_record(index: int, vector: tuple[float, ...]) -> EmbeddingRecord:
    text = f"health check chunk {index}"
    chunk = Chunk(
        text=text,
        index=index,
        char_start=0,
        char_end=len(text),
        char_length=len(text),
        document_name="health-check",
        project_id=SEARCH_PROJECT,
    )
    return EmbeddingRecord(chunk=chunk, vector=vector, project_id=SEARCH_PROJECT)
