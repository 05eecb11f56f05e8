"""Embedding generation via LiteLLM, batched, with backoff on transient errors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from purpleiq.config import EmbeddingCfg, RetryCfg
from purpleiq.errors import ProviderError, classify_exception
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.llm_client import aembed, provider_of
from purpleiq.providers.retry import BackoffPolicy

logger = logging.getLogger(__name__)

EmbedFn = Callable[..., Awaitable[list[list[float]]]]


class EmbeddingGenerator:
    """Turn texts into vectors with a single embedding backend.

    Texts are sent in batches of ``config.batch_size``. A batch that fails
    with a rate-limit or network error is retried with the shared backoff
    policy; any other error is raised, classified, immediately.

    Args:
        config: Embedding model and batching settings.
        retry: Backoff settings (defaults match the gateway).
        credentials: Key lookup for the embedding provider.
        embed_fn: Coroutine ``(model, texts, *, api_key) -> vectors``;
            defaults to ``llm_client.aembed``.
        sleep: Coroutine used for waits; injectable for tests.
    """

    def __init__(
        self,
        config: EmbeddingCfg | None = None,
        *,
        retry: RetryCfg | None = None,
        credentials: CredentialStore | None = None,
        embed_fn: EmbedFn = aembed,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or EmbeddingCfg()
        self._policy = BackoffPolicy.from_config(retry or RetryCfg())
        self._credentials = credentials or CredentialStore()
        self._embed = embed_fn
        self._sleep = sleep

    @property
    def model(self) -> str:
        return self._config.model

    async def generate_embeddings(
        self,
        texts: list[str],
        credentials: Mapping[str, str] | None = None,
    ) -> list[list[float]]:
        """Embed *texts*, returning one vector per text in input order.

        Raises:
            ProviderError: The classified failure of a batch after retries.
        """
        if not texts:
            return []

        provider = provider_of(self._config.model)
        api_key = self._credentials.resolve(provider, credentials) or None
        size = self._config.batch_size
        vectors: list[list[float]] = []

        for start in range(0, len(texts), size):
            batch = texts[start : start + size]
            vectors.extend(await self._embed_batch(batch, provider, api_key))
            logger.debug("embedded %d/%d texts", min(start + size, len(texts)), len(texts))
            if self._config.batch_delay and start + size < len(texts):
                await self._sleep(self._config.batch_delay)

        return vectors

    async def generate_embedding(
        self, text: str, credentials: Mapping[str, str] | None = None
    ) -> list[float]:
        """Embed a single text (e.g. a search query)."""
        return (await self.generate_embeddings([text], credentials))[0]

    async def _embed_batch(
        self, batch: list[str], provider: str, api_key: str | None
    ) -> list[list[float]]:
        attempt = 0
        while True:
            try:
                return await self._embed(self._config.model, batch, api_key=api_key)
            except Exception as exc:
                error: ProviderError = classify_exception(exc, provider, self._config.model)
                if not self._policy.should_retry(error, attempt):
                    if error is exc:
                        raise
                    raise error from exc
                delay = self._policy.delay(attempt, error)
                attempt += 1
                logger.warning(
                    "embedding batch failed (%s); retry %d in %.1fs",
                    error.kind.value,
                    attempt,
                    delay,
                )
                await self._sleep(delay)
