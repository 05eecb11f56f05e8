"""Multi-provider call gateway with retry, backoff and failover.

Per call, providers are tried in priority order (preferred/primary first,
then the configured order; providers deprioritized by the rate limiter go to
the back). Within a provider, models are tried in their configured order.

Per model:
  - the rate limiter counts the attempt *before* it is issued;
  - the call runs under ``asyncio.wait_for`` with the configured timeout;
  - rate-limit and network errors are retried with exponential backoff;
  - an authentication failure abandons the whole provider;
  - any other failure moves on to the next model.

When everything is exhausted the gateway either substitutes a canned answer
for the request's intent (if fallback answers are enabled) or raises
``AllProvidersFailedError`` with every attempt's error in order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from purpleiq.config import PurpleIQConfig
from purpleiq.errors import (
    AllProvidersFailedError,
    APIKeyMissingError,
    ErrorKind,
    InvalidResponseError,
    ModelUnavailableError,
    ProviderError,
    ProviderTimeoutError,
    classify_exception,
)
from purpleiq.events import EventBus
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.llm_client import acomplete, build_messages
from purpleiq.providers.rate_limiter import RateLimiter
from purpleiq.providers.retry import BackoffPolicy

logger = logging.getLogger(__name__)

CompleteFn = Callable[..., Awaitable[str]]
SleepFn = Callable[[float], Awaitable[Any]]
FallbackFn = Callable[[str], "str | None"]

FALLBACK_PROVIDER = "fallback"
FALLBACK_MODEL = "static"


@dataclass(frozen=True)
class ProviderCallResult:
    """Outcome of a gateway call.

    Attributes:
        provider: Provider that produced ``content`` (``"fallback"`` for canned answers).
        model: Model that produced ``content``.
        content: Response text.
        retries: Total backoff retries across all providers and models.
        failover_used: True if the answer did not come from the first
            provider/model tried.
        fallback_used: True if ``content`` is a canned answer.
        errors: Every failed attempt, in order.
    """

    provider: str
    model: str
    content: str
    retries: int = 0
    failover_used: bool = False
    fallback_used: bool = False
    errors: tuple[ProviderError, ...] = field(default_factory=tuple)

    @property
    def attempts(self) -> int:
        return len(self.errors) + (0 if self.fallback_used else 1)

    def metadata(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "retries": self.retries,
            "failoverUsed": self.failover_used,
            "fallbackUsed": self.fallback_used,
            "attempts": self.attempts,
        }


class ProviderGateway:
    """Route completion requests across providers and models.

    Args:
        config: Provider order, model lists, timeouts, retry and fallback settings.
        credentials: Key lookup/validation. Defaults to environment lookup.
        rate_limiter: Shared call-rate tracker.
        events: Bus for attempt/retry/failover/fallback notifications.
        complete_fn: Coroutine performing one completion call; defaults to
            ``llm_client.acomplete``.
        sleep: Coroutine used for backoff waits; injectable for tests.
        fallback_answer: Maps an intent name to a canned answer.
    """

    def __init__(
        self,
        config: PurpleIQConfig,
        *,
        credentials: CredentialStore | None = None,
        rate_limiter: RateLimiter | None = None,
        events: EventBus | None = None,
        complete_fn: CompleteFn = acomplete,
        sleep: SleepFn = asyncio.sleep,
        fallback_answer: FallbackFn | None = None,
    ) -> None:
        self._config = config
        self._credentials = credentials or CredentialStore()
        self._rate_limiter = rate_limiter or RateLimiter(
            config.rate_limit, primary_provider=config.providers.primary
        )
        self._events = events or EventBus()
        self._complete = complete_fn
        self._sleep = sleep
        self._fallback_answer = fallback_answer
        self._policy = BackoffPolicy.from_config(config.retry)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def complete_fn(self) -> CompleteFn:
        return self._complete

    def provider_order(self, preferred_provider: str | None = None) -> list[str]:
        """Providers in the order the next call would try them."""
        return self._rate_limiter.order_providers(self._config.provider_order(preferred_provider))

    async def call(
        self,
        prompt: str,
        system_prompt: str | None = None,
        preferred_provider: str | None = None,
        credentials: Mapping[str, str] | None = None,
        *,
        intent: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        allow_fallback: bool = True,
    ) -> ProviderCallResult:
        """Complete *prompt*, failing over across providers and models.

        Args:
            prompt: User prompt text.
            system_prompt: Optional system instructions.
            preferred_provider: Provider to try first; defaults to the primary.
            credentials: Per-request API keys by provider name.
            intent: Intent name used to pick a canned fallback answer.
            timeout: Per-attempt deadline; defaults to ``providers.timeout``.
            max_tokens: Output cap; defaults to ``providers.max_tokens``.
            temperature: Defaults to ``providers.temperature``.
            allow_fallback: Set False to always raise on exhaustion.

        Returns:
            The first successful ``ProviderCallResult``.

        Raises:
            AllProvidersFailedError: When every provider/model failed and no
                canned answer was substituted.
        """
        pcfg = self._config.providers
        deadline = timeout if timeout is not None else pcfg.timeout
        order = self.provider_order(preferred_provider)
        errors: list[ProviderError] = []
        retries = 0
        first = (order[0], (pcfg.models.get(order[0]) or [""])[0]) if order else None

        for provider in order:
            try:
                api_key = self._credentials.resolve(provider, credentials)
            except APIKeyMissingError as exc:
                errors.append(exc)
                logger.warning("skipping %s: %s", provider, exc)
                self._events.publish("gateway.skip", provider=provider, kind=exc.kind.value)
                continue

            models = pcfg.models.get(provider, [])
            if not models:
                errors.append(
                    ModelUnavailableError(None, provider, message=f"No models configured for {provider}")
                )
                continue

            messages = build_messages(prompt, system_prompt, provider)
            tried: list[str] = []

            for model in models:
                if (provider, model) != first:
                    self._events.publish("gateway.failover", provider=provider, model=model)
                    logger.info("failing over to %s/%s", provider, model)
                tried.append(model)
                attempt = 0

                while True:
                    self._rate_limiter.record_call(provider, model)
                    self._events.publish(
                        "gateway.attempt", provider=provider, model=model, attempt=attempt
                    )
                    outcome = await self._attempt(
                        provider,
                        model,
                        messages,
                        api_key=api_key or None,
                        timeout=deadline,
                        max_tokens=max_tokens if max_tokens is not None else pcfg.max_tokens,
                        temperature=temperature if temperature is not None else pcfg.temperature,
                    )
                    if isinstance(outcome, str):
                        self._events.publish("gateway.success", provider=provider, model=model)
                        return ProviderCallResult(
                            provider=provider,
                            model=model,
                            content=outcome,
                            retries=retries,
                            failover_used=(provider, model) != first,
                            errors=tuple(errors),
                        )

                    error = outcome
                    errors.append(error)
                    logger.warning(
                        "%s/%s failed (%s, attempt %d): %s",
                        provider,
                        model,
                        error.kind.value,
                        attempt + 1,
                        error,
                    )
                    if not self._policy.should_retry(error, attempt):
                        break
                    delay = self._policy.delay(attempt, error)
                    attempt += 1
                    retries += 1
                    self._events.publish(
                        "gateway.retry",
                        provider=provider,
                        model=model,
                        attempt=attempt,
                        delay=delay,
                        kind=error.kind.value,
                    )
                    await self._sleep(delay)

                if errors[-1].kind is ErrorKind.API_KEY_MISSING:
                    logger.warning("credentials rejected by %s; skipping its other models", provider)
                    break
                if isinstance(errors[-1], ModelUnavailableError):
                    errors[-1].tried_models = list(tried)

        return self._exhausted(order, errors, retries, intent, allow_fallback)

    async def _attempt(
        self,
        provider: str,
        model: str,
        messages: list[dict[str, str]],
        *,
        api_key: str | None,
        timeout: float,
        max_tokens: int,
        temperature: float,
    ) -> str | ProviderError:
        """Run one call; return the content, or the classified error."""
        try:
            content = await asyncio.wait_for(
                self._complete(
                    model,
                    messages,
                    api_key=api_key,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ProviderTimeoutError(provider, timeout, model=model)
        except Exception as exc:
            return classify_exception(exc, provider, model)

        if not isinstance(content, str) or not content.strip():
            return InvalidResponseError(provider, "empty response content", model=model)
        return content

    def _exhausted(
        self,
        order: list[str],
        errors: list[ProviderError],
        retries: int,
        intent: str | None,
        allow_fallback: bool,
    ) -> ProviderCallResult:
        if allow_fallback and intent and self._config.fallback.enabled and self._fallback_answer:
            answer = self._fallback_answer(intent)
            if answer:
                logger.error("all providers failed; returning fallback answer for %s", intent)
                self._events.publish("gateway.fallback", intent=intent, errors=len(errors))
                return ProviderCallResult(
                    provider=FALLBACK_PROVIDER,
                    model=FALLBACK_MODEL,
                    content=answer,
                    retries=retries,
                    failover_used=True,
                    fallback_used=True,
                    errors=tuple(errors),
                )

        logger.error("all providers failed: %s", ", ".join(order) or "none configured")
        self._events.publish("gateway.exhausted", providers=order, errors=len(errors))
        raise AllProvidersFailedError(order, errors)
