"""PurpleIQ error taxonomy.

Every failure that crosses the provider boundary is translated into one of the
classes below by ``classify_exception()``. Callers above the gateway never see
raw SDK exceptions; they see a ``ProviderError`` with a ``kind`` and a
provider-agnostic ``user_message`` that is safe to show to end users.

Hierarchy:
  PurpleIQError
    ProviderError
      APIKeyMissingError
      ModelUnavailableError
      RateLimitError
      InvalidResponseError
      ProviderTimeoutError
      NetworkError
      AllProvidersFailedError
    DimensionMismatchError
    InvalidProjectIdError
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import litellm

# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------


class ErrorKind(str, Enum):
    """Closed set of provider failure categories."""

    API_KEY_MISSING = "api_key_missing"
    MODEL_UNAVAILABLE = "model_unavailable"
    RATE_LIMIT = "rate_limit"
    INVALID_RESPONSE = "invalid_response"
    TIMEOUT = "timeout"
    NETWORK = "network"
    ALL_PROVIDERS_FAILED = "all_providers_failed"
    GENERIC = "generic"


# Kinds that are retried on the same model with backoff.
RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset([ErrorKind.RATE_LIMIT, ErrorKind.NETWORK])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PurpleIQError(Exception):
    """Base class for every error raised by the purpleiq package."""


class ProviderError(PurpleIQError):
    """A classified failure of a single provider/model call.

    Attributes:
        kind: Failure category used for retry and failover decisions.
        provider: Provider name (e.g. ``openai``), or ``None`` if unknown.
        model: Model identifier, or ``None`` if unknown.
        status_code: HTTP-like status code for API surfaces.
        user_message: Friendly, provider-agnostic description.
    """

    kind: ErrorKind = ErrorKind.GENERIC
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        model: str | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.user_message = user_message or (
            "An error occurred while contacting the AI service. Please try again."
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable summary (never includes credentials)."""
        return {
            "kind": self.kind.value,
            "provider": self.provider,
            "model": self.model,
            "message": str(self),
            "user_message": self.user_message,
            "status_code": self.status_code,
        }


class APIKeyMissingError(ProviderError):
    """No usable credential for the provider (missing, malformed, or rejected)."""

    kind = ErrorKind.API_KEY_MISSING
    status_code = 401

    def __init__(self, provider: str | None = None, message: str | None = None, **kw: Any) -> None:
        name = provider or "the selected provider"
        super().__init__(
            message or f"API key missing or invalid for {name}",
            provider=provider,
            user_message=(
                f"API key is missing or invalid for {name}. "
                "Please configure a valid API key and try again."
            ),
            **kw,
        )


class ModelUnavailableError(ProviderError):
    """The requested model does not exist or is not served right now."""

    kind = ErrorKind.MODEL_UNAVAILABLE
    status_code = 503

    def __init__(
        self,
        model: str | None = None,
        provider: str | None = None,
        tried_models: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        self.tried_models = list(tried_models or [])
        super().__init__(
            message or f"Model {model} is unavailable",
            provider=provider,
            model=model,
            user_message=(
                "The AI model is temporarily unavailable. "
                "Please try again later or switch to a different provider."
            ),
        )


class RateLimitError(ProviderError):
    """The provider throttled the request."""

    kind = ErrorKind.RATE_LIMIT
    status_code = 429

    def __init__(
        self,
        provider: str | None = None,
        retry_after: float | None = None,
        message: str | None = None,
        model: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        hint = (
            f"Please wait {int(retry_after)} seconds before trying again."
            if retry_after
            else "Please try again in a few moments."
        )
        super().__init__(
            message or f"Rate limit exceeded for {provider}",
            provider=provider,
            model=model,
            user_message=f"Rate limit exceeded. {hint}",
        )


class InvalidResponseError(ProviderError):
    """The provider answered, but the payload was empty or malformed."""

    kind = ErrorKind.INVALID_RESPONSE
    status_code = 502

    def __init__(
        self,
        provider: str | None = None,
        details: str = "",
        model: str | None = None,
    ) -> None:
        self.details = details
        super().__init__(
            f"Invalid response from {provider}: {details}".rstrip(": "),
            provider=provider,
            model=model,
            user_message=(
                "Received an invalid response from the AI service. "
                "Please try rephrasing your question."
            ),
        )


class ProviderTimeoutError(ProviderError):
    """The call exceeded its deadline."""

    kind = ErrorKind.TIMEOUT
    status_code = 504

    def __init__(
        self,
        provider: str | None = None,
        timeout_seconds: float | None = None,
        model: str | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Request to {provider} timed out after {timeout_seconds} seconds",
            provider=provider,
            model=model,
            user_message=(
                "The request took too long to process. "
                "Please try again with a shorter question or simpler request."
            ),
        )


class NetworkError(ProviderError):
    """Connection-level failure reaching the provider."""

    kind = ErrorKind.NETWORK
    status_code = 503

    def __init__(
        self,
        provider: str | None = None,
        message: str | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(
            message or f"Network error connecting to {provider}",
            provider=provider,
            model=model,
            user_message=(
                "Unable to connect to the AI service. "
                "Please check your internet connection and try again."
            ),
        )


class AllProvidersFailedError(ProviderError):
    """Every configured provider and model was exhausted.

    Attributes:
        providers: Provider names in the order they were tried.
        errors: Ordered per-provider/per-model errors.
    """

    kind = ErrorKind.ALL_PROVIDERS_FAILED
    status_code = 503

    def __init__(self, providers: list[str], errors: list[ProviderError]) -> None:
        self.providers = list(providers)
        self.errors = list(errors)
        super().__init__(
            f"All AI providers failed: {', '.join(self.providers) or 'none configured'}",
            user_message=(
                "All AI services are currently unavailable. "
                "Please try again later or contact support if the issue persists."
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class DimensionMismatchError(PurpleIQError, ValueError):
    """Two vectors (or a vector and a project's store) differ in dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")


class InvalidProjectIdError(PurpleIQError, ValueError):
    """Project identifier is empty or contains characters unsafe for storage keys."""


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _retry_after_from(exc: BaseException) -> float | None:
    """Extract a ``retry-after`` hint (seconds) from an SDK exception, if any."""
    for attr in ("response", "litellm_response_headers"):
        holder = getattr(exc, attr, None)
        headers = getattr(holder, "headers", holder)
        if headers is None or not hasattr(headers, "get"):
            continue
        try:
            value = headers.get("retry-after") or headers.get("Retry-After")
        except (TypeError, AttributeError):
            continue
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
    return None


def _classify_by_message(
    exc: BaseException, provider: str | None, model: str | None
) -> ProviderError:
    """Substring heuristics for exceptions of unknown type."""
    msg = str(exc).lower()
    status = getattr(exc, "status_code", None)

    if (
        "api key" in msg
        or "authentication" in msg
        or "unauthorized" in msg
        or status == 401
        or "401" in msg
    ):
        return APIKeyMissingError(provider, message=str(exc), model=model)

    if (
        "rate limit" in msg
        or "quota" in msg
        or "too many requests" in msg
        or status == 429
        or "429" in msg
    ):
        return RateLimitError(provider, _retry_after_from(exc), message=str(exc), model=model)

    if (
        "not found" in msg
        or status == 404
        or "404" in msg
        or ("model" in msg and "unavailable" in msg)
    ):
        return ModelUnavailableError(model, provider, message=str(exc))

    if "timeout" in msg or "timed out" in msg or status == 504 or "504" in msg:
        return ProviderTimeoutError(provider, None, model=model)

    if (
        "network" in msg
        or "connection" in msg
        or "econnrefused" in msg
        or "enotfound" in msg
    ):
        return NetworkError(provider, message=str(exc), model=model)

    if ("invalid" in msg and "response" in msg) or "malformed" in msg or "parse" in msg:
        return InvalidResponseError(provider, str(exc), model=model)

    return ProviderError(str(exc) or type(exc).__name__, provider=provider, model=model)


def classify_exception(
    exc: BaseException,
    provider: str | None = None,
    model: str | None = None,
) -> ProviderError:
    """Map any exception raised by a provider call onto the error taxonomy.

    LiteLLM exception types are matched first; message-substring heuristics
    are only used for exceptions whose type carries no category.

    Args:
        exc: The exception raised by the SDK (or an already-classified error).
        provider: Provider name to attach to the result.
        model: Model identifier to attach to the result.

    Returns:
        A ``ProviderError`` subclass instance. Already-classified errors are
        returned unchanged.
    """
    if isinstance(exc, ProviderError):
        return exc

    # Timeout subclasses APIConnectionError in the OpenAI SDK hierarchy.
    if isinstance(exc, litellm.Timeout):
        return ProviderTimeoutError(provider, getattr(exc, "timeout", None), model=model)
    if isinstance(exc, litellm.AuthenticationError):
        return APIKeyMissingError(provider, message=str(exc), model=model)
    if isinstance(exc, litellm.RateLimitError):
        return RateLimitError(provider, _retry_after_from(exc), message=str(exc), model=model)
    if isinstance(exc, litellm.NotFoundError):
        return ModelUnavailableError(model, provider, message=str(exc))
    if isinstance(exc, litellm.ServiceUnavailableError):
        return ModelUnavailableError(model, provider, message=str(exc))
    if isinstance(exc, litellm.APIConnectionError):
        return NetworkError(provider, message=str(exc), model=model)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
            return ProviderTimeoutError(provider, None, model=model)
        return NetworkError(provider, message=str(exc), model=model)

    return _classify_by_message(exc, provider, model)
