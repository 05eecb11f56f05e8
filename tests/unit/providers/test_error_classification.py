"""Tests for the provider error taxonomy and exception classification."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import litellm
import pytest

from purpleiq.errors import (
    RETRYABLE_KINDS,
    AllProvidersFailedError,
    APIKeyMissingError,
    ErrorKind,
    InvalidResponseError,
    ModelUnavailableError,
    NetworkError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
    classify_exception,
)


# ---------------------------------------------------------------------------
# LiteLLM exception types
# ---------------------------------------------------------------------------


def test_litellm_authentication_error() -> None:
    exc = litellm.AuthenticationError(message="bad key", llm_provider="openai", model="gpt-4o-mini")
    err = classify_exception(exc, "openai", "openai/gpt-4o-mini")
    assert isinstance(err, APIKeyMissingError)
    assert err.provider == "openai"
    assert err.model == "openai/gpt-4o-mini"


def test_litellm_rate_limit_error() -> None:
    exc = litellm.RateLimitError(message="slow down", llm_provider="openai", model="gpt-4o-mini")
    err = classify_exception(exc, "openai", "openai/gpt-4o-mini")
    assert isinstance(err, RateLimitError)
    assert err.kind is ErrorKind.RATE_LIMIT


def test_litellm_not_found_error() -> None:
    exc = litellm.NotFoundError(message="no such model", model="gpt-9", llm_provider="openai")
    err = classify_exception(exc, "openai", "openai/gpt-9")
    assert isinstance(err, ModelUnavailableError)


def test_litellm_connection_error() -> None:
    exc = litellm.APIConnectionError(message="reset", llm_provider="openai", model="gpt-4o-mini")
    assert isinstance(classify_exception(exc, "openai"), NetworkError)


def test_litellm_timeout() -> None:
    exc = litellm.Timeout(message="took too long", model="gpt-4o-mini", llm_provider="openai")
    assert isinstance(classify_exception(exc, "openai"), ProviderTimeoutError)


# ---------------------------------------------------------------------------
# Builtins and unknown exception types
# ---------------------------------------------------------------------------


def test_builtin_timeout_and_connection_errors() -> None:
    assert isinstance(classify_exception(asyncio.TimeoutError()), ProviderTimeoutError)
    assert isinstance(classify_exception(ConnectionRefusedError("refused")), NetworkError)


def test_already_classified_error_passes_through() -> None:
    original = NetworkError("gemini")
    assert classify_exception(original) is original


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Invalid API key provided", APIKeyMissingError),
        ("HTTP 429 Too Many Requests", RateLimitError),
        ("quota exceeded for project", RateLimitError),
        ("model not found", ModelUnavailableError),
        ("request timed out", ProviderTimeoutError),
        ("network unreachable", NetworkError),
        ("malformed payload", InvalidResponseError),
    ],
)
def test_unknown_exceptions_classified_by_message(message: str, expected: type) -> None:
    assert isinstance(classify_exception(RuntimeError(message), "gemini"), expected)


def test_unknown_message_is_generic() -> None:
    err = classify_exception(RuntimeError("something odd"), "gemini")
    assert type(err) is ProviderError
    assert err.kind is ErrorKind.GENERIC


def test_retry_after_header_extracted() -> None:
    exc = RuntimeError("rate limit reached")
    exc.response = SimpleNamespace(headers={"retry-after": "7"})
    err = classify_exception(exc, "openai")
    assert isinstance(err, RateLimitError)
    assert err.retry_after == 7.0
    assert "7 seconds" in err.user_message


# ---------------------------------------------------------------------------
# Error objects
# ---------------------------------------------------------------------------


def test_only_rate_limit_and_network_are_retryable() -> None:
    assert RETRYABLE_KINDS == {ErrorKind.RATE_LIMIT, ErrorKind.NETWORK}


def test_user_messages_are_provider_agnostic() -> None:
    err = ModelUnavailableError("gemini/gemini-2.5-pro", "gemini")
    assert "gemini" not in err.user_message.lower()


def test_all_providers_failed_keeps_errors_in_order() -> None:
    errors = [NetworkError("openai"), APIKeyMissingError("gemini")]
    exc = AllProvidersFailedError(["openai", "gemini"], errors)
    assert exc.errors == errors
    data = exc.to_dict()
    assert data["kind"] == "all_providers_failed"
    assert [e["provider"] for e in data["errors"]] == ["openai", "gemini"]
    assert data["status_code"] == 503
