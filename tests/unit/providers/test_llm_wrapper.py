"""Tests for the LiteLLM client wrapper."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from purpleiq.errors import InvalidResponseError
from purpleiq.providers.llm_client import (
    acomplete,
    aembed,
    build_messages,
    count_tokens,
    provider_of,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def test_provider_of() -> None:
    assert provider_of("gemini/gemini-2.5-flash") == "gemini"
    assert provider_of("gpt-4o") == "openai"


def test_build_messages_openai_style() -> None:
    assert build_messages("Q", "S", "openai") == [
        {"role": "system", "content": "S"},
        {"role": "user", "content": "Q"},
    ]


def test_build_messages_gemini_merges_system() -> None:
    assert build_messages("Q", "S", "gemini") == [{"role": "user", "content": "S\n\nQ"}]


def test_build_messages_without_system() -> None:
    assert build_messages("Q", None, "openai") == [{"role": "user", "content": "Q"}]


# ------------------------------------------------------------------
# acomplete()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_acomplete_returns_content() -> None:
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "Hello, world!"

    with patch("purpleiq.providers.llm_client.litellm.acompletion", AsyncMock(return_value=mock_response)):
        result = await acomplete("openai/gpt-4o", [{"role": "user", "content": "Hi"}])

    assert result == "Hello, world!"


@pytest.mark.asyncio
async def test_acomplete_disables_litellm_retries() -> None:
    mock_response = MagicMock()
    mock_response.choices[0].message.content = "ok"
    mock_c = AsyncMock(return_value=mock_response)

    with patch("purpleiq.providers.llm_client.litellm.acompletion", mock_c):
        await acomplete(
            "openai/gpt-4o-mini",
            [{"role": "user", "content": "test"}],
            api_key="sk-abc",
            max_tokens=512,
            temperature=0.5,
            timeout=12.0,
        )

    call_kwargs = mock_c.call_args.kwargs
    assert call_kwargs["model"] == "openai/gpt-4o-mini"
    assert call_kwargs["max_tokens"] == 512
    assert call_kwargs["temperature"] == 0.5
    assert call_kwargs["num_retries"] == 0
    assert call_kwargs["api_key"] == "sk-abc"
    assert call_kwargs["timeout"] == 12.0


@pytest.mark.asyncio
async def test_acomplete_empty_content_raises() -> None:
    mock_response = MagicMock()
    mock_response.choices[0].message.content = None

    with patch("purpleiq.providers.llm_client.litellm.acompletion", AsyncMock(return_value=mock_response)):
        with pytest.raises(InvalidResponseError):
            await acomplete("gemini/gemini-2.5-flash", [{"role": "user", "content": "Hi"}])


@pytest.mark.asyncio
async def test_acomplete_no_choices_raises() -> None:
    mock_response = MagicMock()
    mock_response.choices = []

    with patch("purpleiq.providers.llm_client.litellm.acompletion", AsyncMock(return_value=mock_response)):
        with pytest.raises(InvalidResponseError) as exc_info:
            await acomplete("openai/gpt-4o", [{"role": "user", "content": "Hi"}])
    assert exc_info.value.provider == "openai"


# ------------------------------------------------------------------
# aembed()
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_aembed_orders_by_index() -> None:
    mock_response = MagicMock()
    mock_response.data = [
        {"index": 1, "embedding": [0.4, 0.5]},
        {"index": 0, "embedding": [0.1, 0.2]},
    ]

    with patch("purpleiq.providers.llm_client.litellm.aembedding", AsyncMock(return_value=mock_response)) as mock_e:
        result = await aembed("openai/text-embedding-3-small", ["a", "b"])

    assert result == [[0.1, 0.2], [0.4, 0.5]]
    assert mock_e.call_args.kwargs["input"] == ["a", "b"]


@pytest.mark.asyncio
async def test_aembed_count_mismatch_raises() -> None:
    mock_response = MagicMock()
    mock_response.data = [{"index": 0, "embedding": [0.1]}]

    with patch("purpleiq.providers.llm_client.litellm.aembedding", AsyncMock(return_value=mock_response)):
        with pytest.raises(InvalidResponseError):
            await aembed("openai/text-embedding-3-small", ["a", "b"])


# ------------------------------------------------------------------
# count_tokens()
# ------------------------------------------------------------------


def test_count_tokens_falls_back_to_char_estimate() -> None:
    with patch("purpleiq.providers.llm_client.litellm.token_counter", side_effect=Exception("unknown")):
        assert count_tokens("unknown/model", "x" * 40) == 10
