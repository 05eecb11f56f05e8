"""LiteLLM client wrapper.

All completion and embedding calls route through this module. LiteLLM's own
retry is disabled (``num_retries=0``); retry, backoff and failover are the
gateway's job so every attempt is visible to the rate limiter.
"""

from __future__ import annotations

from typing import Any

import litellm

from purpleiq.errors import InvalidResponseError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


def provider_of(model: str) -> str:
    """Return the provider prefix of a LiteLLM ``provider/model`` string."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def build_messages(prompt: str, system_prompt: str | None, provider: str) -> list[dict[str, str]]:
    """Shape a prompt for *provider*.

    OpenAI-style providers get separate system and user messages. Gemini gets
    one user message with the system instructions prepended.
    """
    if not system_prompt:
        return [{"role": "user", "content": prompt}]
    if provider == "gemini":
        return [{"role": "user", "content": f"{system_prompt}\n\n{prompt}"}]
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]


async def acomplete(
    model: str,
    messages: list[dict[str, str]],
    *,
    api_key: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.7,
    timeout: float | None = None,
) -> str:
    """Call ``litellm.acompletion()`` once and return the content string.

    Args:
        model: LiteLLM model string (provider/model format).
        messages: OpenAI-style message list.
        api_key: Provider key; ``None`` lets LiteLLM read the environment.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature.
        timeout: Request timeout forwarded to the SDK.

    Returns:
        The text content of the first choice.

    Raises:
        InvalidResponseError: If the response carries no text content.
        litellm.exceptions.*: Any SDK error, unclassified.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
        "temperature": temperature,
        "num_retries": 0,
    }
    if api_key:
        kwargs["api_key"] = api_key
    if timeout is not None:
        kwargs["timeout"] = timeout

    response = await litellm.acompletion(**kwargs)
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError) as exc:
        raise InvalidResponseError(provider_of(model), "no choices in response", model=model) from exc
    if not isinstance(content, str) or not content.strip():
        raise InvalidResponseError(provider_of(model), "empty response content", model=model)
    return content


async def aembed(
    model: str,
    texts: list[str],
    *,
    api_key: str | None = None,
    timeout: float | None = None,
) -> list[list[float]]:
    """Call ``litellm.aembedding()`` for a batch of texts, preserving order."""
    kwargs: dict[str, Any] = {"model": model, "input": texts, "num_retries": 0}
    if api_key:
        kwargs["api_key"] = api_key
    if timeout is not None:
        kwargs["timeout"] = timeout

    response = await litellm.aembedding(**kwargs)
    data = sorted(response.data, key=lambda d: _field(d, "index", 0))
    vectors = [list(_field(d, "embedding", [])) for d in data]
    if len(vectors) != len(texts) or any(not v for v in vectors):
        raise InvalidResponseError(provider_of(model), "embedding count mismatch", model=model)
    return vectors


def _field(item: Any, name: str, default: Any) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to character-based approximation (4 chars ≈ 1 token) if the model
    is not supported by litellm.token_counter().
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)
