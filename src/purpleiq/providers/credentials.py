"""Provider credential lookup and validation.

Keys supplied by the caller (per request) take precedence over keys found in
the environment. A provider listed with ``None`` needs no key.
Keys are never logged.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from purpleiq.errors import APIKeyMissingError

logger = logging.getLogger(__name__)

PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

_MIN_GEMINI_KEY_LENGTH = 20


def env_var_for(provider: str) -> str | None:
    """Return the environment variable holding *provider*'s key (None if keyless)."""
    name = provider.lower()
    if name in PROVIDER_ENV:
        return PROVIDER_ENV[name]
    return f"{name.upper()}_API_KEY"


def requires_key(provider: str) -> bool:
    return env_var_for(provider) is not None


class CredentialStore:
    """Resolve and validate API keys per provider.

    Args:
        keys: Static keys by provider name, checked before the environment.
        use_env: Whether to fall back to ``<PROVIDER>_API_KEY`` env vars.
    """

    def __init__(self, keys: Mapping[str, str] | None = None, *, use_env: bool = True) -> None:
        self._keys = dict(keys or {})
        self._use_env = use_env

    def lookup(self, provider: str, overrides: Mapping[str, str] | None = None) -> str | None:
        """Return the raw key for *provider* (request override → static → env)."""
        if overrides and overrides.get(provider):
            return overrides[provider]
        if self._keys.get(provider):
            return self._keys[provider]
        env_var = env_var_for(provider)
        if self._use_env and env_var:
            return os.getenv(env_var) or None
        return None

    def validate(self, key: str | None, provider: str) -> str:
        """Return the cleaned key, or raise APIKeyMissingError.

        Rules:
          - keyless providers (e.g. ``ollama``) always pass and return ``""``;
          - empty / whitespace keys are rejected;
          - OpenAI keys must start with ``sk-``;
          - suspiciously short Gemini keys are accepted with a warning.
        """
        if not requires_key(provider):
            return ""

        cleaned = (key or "").strip()
        if not cleaned:
            raise APIKeyMissingError(provider)

        if provider == "openai" and not cleaned.startswith("sk-"):
            raise APIKeyMissingError(
                provider, message="Invalid OpenAI API key format (expected 'sk-' prefix)"
            )

        if provider == "gemini" and len(cleaned) < _MIN_GEMINI_KEY_LENGTH:
            logger.warning("gemini API key looks unusually short; it may be rejected")

        return cleaned

    def resolve(self, provider: str, overrides: Mapping[str, str] | None = None) -> str:
        """Look up and validate the key for *provider* in one step."""
        return self.validate(self.lookup(provider, overrides), provider)


class EnvCredentialStore(CredentialStore):
    """Keys from ``<PROVIDER>_API_KEY`` environment variables only."""

    def __init__(self) -> None:
        super().__init__(use_env=True)
