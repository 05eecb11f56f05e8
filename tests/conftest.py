"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from collections.abc import Callable

import pytest

from purpleiq.config import PurpleIQConfig
from purpleiq.providers.credentials import CredentialStore

OPENAI_KEY = "sk-test-openai-key"
GEMINI_KEY = "gemini-test-key-0123456789abcdef"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedComplete:
    """Stand-in for ``llm_client.acomplete``.

    *script* maps a model name to a list of outcomes consumed in order; an
    outcome is either response text or an exception instance to raise. The
    last outcome repeats once the list is exhausted. Models absent from the
    script answer with *default*.
    """

    def __init__(self, script: dict[str, list[object]] | None = None, default: str = "ok") -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: list[dict[str, object]] = []

    async def __call__(self, model: str, messages: list[dict[str, str]], **kwargs: object) -> str:
        self.calls.append({"model": model, "messages": messages, **kwargs})
        outcomes = self.script.get(model)
        if not outcomes:
            return self.default
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return str(outcome)

    @property
    def models(self) -> list[str]:
        return [str(c["model"]) for c in self.calls]


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo configure_logging() calls made by CLI tests so caplog keeps working."""
    logger = logging.getLogger("purpleiq")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> tuple[list[float], Callable]:
    """(recorded delays, async sleep replacement that returns immediately)."""
    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    return delays, _sleep


@pytest.fixture
def scripted() -> type[ScriptedComplete]:
    return ScriptedComplete


@pytest.fixture
def config() -> PurpleIQConfig:
    """Defaults with a deterministic two-provider setup."""
    cfg = PurpleIQConfig()
    cfg.providers.primary = "openai"
    cfg.providers.order = ["openai", "gemini"]
    cfg.providers.models = {
        "openai": ["openai/gpt-4o-mini"],
        "gemini": ["gemini/gemini-2.5-flash", "gemini/gemini-2.0-flash"],
    }
    cfg.storage.backend = "memory"
    return cfg


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore({"openai": OPENAI_KEY, "gemini": GEMINI_KEY}, use_env=False)
