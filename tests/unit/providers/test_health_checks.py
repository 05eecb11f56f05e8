"""Tests for provider, embedding and vector-search liveness checks."""

from __future__ import annotations

import asyncio

import litellm
import pytest

from purpleiq.config import EmbeddingCfg
from purpleiq.providers.credentials import CredentialStore
from purpleiq.providers.embeddings import EmbeddingGenerator
from purpleiq.providers.health import CheckResult, HealthChecker, HealthState, overall_status
from purpleiq.providers.rate_limiter import RateLimiter

OPENAI = "openai/gpt-4o-mini"
GEMINI = "gemini/gemini-2.5-flash"


async def _embed(model: str, texts: list[str], **kwargs) -> list[list[float]]:
    return [[0.1, 0.2, 0.3] for _ in texts]


async def _no_sleep(seconds: float) -> None:
    return None


async def _broken_embed(model: str, texts: list[str], **kwargs) -> list[list[float]]:
    raise litellm.APIConnectionError(message="connection refused", llm_provider="ollama", model=model)


def _checker(config, credentials, complete, *, embed_fn=_embed, **kwargs) -> HealthChecker:
    embeddings = EmbeddingGenerator(
        EmbeddingCfg(model="ollama/nomic-embed-text"),
        credentials=credentials,
        embed_fn=embed_fn,
        sleep=_no_sleep,
    )
    return HealthChecker(
        config, credentials=credentials, embeddings=embeddings, complete_fn=complete, **kwargs
    )


# ---------------------------------------------------------------------------
# run_all
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_all_checks_up(config, credentials, scripted) -> None:
    complete = scripted()
    report = await _checker(config, credentials, complete).run_all()

    assert report.status == "healthy"
    assert report.healthy
    assert list(report.checks) == ["openai", "gemini", "embedding", "vectorSearch"]
    assert all(c.state is HealthState.UP for c in report.checks.values())
    # Each provider is pinged on its first model only.
    assert sorted(complete.models) == [GEMINI, OPENAI]
    assert all(call["max_tokens"] == 5 for call in complete.calls)


@pytest.mark.asyncio
async def test_missing_key_reports_provider_down(config, scripted) -> None:
    credentials = CredentialStore({"openai": "sk-test-openai-key"}, use_env=False)
    complete = scripted()
    report = await _checker(config, credentials, complete).run_all()

    gemini = report.checks["gemini"]
    assert gemini.state is HealthState.DOWN
    assert gemini.kind == "api_key_missing"
    assert report.checks["openai"].state is HealthState.UP
    assert report.status == "unhealthy"
    assert complete.models == [OPENAI]


@pytest.mark.asyncio
async def test_provider_error_is_classified(config, credentials, scripted) -> None:
    limited = litellm.RateLimitError(message="slow down", llm_provider="openai", model="gpt-4o-mini")
    complete = scripted({OPENAI: [limited]})
    result = await _checker(config, credentials, complete).check_provider("openai")

    assert result.state is HealthState.DOWN
    assert result.kind == "rate_limit"
    assert result.to_dict()["kind"] == "rate_limit"


@pytest.mark.asyncio
async def test_empty_reply_is_down(config, credentials, scripted) -> None:
    result = await _checker(config, credentials, scripted({OPENAI: ["  "]})).check_provider("openai")
    assert result.state is HealthState.DOWN
    assert result.kind == "invalid_response"


@pytest.mark.asyncio
async def test_provider_without_models_is_down(config, credentials, scripted) -> None:
    config.providers.models["gemini"] = []
    result = await _checker(config, credentials, scripted()).check_provider("gemini")
    assert result.state is HealthState.DOWN
    assert result.kind == "model_unavailable"


@pytest.mark.asyncio
async def test_hung_provider_times_out(config, credentials) -> None:
    async def hang(model, messages, **kwargs) -> str:
        await asyncio.sleep(10)
        return "late"

    result = await _checker(config, credentials, hang, timeout=0.01).check_provider("openai")
    assert result.state is HealthState.DOWN
    assert result.kind == "timeout"


@pytest.mark.asyncio
async def test_slow_success_is_degraded(config, credentials, fake_clock) -> None:
    async def slow(model, messages, **kwargs) -> str:
        fake_clock.advance(6.0)
        return "ok"

    checker = _checker(config, credentials, slow, timeout=10.0, clock=fake_clock)
    result = await checker.check_provider("openai")

    assert result.state is HealthState.DEGRADED
    assert result.response_time_ms == pytest.approx(6000.0)
    assert result.to_dict() == {"status": "degraded", "responseTime": "6000ms"}


@pytest.mark.asyncio
async def test_embedding_failure_reports_down(config, credentials, scripted) -> None:
    checker = _checker(config, credentials, scripted(), embed_fn=_broken_embed)
    result = await checker.check_embedding()
    assert result.state is HealthState.DOWN
    assert result.kind == "network"


@pytest.mark.asyncio
async def test_vector_search_self_test(config, credentials, scripted) -> None:
    result = await _checker(config, credentials, scripted()).check_vector_search()
    assert result.name == "vectorSearch"
    assert result.state is HealthState.UP


@pytest.mark.asyncio
async def test_checks_counted_by_rate_limiter(config, credentials, scripted) -> None:
    limiter = RateLimiter(config.rate_limit, primary_provider="openai")
    await _checker(config, credentials, scripted(), rate_limiter=limiter).run_all()
    assert limiter.status("openai").calls_last_minute == 1
    assert limiter.status("gemini").calls_last_minute == 1


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def test_overall_status() -> None:
    up = CheckResult("a", HealthState.UP, 1.0)
    slow = CheckResult("b", HealthState.DEGRADED, 9.0)
    down = CheckResult("c", HealthState.DOWN, 2.0, error="boom", kind="generic")

    assert overall_status({"a": up}) == "healthy"
    assert overall_status({"a": up, "b": slow}) == "degraded"
    assert overall_status({"a": up, "b": slow, "c": down}) == "unhealthy"


@pytest.mark.asyncio
async def test_report_to_dict(config, credentials, scripted) -> None:
    data = (await _checker(config, credentials, scripted()).run_all()).to_dict()
    assert data["status"] == "healthy"
    assert data["checks"]["embedding"]["status"] == "up"
    assert data["totalCheckTime"].endswith("ms")
