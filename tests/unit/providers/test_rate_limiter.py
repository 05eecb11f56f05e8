"""Tests for the advisory sliding-window rate tracker."""

from __future__ import annotations

import logging

import pytest

from purpleiq.config import RateLimitCfg
from purpleiq.providers.rate_limiter import STATE_HIGH, STATE_OK, STATE_WARNING, RateLimiter


def _record(limiter: RateLimiter, provider: str, n: int) -> None:
    for _ in range(n):
        limiter.record_call(provider)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def test_unknown_provider_is_ok(fake_clock) -> None:
    status = RateLimiter(clock=fake_clock).status("gemini")
    assert status.calls_last_minute == 0
    assert status.headroom == 50
    assert status.state == STATE_OK
    assert not status.deprioritized


@pytest.mark.parametrize(
    "calls, state",
    [(1, STATE_OK), (39, STATE_OK), (40, STATE_WARNING), (49, STATE_WARNING), (50, STATE_HIGH)],
)
def test_state_thresholds(fake_clock, calls: int, state: str) -> None:
    limiter = RateLimiter(clock=fake_clock)
    _record(limiter, "gemini", calls)
    status = limiter.status("gemini")
    assert status.state == state
    assert status.headroom == max(0, 50 - calls)


def test_window_slides(fake_clock) -> None:
    limiter = RateLimiter(clock=fake_clock)
    _record(limiter, "openai", 10)
    fake_clock.advance(30)
    _record(limiter, "openai", 5)
    fake_clock.advance(31)

    status = limiter.status("openai")
    assert status.calls_last_minute == 5
    assert status.calls_last_hour == 15

    fake_clock.advance(3600)
    assert limiter.status("openai").calls_last_hour == 0


def test_high_usage_warning_is_throttled(fake_clock, caplog: pytest.LogCaptureFixture) -> None:
    limiter = RateLimiter(clock=fake_clock)
    with caplog.at_level(logging.WARNING, logger="purpleiq.providers.rate_limiter"):
        _record(limiter, "gemini", 55)
    high = [r for r in caplog.records if "high API usage" in r.getMessage()]
    assert len(high) == 1


# ---------------------------------------------------------------------------
# Auto-switch
# ---------------------------------------------------------------------------


def test_primary_deprioritized_at_threshold(fake_clock) -> None:
    limiter = RateLimiter(primary_provider="openai", clock=fake_clock)
    _record(limiter, "openai", 39)
    assert not limiter.should_deprioritize("openai")
    limiter.record_call("openai")
    assert limiter.should_deprioritize("openai")
    assert limiter.order_providers(["openai", "gemini"]) == ["gemini", "openai"]


def test_non_primary_never_deprioritized(fake_clock) -> None:
    limiter = RateLimiter(primary_provider="openai", clock=fake_clock)
    _record(limiter, "gemini", 60)
    assert not limiter.should_deprioritize("gemini")
    assert limiter.order_providers(["openai", "gemini"]) == ["openai", "gemini"]


def test_sticky_flag_survives_quiet_period(fake_clock) -> None:
    limiter = RateLimiter(clock=fake_clock)
    _record(limiter, "openai", 40)
    fake_clock.advance(120)
    assert limiter.should_deprioritize("openai")


def test_reset_clears_flag(fake_clock) -> None:
    limiter = RateLimiter(clock=fake_clock)
    _record(limiter, "openai", 40)
    limiter.reset("openai")
    assert not limiter.should_deprioritize("openai")

    _record(limiter, "openai", 1)
    assert limiter.should_deprioritize("openai")
    limiter.reset()
    assert not limiter.should_deprioritize("openai")


def test_window_policy_lifts_flag_when_traffic_drops(fake_clock) -> None:
    limiter = RateLimiter(RateLimitCfg(reset_policy="window"), clock=fake_clock)
    _record(limiter, "openai", 40)
    assert limiter.should_deprioritize("openai")
    fake_clock.advance(61)
    assert not limiter.should_deprioritize("openai")


def test_all_status_sorted(fake_clock) -> None:
    limiter = RateLimiter(clock=fake_clock)
    limiter.record_call("openai")
    limiter.record_call("gemini")
    assert [s.provider for s in limiter.all_status()] == ["gemini", "openai"]
    assert limiter.all_status()[1].to_dict()["callsLastMinute"] == 1
