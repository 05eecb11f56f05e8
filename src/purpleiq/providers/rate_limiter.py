"""Advisory per-provider call-rate tracking.

The tracker never blocks a call. It counts calls in a sliding window per
provider, reports a status (ok / warning / high), logs a throttled warning
when traffic is high, and flags the primary provider as deprioritized once
its trailing-window count reaches the auto-switch threshold. The gateway
consults ``order_providers()`` to move deprioritized providers to the back.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from purpleiq.config import RateLimitCfg

logger = logging.getLogger(__name__)

_HOUR = 3600.0
_WARN_INTERVAL = 60.0

STATE_OK = "ok"
STATE_WARNING = "warning"
STATE_HIGH = "high"


@dataclass(frozen=True)
class RateLimitStatus:
    """Snapshot of one provider's recent call volume."""

    provider: str
    calls_last_minute: int
    calls_last_hour: int
    headroom: int
    state: str
    deprioritized: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "provider": self.provider,
            "callsLastMinute": self.calls_last_minute,
            "callsLastHour": self.calls_last_hour,
            "headroom": self.headroom,
            "state": self.state,
            "deprioritized": self.deprioritized,
        }


class _ProviderWindow:
    """Call timestamps of one provider, guarded by its own lock."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.timestamps: deque[float] = deque()
        self.last_warned: float | None = None
        self.deprioritized = False

    def prune(self, now: float) -> None:
        cutoff = now - _HOUR
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()

    def count_since(self, since: float) -> int:
        n = 0
        for t in reversed(self.timestamps):
            if t <= since:
                break
            n += 1
        return n


class RateLimiter:
    """Sliding-window quota tracker.

    Args:
        config: Thresholds and reset policy.
        primary_provider: The only provider subject to auto-switch.
        clock: Monotonic time source (seconds); injectable for tests.
    """

    def __init__(
        self,
        config: RateLimitCfg | None = None,
        primary_provider: str = "openai",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cfg = config or RateLimitCfg()
        self._primary = primary_provider
        self._clock = clock
        self._windows: dict[str, _ProviderWindow] = {}
        self._windows_lock = threading.Lock()

    @property
    def primary_provider(self) -> str:
        return self._primary

    def _window(self, provider: str) -> _ProviderWindow:
        with self._windows_lock:
            window = self._windows.get(provider)
            if window is None:
                window = _ProviderWindow()
                self._windows[provider] = window
            return window

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_call(self, provider: str, model: str | None = None) -> RateLimitStatus:
        """Count one call for *provider* and update warning / auto-switch state."""
        window = self._window(provider)
        now = self._clock()
        with window.lock:
            window.timestamps.append(now)
            window.prune(now)
            calls = window.count_since(now - self._cfg.window_seconds)

            if calls >= self._cfg.warning_threshold and (
                window.last_warned is None or now - window.last_warned >= _WARN_INTERVAL
            ):
                window.last_warned = now
                logger.warning(
                    "high API usage for %s: %d calls in the last %.0fs (model %s)",
                    provider,
                    calls,
                    self._cfg.window_seconds,
                    model or "-",
                )

            if (
                provider == self._primary
                and not window.deprioritized
                and calls >= self._cfg.auto_switch_threshold
            ):
                window.deprioritized = True
                logger.warning(
                    "%s reached %d calls in the last %.0fs; deprioritizing it for new requests",
                    provider,
                    calls,
                    self._cfg.window_seconds,
                )

        return self.status(provider)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, provider: str) -> RateLimitStatus:
        window = self._window(provider)
        now = self._clock()
        with window.lock:
            window.prune(now)
            minute = window.count_since(now - self._cfg.window_seconds)
            hour = len(window.timestamps)
            self._apply_reset_policy(window, minute)
            deprioritized = window.deprioritized

        threshold = self._cfg.warning_threshold
        if minute >= threshold:
            state = STATE_HIGH
        elif minute >= threshold * self._cfg.warning_ratio:
            state = STATE_WARNING
        else:
            state = STATE_OK

        return RateLimitStatus(
            provider=provider,
            calls_last_minute=minute,
            calls_last_hour=hour,
            headroom=max(0, threshold - minute),
            state=state,
            deprioritized=deprioritized,
        )

    def all_status(self) -> list[RateLimitStatus]:
        with self._windows_lock:
            names = sorted(self._windows)
        return [self.status(name) for name in names]

    def should_deprioritize(self, provider: str) -> bool:
        return self.status(provider).deprioritized

    def order_providers(self, providers: Iterable[str]) -> list[str]:
        """Stable reorder: deprioritized providers move to the back."""
        names = list(providers)
        preferred = [p for p in names if not self.should_deprioritize(p)]
        demoted = [p for p in names if p not in preferred]
        if demoted:
            logger.info("provider order adjusted for rate limits: %s", preferred + demoted)
        return preferred + demoted

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self, provider: str | None = None) -> None:
        """Clear the deprioritized flag for *provider* (or every provider)."""
        with self._windows_lock:
            targets = [self._windows[provider]] if provider in self._windows else (
                list(self._windows.values()) if provider is None else []
            )
        for window in targets:
            with window.lock:
                window.deprioritized = False
                window.last_warned = None

    def _apply_reset_policy(self, window: _ProviderWindow, calls_last_minute: int) -> None:
        """Under the ``window`` policy, lift the flag once traffic drops. Caller holds the lock."""
        if (
            self._cfg.reset_policy == "window"
            and window.deprioritized
            and calls_last_minute < self._cfg.auto_switch_threshold
        ):
            window.deprioritized = False
            logger.info("rate-limit deprioritization lifted after traffic dropped")
