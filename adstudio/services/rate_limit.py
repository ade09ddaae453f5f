"""In-memory fixed-window request budget keyed by credential token."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class RateConfig:
    window_seconds: int
    max_requests: int


@dataclass
class _Window:
    resets_at: float
    used: int = 0


class RateLimiter:
    """Count requests per key inside fixed windows of ``window_seconds``."""

    def __init__(
        self, config: RateConfig, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._window_seconds = float(max(1, config.window_seconds))
        self._max_requests = max(1, config.max_requests)
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def allow(self, key: str) -> bool:
        """Consume one request from ``key``'s budget if the window permits it."""

        window = self._current(key)
        if window.used >= self._max_requests:
            return False
        window.used += 1
        return True

    def retry_after(self, key: str) -> float:
        """Seconds until ``key`` may send again; 0 while budget remains."""

        window = self._current(key)
        if window.used < self._max_requests:
            return 0.0
        return max(0.0, window.resets_at - self._clock())

    def _current(self, key: str) -> _Window:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now >= window.resets_at:
            window = _Window(resets_at=now + self._window_seconds)
            self._windows[key] = window
        return window


__all__ = ["RateConfig", "RateLimiter"]
