"""In-memory rate limiting for the admin report routes."""
from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimitError(Exception):
    """Raised when a caller exceeds the configured rate limit."""


class FixedWindowRateLimiter:
    """Simple in-memory fixed window rate limiter keyed by identifier."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._monotonic = monotonic
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> None:
        now = self._monotonic()
        with self._lock:
            count, window_start = self._counters.get(key, (0, now))
            if now - window_start >= self._window_seconds:
                count = 0
                window_start = now
            if count >= self._max_requests:
                raise RateLimitError(f"Rate limit exceeded for key {key}")
            self._counters[key] = (count + 1, window_start)
