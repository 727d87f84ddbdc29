# @TASK S1-T1.3 - Per-user, per-action request throttling
# @TEST tests/test_rate_limiter.py

"""In-process fixed-window rate limiter.

The first request for a key opens a window of ``window_ms``; later requests
in that window increment a counter; once ``reset_time`` has passed the window
restarts from scratch. This is a fixed-window counter, not a sliding log: a
burst straddling the boundary can briefly admit up to twice the nominal rate.

Buckets are namespaced as ``"{key_prefix}:{user_id}"`` so each endpoint has
its own quota. Expired entries are swept probabilistically on ``check()``.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from inventory_search.config import Settings

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int
    key_prefix: str = "default"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: int  # epoch milliseconds
    limit: int


@dataclass
class _Window:
    count: int
    reset_time: int


def search_limit(settings: Settings) -> RateLimitConfig:
    return RateLimitConfig(settings.SEARCH_RATE_LIMIT_MAX, settings.SEARCH_RATE_LIMIT_WINDOW_MS, "search")


def advanced_search_limit(settings: Settings) -> RateLimitConfig:
    return RateLimitConfig(
        settings.SEARCH_ADVANCED_RATE_LIMIT_MAX,
        settings.SEARCH_ADVANCED_RATE_LIMIT_WINDOW_MS,
        "search-advanced",
    )


def suggestions_limit(settings: Settings) -> RateLimitConfig:
    return RateLimitConfig(
        settings.SUGGESTIONS_RATE_LIMIT_MAX,
        settings.SUGGESTIONS_RATE_LIMIT_WINDOW_MS,
        "search-suggestions",
    )


class RateLimiter:
    """Thread-safe fixed-window counters keyed by action and user.

    Args:
        clock: Returns the current time in epoch milliseconds.
        cleanup_probability: Chance per ``check()`` of sweeping expired windows.
        rand: Source of uniform floats in [0, 1) for the sweep decision.
    """

    def __init__(
        self,
        clock: Callable[[], int] = _now_ms,
        cleanup_probability: float = 0.01,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._clock = clock
        self._cleanup_probability = cleanup_probability
        self._rand = rand
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    @staticmethod
    def _key(user_id: object, config: RateLimitConfig) -> str:
        return f"{config.key_prefix}:{user_id}"

    def check(self, user_id: object, config: RateLimitConfig) -> RateLimitResult:
        """Count one request for *user_id* and say whether it is admitted."""
        key = self._key(user_id, config)
        with self._lock:
            now = self._clock()
            if self._rand() < self._cleanup_probability:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or now >= window.reset_time:
                window = _Window(count=1, reset_time=now + config.window_ms)
                self._windows[key] = window
                return RateLimitResult(True, config.max_requests - 1, window.reset_time, config.max_requests)

            if window.count >= config.max_requests:
                return RateLimitResult(False, 0, window.reset_time, config.max_requests)

            window.count += 1
            return RateLimitResult(
                True, config.max_requests - window.count, window.reset_time, config.max_requests
            )

    def status(self, user_id: object, config: RateLimitConfig) -> RateLimitResult:
        """Current quota for *user_id* without consuming a request."""
        key = self._key(user_id, config)
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now >= window.reset_time:
                return RateLimitResult(True, config.max_requests, now + config.window_ms, config.max_requests)
            remaining = max(0, config.max_requests - window.count)
            return RateLimitResult(remaining > 0, remaining, window.reset_time, config.max_requests)

    def reset(self, user_id: object, key_prefix: str = "default") -> None:
        with self._lock:
            self._windows.pop(f"{key_prefix}:{user_id}", None)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def _sweep(self, now: int) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_time]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Swept %d expired rate-limit windows", len(expired))


def rate_limit_headers(result: RateLimitResult, now_ms: int | None = None) -> dict[str, str]:
    """``X-RateLimit-*`` headers, plus ``Retry-After`` (seconds) when rejected."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time / 1000)),
    }
    if not result.allowed:
        now = _now_ms() if now_ms is None else now_ms
        headers["Retry-After"] = str(max(1, math.ceil((result.reset_time - now) / 1000)))
    return headers
