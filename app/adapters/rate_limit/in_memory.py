"""In-memory rate limiters.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so concurrent requests from
  the same client never lose an increment.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

# Expired entries are swept once the table holds more keys than this.
DEFAULT_MAX_TRACKED_KEYS = 10_000


@dataclass
class _WindowState:
    window_start: float
    count: int


class _InMemoryRateLimiter(AbstractRateLimiter):
    """Shared constructor validation and result building."""

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
        max_tracked_keys: int = DEFAULT_MAX_TRACKED_KEYS,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of allowed units per window.
            window_seconds: Size of the window in seconds.
            clock: Time source function returning UNIX time in seconds.
            max_tracked_keys: Table size that triggers a sweep of expired keys.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._max_tracked_keys = max_tracked_keys
        self._lock = threading.RLock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def _build_allowed_result(self, *, now: float, remaining: int, reset_at: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=remaining,
            reset_at=int(math.ceil(reset_at)),
            reset_after_seconds=max(0, int(math.ceil(reset_at - now))),
            retry_after_seconds=None,
        )

    def _build_blocked_result(self, *, now: float, remaining: int, reset_at: float) -> RateLimitResult:
        retry_after = max(1, int(math.ceil(reset_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=remaining,
            reset_at=int(math.ceil(reset_at)),
            reset_after_seconds=retry_after,
            retry_after_seconds=retry_after,
        )

    @staticmethod
    def _validate(key: str, cost: int) -> None:
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")


class InMemoryFixedWindowRateLimiter(_InMemoryRateLimiter):
    """Rate limiter using a fixed time window per key.

    Each key's window opens at its first request and lasts ``window_seconds``.
    Once the window has elapsed the next request starts a fresh one. Window
    edges are not smoothed: a client may spend a full budget at the end of
    one window and another at the start of the next.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._state_by_key: dict[str, _WindowState] = {}

    def _purge_expired(self, now: float) -> None:
        expired = [
            key
            for key, state in self._state_by_key.items()
            if now >= state.window_start + self._window_seconds
        ]
        for key in expired:
            del self._state_by_key[key]

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume rate limit budget for the provided key.

        Args:
            key: Client identifier.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        self._validate(key, cost)
        now = self._clock()

        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or now >= state.window_start + self._window_seconds:
                if state is None and len(self._state_by_key) >= self._max_tracked_keys:
                    self._purge_expired(now)
                state = _WindowState(window_start=now, count=0)
                self._state_by_key[key] = state

            reset_at = state.window_start + self._window_seconds

            if state.count + cost <= self._limit:
                state.count += cost
                return self._build_allowed_result(
                    now=now, remaining=self._limit - state.count, reset_at=reset_at
                )

            remaining = max(0, self._limit - state.count)
            return self._build_blocked_result(now=now, remaining=remaining, reset_at=reset_at)


class InMemorySlidingWindowRateLimiter(_InMemoryRateLimiter):
    """Rate limiter keeping a log of admitted timestamps per key.

    A request is admitted when fewer than ``limit`` units were admitted in the
    trailing ``window_seconds``, so no burst is possible at a window edge.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._log_by_key: dict[str, deque[float]] = {}

    def _evict_old(self, log: deque[float], now: float) -> None:
        while log and now - log[0] >= self._window_seconds:
            log.popleft()

    def _purge_expired(self, now: float) -> None:
        for key in list(self._log_by_key):
            log = self._log_by_key[key]
            self._evict_old(log, now)
            if not log:
                del self._log_by_key[key]

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        self._validate(key, cost)
        now = self._clock()

        with self._lock:
            log = self._log_by_key.get(key)
            if log is None:
                if len(self._log_by_key) >= self._max_tracked_keys:
                    self._purge_expired(now)
                log = self._log_by_key[key] = deque()
            self._evict_old(log, now)

            if len(log) + cost <= self._limit:
                log.extend([now] * cost)
                return self._build_allowed_result(
                    now=now,
                    remaining=self._limit - len(log),
                    reset_at=log[0] + self._window_seconds,
                )

            # Budget frees up as soon as the oldest `cost` entries age out.
            oldest = log[min(cost, len(log)) - 1] if log else now
            reset_at = oldest + self._window_seconds
            remaining = max(0, self._limit - len(log))
            return self._build_blocked_result(now=now, remaining=remaining, reset_at=reset_at)


def create_rate_limiter(
    *,
    strategy: str,
    limit: int,
    window_seconds: int,
    clock: Callable[[], float] = time.time,
) -> AbstractRateLimiter:
    """Build the limiter for the configured strategy ('fixed' or 'sliding')."""

    if strategy == "fixed":
        return InMemoryFixedWindowRateLimiter(
            limit=limit, window_seconds=window_seconds, clock=clock
        )
    if strategy == "sliding":
        return InMemorySlidingWindowRateLimiter(
            limit=limit, window_seconds=window_seconds, clock=clock
        )
    raise ValueError(f"Unknown rate limit strategy: '{strategy}'")
