"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Windows are aligned to the wall clock, so a request arriving exactly on a
  boundary is counted against the new window.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from relay.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass
class _WindowState:
    window_start: int
    count: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per client identity.

    Each identity gets ``limit`` admissions per ``window_seconds``. Rejected
    requests leave the counter untouched, and state for an identity is
    replaced as soon as a request arrives in a later window.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of admitted units per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source returning UNIX time in seconds.

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
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._last_purge_window = -1

    def now(self) -> float:
        """Current time according to the limiter's clock."""
        return self._clock()

    def _get_window_bounds(self, now: float) -> tuple[int, int]:
        """Return (window_start, reset_at) epoch seconds for ``now``."""
        window_start = int(now // self._window_seconds) * self._window_seconds
        return window_start, window_start + self._window_seconds

    def _get_or_reset_state(self, key: str, window_start: int) -> _WindowState:
        state = self._state_by_key.get(key)
        if state is None or state.window_start != window_start:
            state = _WindowState(window_start=window_start, count=0)
            self._state_by_key[key] = state
        return state

    def _purge_expired(self, window_start: int) -> None:
        # Runs once per window; identities that went quiet are dropped.
        if window_start <= self._last_purge_window:
            return
        stale = [k for k, s in self._state_by_key.items() if s.window_start < window_start]
        for key in stale:
            del self._state_by_key[key]
        self._last_purge_window = window_start

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Check the window for ``key`` and count the request if admitted.

        Args:
            key: Client identity.
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult with the admission decision and window metadata.

        Raises:
            ValueError: If key is empty or cost is invalid.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        window_start, reset_at = self._get_window_bounds(now)

        with self._lock:
            self._purge_expired(window_start)
            state = self._get_or_reset_state(key, window_start)

            if state.count + cost <= self._limit:
                state.count += cost
                return RateLimitResult(
                    allowed=True,
                    limit=self._limit,
                    remaining=max(0, self._limit - state.count),
                    reset_at=reset_at,
                    retry_after_seconds=None,
                )

            return RateLimitResult(
                allowed=False,
                limit=self._limit,
                remaining=max(0, self._limit - state.count),
                reset_at=reset_at,
                retry_after_seconds=max(0, int(math.ceil(reset_at - now))),
            )
