"""Rate limiter interfaces."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single admission decision.

    Attributes:
        allowed: Whether the request is admitted.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Seconds until the window ends, only when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None

    def reset_in(self, now: float) -> int:
        """Whole seconds from ``now`` until the window ends (never negative)."""
        return max(0, int(self.reset_at - now))


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    def now(self) -> float:
        """Current time as seen by the limiter (UNIX seconds)."""
        return time.time()

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume budget for a client identity.

        Args:
            key: Client identity (e.g. ``ip:10.0.0.1`` or ``global``).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether the request was admitted.
        """
        raise NotImplementedError
