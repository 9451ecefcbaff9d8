"""Rate limiting adapters.

The proxy depends on ``AbstractRateLimiter`` only; the in-memory fixed-window
adapter is the default and can be replaced by a shared store without touching
the HTTP layer.
"""

from relay.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from relay.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "RateLimitResult",
]
