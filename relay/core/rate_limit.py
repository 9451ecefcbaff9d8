"""Rate limiting dependency for the proxy route.

This module wires the rate limiting adapter into the HTTP layer. It is the
first stage of the proxy pipeline and runs before authentication, so
rejected callers never reach the authenticator or the forwarder.

Client identity:
- ``origin`` scope (default): one bucket per client address.
- ``global`` scope: a single bucket shared by every caller.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import Annotated

from fastapi import Depends, Request

from relay.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from relay.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from relay.core.config import settings
from relay.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded"

_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int] | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the process-wide rate limiter instance.

    The instance is cached in-module to preserve window state across
    requests. If configuration changes (primarily in tests), the limiter is
    rebuilt. Tests may also swap it via ``app.dependency_overrides``.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
    )

    # Sync dependency: FastAPI may call it from several threadpool workers.
    with _limiter_lock:
        if _limiter is None or _limiter_config != config:
            _limiter = InMemoryFixedWindowRateLimiter(
                limit=settings.app.rate_limit_requests,
                window_seconds=settings.app.rate_limit_window_seconds,
            )
            _limiter_config = config
        return _limiter


def build_client_identity(request: Request) -> str:
    """Derive the limiter key for the caller."""

    if settings.app.rate_limit_scope == "global":
        return "global"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _hash_limiter_key(key: str) -> str:
    """Hash the limiter key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def rate_limit_headers(result: RateLimitResult, now: float) -> dict[str, str]:
    """Standard ``RateLimit-*`` headers (plus ``Retry-After`` when blocked)."""

    headers = {
        "RateLimit-Limit": str(result.limit),
        "RateLimit-Remaining": str(result.remaining),
        "RateLimit-Reset": str(result.reset_in(now)),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers


async def enforce_rate_limit(
    request: Request,
    limiter: Annotated[AbstractRateLimiter, Depends(get_rate_limiter)],
) -> dict[str, str]:
    """FastAPI dependency enforcing the fixed-window limit.

    Consumes one unit from the caller's budget.

    Returns:
        Rate-limit headers to attach to the eventual response (empty when
        the limiter or the headers are disabled).

    Raises:
        RateLimitAppError: 429 when the caller exceeded its window budget.
    """

    if not settings.app.rate_limit_enabled:
        return {}

    key = build_client_identity(request)
    result = limiter.consume(key)
    headers = (
        rate_limit_headers(result, limiter.now())
        if settings.app.rate_limit_include_headers
        else {}
    )
    # Errors raised later in the pipeline carry the same headers.
    request.state.rate_limit_headers = headers

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": _hash_limiter_key(key),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return headers

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": _hash_limiter_key(key),
            "limit": result.limit,
            "window_s": settings.app.rate_limit_window_seconds,
            "retry_after_s": result.retry_after_seconds,
        },
    )
    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message=RATE_LIMIT_MESSAGE,
        headers=headers,
    )
