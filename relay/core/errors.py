"""Application-level exception types.

Guards in the request pipeline (rate limiting, authentication, body
validation) raise these; the exception handlers render them as flat JSON
error bodies. The forwarder never raises: its failures are result values
(see ``relay.schemas.proxy.ProxyFailure``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    errors: list[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application failures.

    Attributes:
        code: Stable, machine-readable error code (used in logs).
        message: Human-readable message returned to the client.
        details: Optional structured details included in the response body.
        headers: Extra response headers (e.g. Retry-After).
    """

    status_code: ClassVar[int] = 400

    code: str
    message: str
    details: ErrorDetails | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when caller input is malformed."""


class AuthenticationAppError(AppError):
    """Raised when no credential was supplied."""

    status_code = 401


class AuthorizationAppError(AppError):
    """Raised when the supplied credential is not accepted."""

    status_code = 403


class PayloadTooLargeAppError(AppError):
    """Raised when the inbound body exceeds the configured limit."""

    status_code = 413


class RateLimitAppError(AppError):
    """Raised when a client has exhausted its window budget."""

    status_code = 429
