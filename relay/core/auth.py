"""API key authentication.

A single shared secret is configured through ``X_API_KEY`` (or
``APP_API_KEY``). Callers present it in the ``x-api-key`` header.

- ``ApiKeyAuthenticator`` holds the pure decision logic.
- ``verify_api_key`` is the FastAPI dependency that turns a rejection into
  the matching HTTP error.

The configured secret is never written to the logs; rejected keys are only
logged as a short hash prefix.
"""

from __future__ import annotations

import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Header

from relay.core.config import settings
from relay.core.errors import AuthenticationAppError, AuthorizationAppError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
MISSING_KEY_MESSAGE = "API key missing"
INVALID_KEY_MESSAGE = "Invalid API key"


class AuthFailure(str, enum.Enum):
    MISSING = "missing"
    INVALID = "invalid"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a credential check. ``reason`` is set only on rejection."""

    reason: AuthFailure | None = None

    @property
    def authorized(self) -> bool:
        return self.reason is None


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class ApiKeyAuthenticator:
    """Validate a caller-supplied key against the configured secret."""

    def __init__(self, secret: str | None) -> None:
        self._secret = secret or None

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def authenticate(self, provided_key: Any) -> AuthResult:
        """Check ``provided_key``.

        Returns:
            ``AuthResult()`` when the key matches, otherwise an ``AuthResult``
            whose reason is ``MISSING`` (absent, empty, or not a string) or
            ``INVALID`` (any mismatch, including when no secret is configured).
        """
        if not provided_key or not isinstance(provided_key, str):
            return AuthResult(AuthFailure.MISSING)

        if self._secret is None:
            logger.error(
                "auth.secret_not_configured",
                extra={"hint": "Set X_API_KEY to enable access to /proxy"},
            )
            return AuthResult(AuthFailure.INVALID)

        if not hmac.compare_digest(provided_key.encode(), self._secret.encode()):
            return AuthResult(AuthFailure.INVALID)

        return AuthResult()


def get_authenticator() -> ApiKeyAuthenticator:
    """Build the authenticator from settings (overridable in tests)."""

    return ApiKeyAuthenticator(settings.app.api_key)


async def verify_api_key(
    authenticator: Annotated[ApiKeyAuthenticator, Depends(get_authenticator)],
    x_api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Raises:
        AuthenticationAppError: 401 when the header is missing.
        AuthorizationAppError: 403 when the key does not match.
    """
    result = authenticator.authenticate(x_api_key)
    if result.authorized:
        logger.debug("auth.success")
        return

    if result.reason is AuthFailure.MISSING:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise AuthenticationAppError(code="api_key_missing", message=MISSING_KEY_MESSAGE)

    logger.warning(
        "auth.invalid_key",
        extra={
            "api_key_present": True,
            "api_key_hash": _hash_key(x_api_key or ""),
        },
    )
    raise AuthorizationAppError(code="invalid_api_key", message=INVALID_KEY_MESSAGE)
