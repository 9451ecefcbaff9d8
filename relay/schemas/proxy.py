"""Schemas for the proxy endpoint: the inbound request description and the
normalized result the forwarder produces."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_TIMEOUT_MS = 15000

QueryValue = Union[str, int, float, bool]


class ProxyRequest(BaseModel):
    """Description of the upstream call the caller wants performed."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Optional here so the forwarder can report its absence with a precise
    # message instead of a generic schema error.
    url: str | None = Field(
        default=None,
        description="Absolute upstream URL (required).",
    )
    method: str = Field(
        default="GET",
        description="HTTP method, case-insensitive.",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent to the upstream as-is.",
    )
    query: dict[str, QueryValue] = Field(
        default_factory=dict,
        description="Query parameters appended to the URL.",
    )
    data: Any = Field(
        default=None,
        validation_alias=AliasChoices("data", "body"),
        description="Request body; JSON-encoded unless it is a string.",
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        ge=0,
        validation_alias=AliasChoices("timeout", "timeoutMs", "timeout_ms"),
        description="Upstream timeout in milliseconds; 0 disables the timeout.",
    )


class FailureKind(str, enum.Enum):
    BAD_REQUEST = "bad_request"
    UPSTREAM_ERROR = "upstream_error"
    NO_RESPONSE = "no_response"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ProxySuccess:
    """The upstream answered; its status, headers and body are relayed."""

    status_code: int
    headers: dict[str, str | list[str]] = field(default_factory=dict)
    body: Any = ""

    def to_content(self) -> dict[str, Any]:
        return {
            "status": self.status_code,
            "headers": self.headers,
            "data": self.body,
        }


@dataclass(frozen=True)
class ProxyFailure:
    """The call could not be relayed as a plain upstream response.

    Attributes:
        kind: Failure category.
        status_code: Status returned to the caller.
        message: Short, stable error message.
        upstream_body: Upstream body, for ``UPSTREAM_ERROR`` only.
        detail: Underlying error text, for ``NO_RESPONSE`` and ``INTERNAL``.
    """

    kind: FailureKind
    status_code: int
    message: str
    upstream_body: Any = None
    detail: str | None = None

    def to_content(self) -> dict[str, Any]:
        content: dict[str, Any] = {"error": self.message}
        if self.kind is FailureKind.UPSTREAM_ERROR:
            content["data"] = self.upstream_body
        elif self.detail is not None:
            content["message"] = self.detail
        return content


ProxyResponse = Union[ProxySuccess, ProxyFailure]
