"""Upstream forwarding service.

Turns a ``ProxyRequest`` into exactly one outbound HTTP call and normalizes
whatever happens into a ``ProxySuccess`` or ``ProxyFailure``:

- any upstream response, whatever its status -> success, status relayed
- the HTTP layer raised while holding a response -> upstream error
- the request went out but nothing came back -> 502
- the request could not be built or dispatched -> 500

``forward`` never raises, and it never retries.
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urlsplit

import httpx

from relay.schemas.proxy import FailureKind, ProxyFailure, ProxyRequest, ProxyResponse, ProxySuccess

logger = logging.getLogger(__name__)

MISSING_URL_MESSAGE = "Missing required field: url"
UPSTREAM_ERROR_MESSAGE = "Upstream API error"
NO_RESPONSE_MESSAGE = "No response from upstream API"
INTERNAL_ERROR_MESSAGE = "Proxy internal error"


def _reject_constant(name: str) -> Any:
    # NaN and Infinity cannot be rendered back as JSON.
    raise ValueError(f"non-finite JSON constant: {name}")


def decode_body(response: httpx.Response) -> Any:
    """Return the upstream body as parsed JSON when possible, else as text."""

    try:
        content = response.content
    except httpx.ResponseNotRead:
        # Raised from a response hook before the body was read.
        return None
    if not content:
        return ""
    try:
        return response.json(parse_constant=_reject_constant)
    except ValueError:
        return response.text


def relay_headers(headers: httpx.Headers) -> dict[str, str | list[str]]:
    """Upstream headers keyed by lower-cased name.

    Repeated headers become a list instead of being joined, and
    ``set-cookie`` is always a list.
    """

    relayed: dict[str, str | list[str]] = {}
    for name, value in headers.multi_items():
        if name in relayed:
            previous = relayed[name]
            if isinstance(previous, list):
                previous.append(value)
            else:
                relayed[name] = [previous, value]
        elif name == "set-cookie":
            relayed[name] = [value]
        else:
            relayed[name] = value
    return relayed


def _timeout_seconds(timeout_ms: int) -> float | None:
    # 0 means "no timeout".
    return timeout_ms / 1000 if timeout_ms > 0 else None


def _upstream_host(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def _is_valid_status(status_code: int) -> bool:
    return 100 <= status_code <= 599


class Forwarder:
    """Perform proxied calls through a shared ``httpx.AsyncClient``.

    The client is owned by the application lifespan; the forwarder only
    borrows it. Clients are expected to leave HTTP error statuses alone
    (httpx's default), so 4xx/5xx upstream answers are relayed as-is.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def _build_request(self, req: ProxyRequest) -> httpx.Request:
        kwargs: dict[str, Any] = {
            "headers": req.headers,
            "params": req.query,
            "timeout": _timeout_seconds(req.timeout_ms),
        }
        if isinstance(req.data, (str, bytes)):
            kwargs["content"] = req.data
        elif req.data is not None:
            kwargs["json"] = req.data
        return self._client.build_request(req.method.upper(), req.url or "", **kwargs)

    async def forward(self, req: ProxyRequest) -> ProxyResponse:
        """Execute ``req`` against the upstream and normalize the outcome."""

        if not req.url:
            return ProxyFailure(
                kind=FailureKind.BAD_REQUEST,
                status_code=400,
                message=MISSING_URL_MESSAGE,
            )

        method = req.method.upper()
        host = _upstream_host(req.url)
        start = time.perf_counter()

        try:
            request = self._build_request(req)
            response = await self._client.send(request)
        except httpx.HTTPStatusError as exc:
            body = decode_body(exc.response)
            status_code = exc.response.status_code
            logger.warning(
                "forward.upstream_error",
                extra={
                    "method": method,
                    "upstream_host": host,
                    "upstream_status": status_code,
                },
            )
            return ProxyFailure(
                kind=FailureKind.UPSTREAM_ERROR,
                status_code=status_code if _is_valid_status(status_code) else 502,
                message=UPSTREAM_ERROR_MESSAGE,
                upstream_body=body,
            )
        except httpx.UnsupportedProtocol as exc:
            # Rejected before anything was sent.
            return self._internal_failure(exc, method, host)
        except httpx.RequestError as exc:
            logger.warning(
                "forward.no_response",
                extra={
                    "method": method,
                    "upstream_host": host,
                    "error_type": type(exc).__name__,
                    "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                },
            )
            return ProxyFailure(
                kind=FailureKind.NO_RESPONSE,
                status_code=502,
                message=NO_RESPONSE_MESSAGE,
                detail=str(exc) or type(exc).__name__,
            )
        except Exception as exc:
            return self._internal_failure(exc, method, host)

        logger.info(
            "forward.completed",
            extra={
                "method": method,
                "upstream_host": host,
                "upstream_status": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )

        if not _is_valid_status(response.status_code):
            return ProxyFailure(
                kind=FailureKind.UPSTREAM_ERROR,
                status_code=502,
                message=UPSTREAM_ERROR_MESSAGE,
                upstream_body=decode_body(response),
            )

        return ProxySuccess(
            status_code=response.status_code,
            headers=relay_headers(response.headers),
            body=decode_body(response),
        )

    def _internal_failure(self, exc: Exception, method: str, host: str | None) -> ProxyFailure:
        logger.error(
            "forward.internal_error",
            extra={
                "method": method,
                "upstream_host": host,
                "error_type": type(exc).__name__,
            },
        )
        return ProxyFailure(
            kind=FailureKind.INTERNAL,
            status_code=500,
            message=INTERNAL_ERROR_MESSAGE,
            detail=str(exc) or type(exc).__name__,
        )
