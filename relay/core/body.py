"""Inbound body handling for the proxy endpoint."""
from __future__ import annotations

import json
import logging

from fastapi import Request
from pydantic import ValidationError

from relay.core.errors import PayloadTooLargeAppError, ValidationAppError
from relay.core.middleware import PAYLOAD_TOO_LARGE_MESSAGE, max_body_bytes
from relay.schemas.proxy import ProxyRequest

logger = logging.getLogger(__name__)

INVALID_BODY_MESSAGE = "Invalid request body"


async def read_body_limited(request: Request) -> bytes:
    """Read the request body in chunks enforcing the max size limit.

    Secondary enforcement for bodies that arrive without a Content-Length
    header (chunked transfer); declared lengths are rejected earlier by the
    body-size middleware.

    Raises:
        PayloadTooLargeAppError: If the body exceeds the configured limit.
    """
    limit = max_body_bytes()
    size = 0
    chunks: list[bytes] = []

    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            logger.warning(
                "body_limit.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": limit},
            )
            raise PayloadTooLargeAppError(
                code="payload_too_large",
                message=PAYLOAD_TOO_LARGE_MESSAGE,
            )
        chunks.append(chunk)

    return b"".join(chunks)


def parse_proxy_request(raw: bytes) -> ProxyRequest:
    """Decode a JSON body into a ``ProxyRequest``.

    An empty body is treated as ``{}`` so a missing ``url`` is reported by
    the forwarder like any other request without one.

    Raises:
        ValidationAppError: If the body is not a JSON object or fails schema
            validation.
    """
    if not raw.strip():
        return ProxyRequest()

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_json",
            message=INVALID_BODY_MESSAGE,
            details={"hint": "Body must be a JSON object"},
        ) from exc

    if not isinstance(payload, dict):
        raise ValidationAppError(
            code="invalid_json",
            message=INVALID_BODY_MESSAGE,
            details={"hint": "Body must be a JSON object"},
        )

    try:
        return ProxyRequest.model_validate(payload)
    except ValidationError as exc:
        raise ValidationAppError(
            code="invalid_proxy_request",
            message=INVALID_BODY_MESSAGE,
            details={
                "errors": [
                    {"loc": list(err["loc"]), "msg": err["msg"]}
                    for err in exc.errors()
                ]
            },
        ) from exc
