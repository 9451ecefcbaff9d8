"""HTTP middleware: request correlation and the inbound body-size limit.

Usage:
    app.middleware("http")(body_size_limit_middleware)
    app.middleware("http")(request_id_middleware)

Middleware registered last runs first, so the request id is in place before
an oversized body is rejected.
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from relay.core.config import settings
from relay.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

PAYLOAD_TOO_LARGE_MESSAGE = "Request body too large"


def max_body_bytes() -> int:
    return settings.app.max_body_size_mb * 1024 * 1024


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate or generate a correlation id and time the request.

    If the client provides the configured request-id header (``X-Request-ID``
    by default) its value is reused, otherwise a UUID is generated. The id is
    stored in a context variable for the duration of the call so log records
    emitted by the guards and the forwarder carry it, then echoed back on the
    response together with ``X-Request-Duration-ms``.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def body_size_limit_middleware(request: Request, call_next) -> Response:
    """Reject requests whose declared ``Content-Length`` exceeds the limit.

    This runs before rate limiting and authentication. Bodies sent without a
    length are checked while being read (see ``relay.core.body``).
    """

    declared = request.headers.get("content-length")
    if declared is not None:
        limit = max_body_bytes()
        try:
            size = int(declared)
        except ValueError:
            size = -1
        if size > limit:
            logger.warning(
                "body_limit.rejected_by_header",
                extra={"content_length": size, "max_bytes": limit},
            )
            return JSONResponse(status_code=413, content={"error": PAYLOAD_TOO_LARGE_MESSAGE})

    return await call_next(request)
