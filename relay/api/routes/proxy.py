"""The ``/proxy`` endpoint.

Each call runs the pipeline ``rate limit -> auth -> forward -> respond``.
The two guards are the first dependencies of the route, resolved in
signature order; the first one that rejects raises and ends the call before
the body is read or the forwarder is built.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from relay.core.auth import verify_api_key
from relay.core.body import parse_proxy_request, read_body_limited
from relay.core.rate_limit import enforce_rate_limit
from relay.schemas.proxy import ProxyResponse, ProxySuccess
from relay.services.forwarder import Forwarder

router = APIRouter(tags=["Proxy"])

# Every standard method except CONNECT, which ASGI servers do not route.
# Other verbs get a 405.
PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS", "TRACE"]

# Statuses whose responses must not carry a body.
_BODILESS_STATUSES = {204, 205, 304}


def get_forwarder(request: Request) -> Forwarder:
    """Build a forwarder around the app-wide HTTP client."""

    client = getattr(request.app.state, "http_client", None)
    if client is None:
        raise RuntimeError("HTTP client not initialised; is the app lifespan running?")
    return Forwarder(client)


def render_proxy_response(outcome: ProxyResponse, headers: dict[str, str]) -> Response:
    """Serialize a forwarder outcome into the HTTP response sent to the caller."""

    if isinstance(outcome, ProxySuccess) and outcome.status_code in _BODILESS_STATUSES:
        return Response(status_code=outcome.status_code, headers=headers)

    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.to_content(),
        headers=headers,
    )


@router.api_route("/proxy", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    rate_limit_headers: Annotated[dict[str, str], Depends(enforce_rate_limit)],
    _: Annotated[None, Depends(verify_api_key)],
    forwarder: Annotated[Forwarder, Depends(get_forwarder)],
) -> Response:
    """Forward the described request upstream and relay the outcome.

    Body: JSON object with ``url`` (required), ``method``, ``headers``,
    ``query``, ``data`` and ``timeout`` (milliseconds). Requires the
    ``x-api-key`` header.

    Any method in ``PROXY_METHODS`` is accepted; the upstream method comes
    from the body.
    """

    raw = await read_body_limited(request)
    proxy_request = parse_proxy_request(raw)

    outcome = await forwarder.forward(proxy_request)
    return render_proxy_response(outcome, rate_limit_headers)
