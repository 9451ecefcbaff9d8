"""Application factory for the proxy service.

Centralizes app construction (lifespan, middleware, handlers, routers) so
tests can build a fresh app and override its dependencies.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from relay.api.routes import health_router, proxy_router
from relay.core.config import settings
from relay.core.exception_handlers import setup_exception_handlers
from relay.core.logging import configure_logging
from relay.core.middleware import body_size_limit_middleware, request_id_middleware
from relay.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)

# Upstream redirects are followed, up to a small bound.
MAX_REDIRECTS = 5


def build_http_client() -> httpx.AsyncClient:
    """Shared outbound client. Per-call timeouts override the default."""

    return httpx.AsyncClient(follow_redirects=True, max_redirects=MAX_REDIRECTS)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with build_http_client() as client:
        app.state.http_client = client
        logger.info(
            "proxy.started",
            extra={
                "port": settings.server.port,
                "api_key_configured": bool(settings.app.api_key),
                "rate_limit_enabled": settings.app.rate_limit_enabled,
                "rate_limit_scope": settings.app.rate_limit_scope,
            },
        )
        yield
    app.state.http_client = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    if not settings.app.api_key:
        logger.warning(
            "proxy.api_key_not_configured",
            extra={"hint": "Set X_API_KEY; every /proxy call will be rejected until then"},
        )

    app = FastAPI(
        title="Relay Proxy",
        description=(
            "Authenticated, rate-limited HTTP forwarding proxy. POST a JSON "
            "description of an upstream call to /proxy with the x-api-key "
            "header and receive the upstream status, headers and body."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware (last registered runs first)
    app.middleware("http")(body_size_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(proxy_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
