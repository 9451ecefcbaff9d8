"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports ``relay.core.config``
so the global settings object is built from them and no .env file is read.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("X_API_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable, Iterator  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from relay.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter  # noqa: E402
from relay.api.routes.proxy import get_forwarder  # noqa: E402
from relay.core.app_factory import create_app  # noqa: E402
from relay.core.rate_limit import get_rate_limiter  # noqa: E402
from relay.services.forwarder import Forwarder  # noqa: E402

API_KEY = os.environ["X_API_KEY"]

UpstreamHandler = Callable[[httpx.Request], httpx.Response]


def default_upstream(request: httpx.Request) -> httpx.Response:
    """Fake upstream answering 200 with an echo of what it received."""
    return httpx.Response(
        200,
        json={
            "method": request.method,
            "url": str(request.url),
            "body": request.content.decode() if request.content else None,
        },
    )


@pytest.fixture
def api_headers() -> dict[str, str]:
    """Valid API key headers for authenticated requests."""
    return {"x-api-key": API_KEY}


@pytest.fixture
def clock() -> Mock:
    """Fake clock for the limiter, fixed in the middle of a window."""
    return Mock(return_value=1_000_050.0)


@pytest.fixture
def limiter(clock: Mock) -> InMemoryFixedWindowRateLimiter:
    return InMemoryFixedWindowRateLimiter(limit=30, window_seconds=60, clock=clock)


@pytest.fixture
def upstream() -> dict[str, UpstreamHandler]:
    """Mutable holder for the fake upstream handler used by ``client``."""
    return {"handler": default_upstream}


@pytest.fixture
def app(limiter: InMemoryFixedWindowRateLimiter, upstream: dict[str, UpstreamHandler]) -> FastAPI:
    """Fresh app wired to the fake clock limiter and a mock upstream."""
    app = create_app()
    transport = httpx.MockTransport(lambda request: upstream["handler"](request))
    mock_client = httpx.AsyncClient(transport=transport)

    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_forwarder] = lambda: Forwarder(mock_client)
    return app


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
