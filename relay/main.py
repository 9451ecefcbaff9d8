"""ASGI entry point.

    uvicorn relay.main:app --port 5010
    relay-proxy                      # same, using PORT / HOST from settings
"""

import uvicorn

from relay.core.app_factory import create_app
from relay.core.config import settings

app = create_app()


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    uvicorn.run(
        "relay.main:app",
        host=settings.server.host,
        port=settings.server.port,
        log_level="debug" if settings.app.debug else "info",
    )


if __name__ == "__main__":
    run()
