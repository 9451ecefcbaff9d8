"""OpenAPI customization.

Adds the ``x-api-key`` security scheme, marks every operation as requiring
it, exempts the health probe and fills in tag descriptions.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from relay.core.auth import API_KEY_HEADER

_TAGS = [
    {
        "name": "Proxy",
        "description": "Forward an arbitrary HTTP request to an upstream service.",
    },
    {
        "name": "Health",
        "description": "Liveness check.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": API_KEY_HEADER,
                "description": "Shared secret configured on the proxy (X_API_KEY).",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing_tag_names)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
