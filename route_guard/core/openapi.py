"""OpenAPI customization for rate limited endpoints.

Operations that declare an inline rule (``x-route-limit`` extension) get a
documented ``429`` response with its ``Retry-After`` header, and the
``Health`` tag gets a description. This keeps documentation concerns out of
the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from route_guard.services.route_discovery import ROUTE_LIMIT_EXTENSION

TOO_MANY_REQUESTS_RESPONSE: Dict[str, Any] = {
    "description": "Rate limit lockout in effect for this endpoint.",
    "headers": {
        "Retry-After": {
            "description": "Seconds to wait before retrying.",
            "schema": {"type": "integer", "minimum": 1},
        },
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document lockouts.

    - Adds a ``429`` response to every operation carrying ``x-route-limit``
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        for methods in schema.get("paths", {}).values():
            for operation in methods.values():
                if not isinstance(operation, dict):
                    continue
                if ROUTE_LIMIT_EXTENSION not in operation:
                    continue
                responses = operation.setdefault("responses", {})
                responses.setdefault("429", TOO_MANY_REQUESTS_RESPONSE)

        tags = schema.setdefault("tags", [])
        if "Health" not in {t.get("name") for t in tags}:
            tags.append(
                {
                    "name": "Health",
                    "description": "Liveness check and registered rule count.",
                }
            )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
