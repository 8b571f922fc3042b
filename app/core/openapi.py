"""OpenAPI customization utilities.

Enriches the generated schema with tag descriptions and documents the error
responses every forwarding route can produce on its own (as opposed to
upstream responses, which are passed through and not described here).
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "error": {
            "type": "object",
            "properties": {
                "code": {"type": "string"},
                "message": {"type": "string"},
                "request_id": {"type": "string"},
                "details": {"type": "object"},
            },
        }
    },
}

_PROXY_ERROR_RESPONSES = {
    "400": "Missing or malformed client input",
    "413": "Request body too large",
    "429": "Rate limit exceeded",
    "500": "Server credential missing or upstream unreachable",
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with tags and proxy error responses."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Proxy",
                "description": "Credential-injecting relays to the AI provider.",
            },
            {
                "name": "Health",
                "description": "Liveness checks. Never rate limited.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for operation in methods.values():
                if not isinstance(operation, dict) or "Proxy" not in operation.get("tags", []):
                    continue
                responses = operation.setdefault("responses", {})
                for status_code, description in _PROXY_ERROR_RESPONSES.items():
                    responses.setdefault(
                        status_code,
                        {
                            "description": description,
                            "content": {"application/json": {"schema": _ERROR_SCHEMA}},
                        },
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
