"""Generic reverse-proxy call to the upstream provider.

``UpstreamRelay`` takes a client payload and a ``RelayEndpoint``, checks the
preconditions, injects the server-held bearer credential, forwards the body,
and turns the upstream answer into a response with the same status and
bytes. Upstream error responses are relayed like any other; only transport
failures become proxy errors.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx
from fastapi import Response

from app.adapters.upstream.endpoints import RelayEndpoint
from app.core.config import UpstreamSettings
from app.core.credentials import CredentialStore
from app.core.errors import (
    ConfigurationAppError,
    UpstreamTransportAppError,
    ValidationAppError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedAudio:
    """An audio file received from the client, ready to forward."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def build_http_client(
    upstream: UpstreamSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared upstream client with a bounded timeout."""

    return httpx.AsyncClient(
        timeout=httpx.Timeout(upstream.timeout_seconds),
        transport=transport,
    )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class UpstreamRelay:
    """Forwards requests to the upstream API with credential injection."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        credentials: CredentialStore,
        base_url: str,
    ) -> None:
        """Initialize the relay.

        Args:
            client: Shared async HTTP client (owns timeout and transport).
            credentials: Source of the bearer credential.
            base_url: Upstream API base URL, e.g. ``https://api.openai.com/v1``.
        """
        self._client = client
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")

    def url_for(self, endpoint: RelayEndpoint) -> str:
        return f"{self._base_url}{endpoint.upstream_path}"

    def _require_credential(self, endpoint: RelayEndpoint) -> str:
        credential = self._credentials.get_credential()
        if credential is None:
            logger.error("relay.missing_credential", extra={"endpoint": endpoint.name})
            raise ConfigurationAppError(
                code="missing_api_key",
                message="OpenAI API key is not configured on server.",
                details={"hint": "Set the OPENAI_API_KEY environment variable"},
            )
        return credential

    @staticmethod
    def _require_fields(endpoint: RelayEndpoint, values: Mapping[str, Any]) -> None:
        for name in endpoint.required_fields:
            if _is_blank(values.get(name)):
                raise ValidationAppError(
                    code="missing_field",
                    message=f"Missing required field: '{name}'.",
                    details={"field": name},
                )

    @staticmethod
    def prepare_payload(endpoint: RelayEndpoint, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Apply defaults and the field allow-list to a client payload.

        Fields sent as null or empty strings count as omitted, so they fall
        back to the endpoint default.
        """
        prepared: dict[str, Any] = dict(endpoint.defaults)
        for key, value in payload.items():
            if endpoint.allowed_fields is not None and key not in endpoint.allowed_fields:
                continue
            if key in endpoint.defaults and _is_blank(value):
                continue
            prepared[key] = value
        return prepared

    async def _send(
        self,
        endpoint: RelayEndpoint,
        credential: str,
        **request_kwargs: Any,
    ) -> httpx.Response:
        url = self.url_for(endpoint)
        headers = dict(request_kwargs.pop("headers", {}))
        headers["Authorization"] = f"Bearer {credential}"

        logger.debug("relay.forward", extra={"endpoint": endpoint.name})
        start = time.perf_counter()
        try:
            response = await self._client.post(url, headers=headers, **request_kwargs)
        except httpx.HTTPError as exc:
            reason = str(exc) or type(exc).__name__
            logger.error(
                "relay.transport_error",
                extra={
                    "endpoint": endpoint.name,
                    "error_type": type(exc).__name__,
                    "reason": reason,
                },
            )
            raise UpstreamTransportAppError(
                code="proxy_error",
                message="Proxy server error.",
                details={"reason": reason, "upstream": endpoint.name},
            ) from exc

        logger.info(
            "relay.completed",
            extra={
                "endpoint": endpoint.name,
                "status_code": response.status_code,
                "response_bytes": len(response.content),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return response

    @staticmethod
    def _relay_response(
        endpoint: RelayEndpoint,
        payload: Mapping[str, Any],
        upstream: httpx.Response,
    ) -> Response:
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            media_type=endpoint.content_type(payload, upstream),
        )

    async def relay_json(
        self,
        endpoint: RelayEndpoint,
        payload: Mapping[str, Any],
        *,
        raw_body: bytes | None = None,
    ) -> Response:
        """Forward a JSON payload and relay the upstream answer.

        When the endpoint neither fills defaults nor narrows fields and the
        raw body is available, the client's bytes are forwarded as received.

        Raises:
            ConfigurationAppError: No credential is configured.
            ValidationAppError: A required field is missing or empty.
            UpstreamTransportAppError: The upstream could not be reached.
        """
        credential = self._require_credential(endpoint)
        self._require_fields(endpoint, payload)

        opaque = not endpoint.defaults and endpoint.allowed_fields is None
        if opaque and raw_body is not None:
            body = dict(payload)
            content = raw_body
        else:
            body = self.prepare_payload(endpoint, payload)
            content = json.dumps(body).encode("utf-8")

        upstream = await self._send(
            endpoint,
            credential,
            content=content,
            headers={"Content-Type": "application/json"},
        )
        return self._relay_response(endpoint, body, upstream)

    @staticmethod
    def prepare_form_fields(
        endpoint: RelayEndpoint,
        fields: Iterable[tuple[str, str]],
    ) -> dict[str, list[str]]:
        """Group form fields by name, keeping every repeated value in order.

        Array fields such as ``timestamp_granularities[]`` arrive as repeated
        parts and must all reach the upstream. A default is added only when
        the client sent no non-blank value for that name.
        """
        grouped: dict[str, list[str]] = {}
        for key, value in fields:
            grouped.setdefault(key, []).append(value)
        for key, default in endpoint.defaults.items():
            if all(_is_blank(value) for value in grouped.get(key, [])):
                grouped[key] = [default]
        return grouped

    async def relay_multipart(
        self,
        endpoint: RelayEndpoint,
        fields: Iterable[tuple[str, str]],
        audio: UploadedAudio | None,
    ) -> Response:
        """Forward form fields plus an audio file as multipart/form-data.

        ``fields`` are ``(name, value)`` pairs; repeated names are forwarded
        as repeated parts.

        Raises:
            ConfigurationAppError: No credential is configured.
            ValidationAppError: The file (or another required field) is missing.
            UpstreamTransportAppError: The upstream could not be reached.
        """
        credential = self._require_credential(endpoint)
        if audio is None or not audio.content:
            raise ValidationAppError(
                code="missing_file",
                message="Missing audio file. Send it as multipart field 'file'.",
                details={"field": "file"},
            )

        data = self.prepare_form_fields(endpoint, fields)
        self._require_fields(
            endpoint,
            {
                **{key: values[-1] for key, values in data.items()},
                "file": audio.filename or "upload",
            },
        )

        upstream = await self._send(
            endpoint,
            credential,
            data=data,
            files={"file": (audio.filename or "audio", audio.content, audio.content_type)},
        )
        return self._relay_response(endpoint, data, upstream)
