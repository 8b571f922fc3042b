"""HTTP middleware for request correlation and body size guarding.

- ``request_id_middleware`` accepts an incoming X-Request-ID header or
  generates a UUID, stores it in contextvars for log correlation, and echoes
  it back together with the request duration.
- ``build_body_size_middleware`` rejects requests whose declared
  Content-Length exceeds the largest body any route accepts, before the
  body (or a multipart upload) is read at all. Per-route limits are enforced
  again while reading.
- ``StreamingBodyLimitMiddleware`` applies the same ceiling to requests that
  declare no Content-Length (chunked uploads) while their body streams in.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.body_limits import payload_too_large_error
from app.core.exception_handlers import error_response
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the configured request-id header, that value is
    used. Otherwise, a new UUID is generated. The ID is propagated back in
    the response headers and stored in contextvars for log correlation.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
        - Clears request_id from contextvars after request completes
        - Adds the request-id and X-Request-Duration-ms response headers
    """

    header_name = request.app.state.settings.log.request_id_header
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


def build_body_size_middleware(max_bytes: int):
    """Create middleware rejecting bodies declared larger than ``max_bytes``."""

    async def body_size_middleware(request: Request, call_next) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > max_bytes:
            logger.warning(
                "body_limit.rejected_by_middleware",
                extra={
                    "content_length": int(declared),
                    "max_bytes": max_bytes,
                    "request_path": request.url.path,
                },
            )
            return error_response(
                413,
                "payload_too_large",
                f"Request body too large. Maximum size: {max_bytes} bytes",
                details={"max_bytes": max_bytes, "actual_bytes": int(declared)},
            )
        return await call_next(request)

    return body_size_middleware


class StreamingBodyLimitMiddleware:
    """Count body bytes of requests that declare no Content-Length.

    Chunked uploads skip the declared-size check above, and ``request.form()``
    would otherwise spool the whole body before any route limit applies. The
    wrapped ``receive`` raises ``PayloadTooLargeAppError`` as soon as the running
    total crosses ``max_bytes``, so the route's body read fails early and the
    regular error handler answers with a 413 envelope.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or Headers(scope=scope).get("content-length"):
            await self.app(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning(
                        "body_limit.rejected_by_stream",
                        extra={
                            "size": received,
                            "max_bytes": self.max_bytes,
                            "request_path": scope.get("path"),
                        },
                    )
                    raise payload_too_large_error(self.max_bytes)
            return message

        await self.app(scope, limited_receive, send)
