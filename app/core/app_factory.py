"""Application factory for the FastAPI app.

Builds the whole front door from an explicit ``Settings`` object: the
credential store, rate limiter and upstream relay are constructed here and
attached to ``app.state`` instead of living in module globals, so tests can
inject a credential, limiter settings, or a mock upstream transport.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.adapters.rate_limit import create_rate_limiter
from app.adapters.upstream import UpstreamRelay, build_http_client
from app.api.routes import health_router, proxy_router
from app.core.config import Settings, get_settings
from app.core.credentials import CredentialStore
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import (
    StreamingBodyLimitMiddleware,
    build_body_size_middleware,
    request_id_middleware,
)
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import rate_limit_headers_middleware


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Application settings; read from the environment if omitted.
        transport: Optional httpx transport for upstream calls (tests).
        configure_logs: Whether to (re)configure the root logger.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    settings = settings or get_settings()

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(settings.log)

    credentials = CredentialStore.from_settings(settings.upstream)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with build_http_client(settings.upstream, transport) as client:
            app.state.relay = UpstreamRelay(
                client=client,
                credentials=credentials,
                base_url=settings.upstream.base_url,
            )
            yield

    app = FastAPI(
        title="AI Math Proxy",
        description=(
            "Thin gateway in front of an AI provider's chat, text-to-speech and "
            "speech-to-text endpoints. The server injects its own API key, so "
            "clients never hold the credential. Forwarding routes are rate "
            "limited per client IP."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.rate_limiter = create_rate_limiter(
        strategy=settings.rate_limit.strategy,
        limit=settings.rate_limit.requests,
        window_seconds=settings.rate_limit.window_seconds,
    )

    # Middleware (last added runs first)
    max_body = max(
        settings.server.max_json_body_bytes, settings.server.max_upload_bytes
    )
    app.add_middleware(StreamingBodyLimitMiddleware, max_bytes=max_body)
    app.middleware("http")(build_body_size_middleware(max_body))
    app.middleware("http")(rate_limit_headers_middleware)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.allow_origins,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(proxy_router)

    apply_openapi_customizations(app)

    return app
