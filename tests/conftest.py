"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so the settings read at
import time of ``app.main`` are deterministic. Most tests build their own app
through ``make_app`` with explicit settings instead.
"""

import os

# Set before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("OPENAI_API_KEY", "sk-test-env-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable, Iterator

import httpx
import pytest
import respx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import (
    CorsSettings,
    LogSettings,
    RateLimitSettings,
    ServerSettings,
    Settings,
    UpstreamSettings,
)

UPSTREAM_BASE_URL = "https://upstream.test/v1"
TEST_API_KEY = "sk-test-123"


def build_settings(
    *,
    api_key: str | None = TEST_API_KEY,
    rate_limit_requests: int = 60,
    rate_limit_enabled: bool = True,
    rate_limit_strategy: str = "fixed",
    max_json_body_mb: float = 5,
    max_upload_size_mb: float = 25,
) -> Settings:
    """Build isolated settings that ignore ambient environment values."""
    return Settings(
        server=ServerSettings(
            port=3000,
            max_json_body_mb=max_json_body_mb,
            max_upload_size_mb=max_upload_size_mb,
        ),
        upstream=UpstreamSettings(
            api_key=api_key,
            base_url=UPSTREAM_BASE_URL,
            timeout_seconds=5.0,
        ),
        rate_limit=RateLimitSettings(
            enabled=rate_limit_enabled,
            requests=rate_limit_requests,
            window_seconds=60,
            strategy=rate_limit_strategy,
        ),
        cors=CorsSettings(),
        log=LogSettings(level="WARNING"),
    )


@pytest.fixture
def upstream() -> Iterator[respx.MockRouter]:
    """Mock the upstream API; unmatched outbound calls fail the test."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def make_app() -> Callable[..., FastAPI]:
    def _make(*, transport: httpx.AsyncBaseTransport | None = None, **kwargs) -> FastAPI:
        return create_app(
            build_settings(**kwargs), transport=transport, configure_logs=False
        )

    return _make


@pytest.fixture
def make_client(make_app, upstream) -> Iterator[Callable[..., TestClient]]:
    """Factory yielding started TestClients (lifespan runs on enter)."""
    clients: list[TestClient] = []

    def _make(**kwargs) -> TestClient:
        client = TestClient(make_app(**kwargs))
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    """Client for an app with a credential configured and default limits."""
    return make_client()
