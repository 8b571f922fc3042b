"""Tests for global exception handlers.

Validates that every error type maps to its HTTP status with the shared
``{"error": {...}}`` envelope and that nothing internal leaks to clients.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.errors import (
    AppError,
    ConfigurationAppError,
    PayloadTooLargeAppError,
    RateLimitAppError,
    UpstreamTransportAppError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (ValidationAppError(code="missing_field", message="Missing input"), 400),
            (PayloadTooLargeAppError(code="payload_too_large", message="Too big"), 413),
            (ConfigurationAppError(code="missing_api_key", message="No key"), 500),
            (UpstreamTransportAppError(code="proxy_error", message="Proxy server error."), 500),
        ],
    )
    def test_maps_error_class_to_status(
        self,
        client: TestClient,
        app_with_handlers: FastAPI,
        error: AppError,
        status_code: int,
    ) -> None:
        @app_with_handlers.get("/boom")
        async def boom():
            raise error

        response = client.get("/boom")

        assert response.status_code == status_code
        data = response.json()
        assert data["error"]["code"] == error.code
        assert data["error"]["message"] == error.message
        assert "request_id" in data["error"]

    def test_includes_details_when_provided(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        @app_with_handlers.get("/details")
        async def details():
            raise UpstreamTransportAppError(
                code="proxy_error",
                message="Proxy server error.",
                details={"reason": "connection refused", "upstream": "chat"},
            )

        data = client.get("/details").json()

        assert data["error"]["details"] == {
            "reason": "connection refused",
            "upstream": "chat",
        }

    def test_rate_limit_error_carries_headers(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        @app_with_handlers.get("/limited")
        async def limited():
            raise RateLimitAppError(
                code="rate_limit_exceeded",
                message="Too many requests.",
                headers={"Retry-After": "30"},
            )

        response = client.get("/limited")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"]["code"] == "rate_limit_exceeded"

    def test_str_of_error_is_its_message(self) -> None:
        error = ValidationAppError(code="c", message="human readable")
        assert str(error) == "human readable"


class TestFrameworkErrors:
    def test_not_found_uses_envelope(self, client: TestClient) -> None:
        response = client.get("/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "http_error"

    def test_request_validation_error_is_400(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        @app_with_handlers.get("/needs-param")
        async def needs_param(count: int):
            return {"count": count}

        response = client.get("/needs-param")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "invalid_request"
        assert "count" in data["error"]["details"]["context"]["fields"][0]


class TestGeneralExceptionHandler:
    def test_handler_registered(self, app_with_handlers: FastAPI) -> None:
        assert AppError in app_with_handlers.exception_handlers
        assert Exception in app_with_handlers.exception_handlers

    def test_returns_generic_500_without_leaking(self) -> None:
        request = AsyncMock()
        request.url.path = "/solve"
        request.method = "POST"

        exc = RuntimeError("secret detail: sk-live-abc")
        response = asyncio.run(general_exception_handler(request, exc))

        body = bytes(response.body).decode()
        data = json.loads(body)
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "sk-live-abc" not in body
        assert "RuntimeError" not in body
        assert "Traceback" not in body

    def test_multiple_setups_do_not_fail(self) -> None:
        app = FastAPI()

        setup_exception_handlers(app)
        setup_exception_handlers(app)

        assert AppError in app.exception_handlers
