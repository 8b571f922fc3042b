"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → their own HTTP status (400, 413, 429, 500)
- Framework HTTP and request-validation errors → same envelope
- Unexpected Exception → generic 500 (safety net)
- All responses carry an ``error`` object with the request_id for tracing

Upstream error responses never reach these handlers; the relay passes them
through untouched.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError, RateLimitAppError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    details: dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error_content = {
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        error_content["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle proxy errors with the consistent JSON envelope.

    The HTTP status comes from the error class. Rate limit errors also carry
    Retry-After style headers.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the status code and error details.
    """
    status_code = exc.status_code
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "request_path": request.url.path,
            "has_details": bool(exc.details),
        },
    )

    headers = exc.headers if isinstance(exc, RateLimitAppError) else None
    return error_response(
        status_code,
        exc.code,
        exc.message,
        details=dict(exc.details) if exc.details else None,
        headers=headers or None,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Wrap framework HTTP errors (404, 405, ...) in the error envelope."""
    return error_response(
        exc.status_code,
        "http_error",
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report missing form fields and similar request errors as 400."""
    missing = [
        ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        for err in exc.errors()
    ]
    return error_response(
        400,
        "invalid_request",
        "Request is missing required fields or is malformed.",
        details={"context": {"fields": missing}},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return error_response(
        500,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
