"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer. The limiter
instance lives on ``app.state`` (built by the app factory), so each app, and
each test, gets its own counters.

Strategy:
- Per-client limit, keyed on the client IP address.
- Applied only to forwarding routes; liveness routes are never throttled.
- Every response on a limited route carries the standard RateLimit-Limit,
  RateLimit-Remaining and RateLimit-Reset headers; a 429 adds Retry-After.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.core.config import RateLimitSettings
from app.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> AbstractRateLimiter:
    """Return the limiter attached to the running application."""

    return request.app.state.rate_limiter


def client_identifier(request: Request, rate_settings: RateLimitSettings) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        rate_settings: Rate limit configuration.

    Returns:
        str: Namespaced limiter key.
    """

    if rate_settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return f"ip:{first_hop}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Standard ``RateLimit-*`` headers describing the client's budget."""

    return {
        "RateLimit-Limit": str(result.limit),
        "RateLimit-Remaining": str(result.remaining),
        "RateLimit-Reset": str(result.reset_after_seconds),
    }


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing per-client rate limits.

    When enabled, consumes 1 unit from the client's budget. If the client
    has exhausted its budget, raises RateLimitAppError (HTTP 429) before the
    route handler runs.

    The budget headers are left on ``request.state.rate_limit_headers`` so
    ``rate_limit_headers_middleware`` can attach them to whatever response
    the route (or the error handler) produces.

    Raises:
        RateLimitAppError: When the rate limit is exceeded.
    """

    rate_settings: RateLimitSettings = request.app.state.settings.rate_limit
    if not rate_settings.enabled:
        return

    limiter = get_rate_limiter(request)
    key = client_identifier(request, rate_settings)
    key_hash = _hash_limiter_key(key)

    result = limiter.consume(key)
    headers = rate_limit_headers(result) if rate_settings.include_headers else {}
    request.state.rate_limit_headers = headers

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_s": rate_settings.window_seconds,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": rate_settings.window_seconds,
            "retry_after_s": retry_after,
        },
    )

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message="Too many requests. Try again later.",
        details={"limit": result.limit, "retry_after": retry_after},
        headers={"Retry-After": str(retry_after), **headers},
    )


async def rate_limit_headers_middleware(request: Request, call_next) -> Response:
    """Copy the budget headers recorded by ``enforce_rate_limit`` onto the response."""

    response: Response = await call_next(request)
    headers = getattr(request.state, "rate_limit_headers", None)
    if headers:
        for name, value in headers.items():
            response.headers.setdefault(name, value)
    return response
