"""Application-level exception types.

Every failure the proxy produces itself (as opposed to upstream error
responses, which are relayed verbatim) is one of these. The global exception
handlers translate them into the ``{"error": {...}}`` envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    field: str
    hint: str
    reason: str
    upstream: str
    max_bytes: int
    actual_bytes: int
    limit: int
    retry_after: int
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for proxy failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    status_code = 400

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when client input is missing or malformed."""


class PayloadTooLargeAppError(AppError):
    """Raised when a request body exceeds the configured ceiling."""

    status_code = 413


class ConfigurationAppError(AppError):
    """Raised when the server lacks configuration required to relay a call."""

    status_code = 500


class UpstreamTransportAppError(AppError):
    """Raised when the upstream could not be reached or did not answer in time."""

    status_code = 500


@dataclass
class RateLimitAppError(AppError):
    """Raised when a client exceeds its request quota."""

    headers: dict[str, str] = field(default_factory=dict)

    status_code = 429
