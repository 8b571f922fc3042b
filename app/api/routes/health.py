from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/")
def service_status(request: Request) -> dict:
    """Liveness endpoint.

    Reports the service name and current UTC time. It never touches the
    upstream, the credential, or the rate limiter, so orchestration checks
    succeed regardless of either.

    Returns:
        dict: ``status``, ``service`` and an ISO-8601 ``timestamp``.
    """

    return {
        "status": "ok",
        "service": request.app.state.settings.server.service_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
def health_check() -> dict:
    """Health check endpoint for load balancers and monitoring."""

    return {"status": "ok", "message": "Server is running"}
