"""Rate limiting adapters.

An in-memory limiter is enough for a single-process proxy; the abstraction
keeps room for a shared store (e.g. Redis) without changing the API layer.
"""

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.in_memory import (
    InMemoryFixedWindowRateLimiter,
    InMemorySlidingWindowRateLimiter,
    create_rate_limiter,
)

__all__ = [
    "AbstractRateLimiter",
    "InMemoryFixedWindowRateLimiter",
    "InMemorySlidingWindowRateLimiter",
    "RateLimitResult",
    "create_rate_limiter",
]
