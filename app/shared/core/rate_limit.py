"""
Rate limiting for Nimbus Console.

Uses slowapi with in-process storage; limits apply per bearer token when one
is presented and per client address otherwise.
"""

import hashlib
from typing import Any, Callable, cast

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.shared.core.config import get_settings
from app.shared.core.error_governance import error_body
from app.shared.core.ops_metrics import API_ERRORS_TOTAL

__all__ = [
    "get_limiter",
    "setup_rate_limiting",
    "rate_limit",
    "auth_limit",
    "RateLimitExceeded",
]

logger = structlog.get_logger()

_limiter: Limiter | None = None


def context_aware_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        return f"token:{hashlib.sha256(token.encode()).hexdigest()[:16]}"
    return get_remote_address(request)


def get_limiter() -> Limiter:
    """Lazy initialization of the Limiter instance."""
    global _limiter
    if _limiter is None:
        settings = get_settings()
        _limiter = Limiter(
            key_func=context_aware_key,
            storage_uri="memory://",
            strategy="fixed-window",
            enabled=settings.RATELIMIT_ENABLED and not settings.TESTING,
        )
    return _limiter


async def rate_limit_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, RateLimitExceeded):
        raise exc
    API_ERRORS_TOTAL.labels(
        path=request.url.path, method=request.method, status_code=429
    ).inc()
    logger.warning("rate_limit_exceeded", path=request.url.path, limit=str(exc.detail))
    return JSONResponse(
        status_code=429,
        content=error_body(f"Rate limit exceeded: {exc.detail}", "RATE_LIMITED"),
    )


def setup_rate_limiting(app: FastAPI) -> None:
    app.state.limiter = get_limiter()
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    logger.info("rate_limiting_configured")


def rate_limit(
    limit: str | Callable[..., str] = "100/minute",
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator to apply rate limiting to an endpoint.

    The limiter checks its own ``enabled`` flag on every request, so the
    decorator is always applied regardless of settings at import time.
    """
    return cast(
        Callable[[Callable[..., Any]], Callable[..., Any]], get_limiter().limit(limit)
    )


def auth_limit() -> str:
    return get_settings().AUTH_RATE_LIMIT
