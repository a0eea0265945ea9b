import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.shared.core.config import get_settings
from app.shared.core.tracing import set_correlation_id


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        settings = get_settings()
        response = await call_next(request)

        # HSTS only on HTTPS, disabled for local debugging
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=0"
                if settings.DEBUG
                else "max-age=31536000; includeSubDomains; preload"
            )

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )

        # Swagger UI needs inline scripts
        if request.url.path in ["/docs", "/redoc", "/openapi.json"]:
            return response

        connect_src = " ".join(["'self'", *settings.CORS_ORIGINS])
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'none'; "
            f"connect-src {connect_src}; "
            "frame-ancestors 'none'; "
            "base-uri 'none';",
        )
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a unique X-Request-ID into the logs and response.
    The client-supplied header is trusted for correlation only.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        set_correlation_id(request_id)
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
