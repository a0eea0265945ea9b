"""
Timeouts for provider calls and inbound requests.

Every awaited cloud SDK call runs under ``asyncio.wait_for`` so a hung
provider cannot pin a request. Cancelling the awaiting task (client
disconnect, request timeout) cancels the SDK coroutine with it.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.shared.core.config import get_settings
from app.shared.core.error_governance import error_body
from app.shared.core.exceptions import UpstreamProviderError
from app.shared.core.ops_metrics import record_provider_call, record_timeout_metrics

logger = structlog.get_logger()

T = TypeVar("T")


class TimeoutManager:
    """Runs one provider operation under a deadline and records its outcome."""

    def __init__(self, provider: str, operation: str, timeout: float | None = None):
        self.provider = provider
        self.operation = operation
        self.timeout = timeout or get_settings().PROVIDER_CALL_TIMEOUT_SECONDS

    async def execute_with_timeout(
        self,
        coro: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(coro(*args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            elapsed = time.perf_counter() - start_time
            record_timeout_metrics(f"{self.provider}.{self.operation}")
            record_provider_call(self.provider, self.operation, "timeout", elapsed)
            logger.warning(
                "provider_call_timed_out",
                provider=self.provider,
                operation=self.operation,
                timeout_seconds=self.timeout,
            )
            raise UpstreamProviderError(
                f"{self.provider} {self.operation} timed out",
                provider=self.provider,
                operation=self.operation,
                upstream=f"no response within {self.timeout} seconds",
            ) from exc
        except Exception:
            record_provider_call(
                self.provider,
                self.operation,
                "error",
                time.perf_counter() - start_time,
            )
            raise

        elapsed = time.perf_counter() - start_time
        record_provider_call(self.provider, self.operation, "ok", elapsed)
        logger.debug(
            "provider_call_completed",
            provider=self.provider,
            operation=self.operation,
            execution_time_seconds=round(elapsed, 3),
        )
        return result


async def call_with_timeout(
    provider: str,
    operation: str,
    coro: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: float | None = None,
    **kwargs: Any,
) -> T:
    return await TimeoutManager(provider, operation, timeout).execute_with_timeout(
        coro, *args, **kwargs
    )


class TimeoutMiddleware(BaseHTTPMiddleware):
    """
    Middleware to enforce request timeouts.

    The handler task is cancelled when the deadline passes, which propagates
    cancellation into any in-flight provider call.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float | None = None) -> None:
        super().__init__(app)
        self.timeout_seconds = (
            timeout_seconds or get_settings().REQUEST_TIMEOUT_SECONDS
        )

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await asyncio.wait_for(
                call_next(request), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "request_timeout",
                path=request.url.path,
                method=request.method,
                timeout_seconds=self.timeout_seconds,
            )
            return JSONResponse(
                status_code=504,
                content=error_body(
                    f"Request timed out after {self.timeout_seconds} seconds",
                    "REQUEST_TIMEOUT",
                ),
            )
