"""
Bounded retry with exponential backoff for idempotent provider reads.

Mutations (create/update/delete) are never retried here: a repeated call
could duplicate a side effect the provider already applied.
"""

from typing import Any, Awaitable, Callable, Dict, TypeVar

import structlog
import tenacity

from app.shared.core.config import get_settings
from app.shared.core.exceptions import UpstreamProviderError
from app.shared.core.ops_metrics import record_retry_metrics

logger = structlog.get_logger()
T = TypeVar("T")


def _build_retry_config(operation_type: str) -> Dict[str, Any]:
    settings = get_settings()

    def _before_sleep(retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else None
        record_retry_metrics(operation_type, retry_state.attempt_number)
        logger.warning(
            "provider_read_retrying",
            operation_type=operation_type,
            attempt=retry_state.attempt_number,
            wait_seconds=wait,
            error=str(exc) if exc else None,
        )

    config: Dict[str, Any] = {
        "retry": tenacity.retry_if_exception_type(UpstreamProviderError),
        "wait": tenacity.wait_exponential(multiplier=0.5, min=0.5, max=4),
        "stop": tenacity.stop_after_attempt(settings.PROVIDER_READ_RETRY_ATTEMPTS),
        "before_sleep": _before_sleep,
        "reraise": True,
    }
    if settings.TESTING:
        # Avoid real sleeps during tests while preserving retry semantics.
        async def _no_sleep(_seconds: float) -> None:
            return None

        config["sleep"] = _no_sleep
        config["wait"] = tenacity.wait_none()
    return config


async def retry_read(
    operation_type: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run an idempotent read, retrying upstream failures a bounded number of times."""
    retrying = tenacity.AsyncRetrying(**_build_retry_config(operation_type))
    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
