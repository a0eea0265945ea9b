import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

import structlog

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceLocator,
)
from app.shared.core.exceptions import (
    NimbusException,
    UnsupportedOperationError,
    UpstreamProviderError,
)

logger = structlog.get_logger()

METRIC_FIELDS = ("cpu", "memory", "network", "disk")


def synthesize_metrics(
    resource_id: str,
    measured: Optional[Mapping[str, float]] = None,
    *,
    source: str = "synthetic",
    rng: Optional[random.Random] = None,
) -> MetricSample:
    """
    Fill every metric the provider did not measure with a uniform random value
    in its valid range, and record which ones were filled.
    """
    rng = rng or random.Random()
    measured = dict(measured or {})
    values: dict[str, float] = {}
    synthetic_fields: list[str] = []
    for field in METRIC_FIELDS:
        if field in measured and measured[field] is not None:
            values[field] = round(float(measured[field]), 2)
            continue
        synthetic_fields.append(field)
        upper = 1000.0 if field == "network" else 100.0
        values[field] = round(rng.uniform(0, upper), 2)
    if len(synthetic_fields) == len(METRIC_FIELDS):
        source = "synthetic"
    return MetricSample(
        resource_id=resource_id,
        source=source,
        synthetic_fields=synthetic_fields,
        **values,
    )


def isoformat(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return str(value)


class BaseResourceAdapter(ABC):
    """
    Abstract base for per-provider resource adapters.

    An adapter owns long-lived SDK clients for one provider and maps the
    provider's native records into NormalizedResource / MetricSample.
    """

    provider: str = ""
    # Native status -> normalized status, keyed lower-case.
    STATUS_MAP: dict[str, str] = {}
    # Per-kind overrides consulted before STATUS_MAP.
    KIND_STATUS_MAPS: dict[ResourceKind, dict[str, str]] = {}

    last_error: Optional[str] = None

    def normalize_status(
        self, native: Optional[str], kind: Optional[ResourceKind] = None
    ) -> str:
        """
        Map a native status onto the shared vocabulary.
        Unmapped statuses pass through unchanged; None becomes "".
        """
        if native is None:
            return ""
        native = str(native)
        key = native.strip().lower()
        if kind is not None:
            mapped = self.KIND_STATUS_MAPS.get(kind, {}).get(key)
            if mapped is not None:
                return mapped
        return self.STATUS_MAP.get(key, native)

    def _set_last_error(self, message: str) -> None:
        self.last_error = message

    def _upstream_error(self, operation: str, exc: Exception) -> NimbusException:
        """Wrap an SDK exception; taxonomy errors raised by our own code pass through."""
        if isinstance(exc, NimbusException):
            return exc
        self._set_last_error(f"{operation}: {exc}")
        logger.error(
            "provider_call_failed",
            provider=self.provider,
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return UpstreamProviderError(
            f"{self.provider} {operation} failed",
            provider=self.provider,
            operation=operation,
            upstream=str(exc) or type(exc).__name__,
        )

    def _unsupported(self, kind: ResourceKind, operation: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(self.provider, kind.value, operation)

    @staticmethod
    def _first(values: Iterable[Any]) -> Any:
        return next(iter(values), None)

    @abstractmethod
    async def verify_connection(self) -> bool:
        """Verify that the configured credentials are valid."""
        raise NotImplementedError()

    @abstractmethod
    async def list_resources(self, kind: ResourceKind) -> list[NormalizedResource]:
        raise NotImplementedError()

    @abstractmethod
    async def create_resource(
        self, kind: ResourceKind, spec: CreateResourceRequest
    ) -> NormalizedResource:
        raise NotImplementedError()

    @abstractmethod
    async def update_resource_state(
        self,
        kind: ResourceKind,
        resource_id: str,
        desired_state: str,
        locator: ResourceLocator,
    ) -> ResourceAck:
        """desired_state is one of start, stop, restart."""
        raise NotImplementedError()

    @abstractmethod
    async def delete_resource(
        self, kind: ResourceKind, resource_id: str, locator: ResourceLocator
    ) -> ResourceAck:
        raise NotImplementedError()

    @abstractmethod
    async def get_metrics(
        self, resource_id: str, locator: ResourceLocator
    ) -> MetricSample:
        raise NotImplementedError()

    async def close(self) -> None:
        """Release SDK clients. Adapters without persistent clients need nothing."""
        return None
