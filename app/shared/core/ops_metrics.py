"""
Operational metrics for Nimbus Console.

Prometheus counters and histograms for API errors and for the health of the
provider normalization layer (live calls, fallbacks, timeouts).
"""

from prometheus_client import Counter, Histogram

# --- API Metrics ---
API_ERRORS_TOTAL = Counter(
    "nimbus_ops_api_errors_total",
    "Total number of API errors by status code and path",
    ["path", "method", "status_code"],
)

# --- Provider Metrics ---
PROVIDER_CALLS_TOTAL = Counter(
    "nimbus_ops_provider_calls_total",
    "Total number of cloud provider SDK calls by outcome",
    ["provider", "operation", "outcome"],
)

PROVIDER_CALL_DURATION = Histogram(
    "nimbus_ops_provider_call_duration_seconds",
    "Duration of cloud provider SDK calls",
    ["provider", "operation"],
    buckets=(0.05, 0.1, 0.5, 1, 2, 5, 10, 30),
)

PROVIDER_FALLBACKS_TOTAL = Counter(
    "nimbus_ops_provider_fallbacks_total",
    "Read requests served from fallback data instead of a live provider",
    ["provider", "kind", "reason"],
)

# --- Retry & Resilience Metrics ---
OPERATION_RETRIES_TOTAL = Counter(
    "nimbus_ops_operation_retries_total",
    "Total number of operation retries",
    ["operation_type", "attempt"],
)

OPERATION_TIMEOUTS_TOTAL = Counter(
    "nimbus_ops_operation_timeouts_total",
    "Total number of operation timeouts",
    ["operation_type"],
)


def record_provider_call(
    provider: str, operation: str, outcome: str, duration: float
) -> None:
    PROVIDER_CALLS_TOTAL.labels(
        provider=provider, operation=operation, outcome=outcome
    ).inc()
    PROVIDER_CALL_DURATION.labels(provider=provider, operation=operation).observe(
        duration
    )


def record_fallback(provider: str, kind: str, reason: str) -> None:
    PROVIDER_FALLBACKS_TOTAL.labels(provider=provider, kind=kind, reason=reason).inc()


def record_retry_metrics(operation_type: str, attempt: int) -> None:
    """Record retry metrics."""
    OPERATION_RETRIES_TOTAL.labels(
        operation_type=operation_type, attempt=str(attempt)
    ).inc()


def record_timeout_metrics(operation_type: str) -> None:
    """Record timeout metrics."""
    OPERATION_TIMEOUTS_TOTAL.labels(operation_type=operation_type).inc()
