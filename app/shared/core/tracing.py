from typing import Any, Optional

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.shared.core.config import get_settings

logger = structlog.get_logger()

_tracing_configured = False


def setup_tracing(app: Any = None) -> None:
    """
    Sets up OpenTelemetry tracing for the application.

    Spans are exported over OTLP only when an endpoint is configured; otherwise
    the provider still issues trace ids so logs can be correlated.
    """
    global _tracing_configured
    settings = get_settings()

    if not _tracing_configured:
        resource = Resource(
            attributes={
                "service.name": "nimbus-console-api",
                "deployment.environment": settings.ENVIRONMENT,
            }
        )
        provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(provider)

        if settings.OTEL_EXPORTER_OTLP_ENDPOINT:
            logger.info(
                "setup_tracing_otlp", endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT
            )
            exporter = OTLPSpanExporter(
                endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT,
                insecure=settings.OTEL_EXPORTER_OTLP_INSECURE,
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
        _tracing_configured = True

    if app is not None and not settings.TESTING:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("fastapi_instrumented")


def get_tracer(name: str) -> trace.Tracer:
    """Returns a tracer instance for manual instrumentation."""
    return trace.get_tracer(name)


def get_current_trace_id() -> Optional[str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


def set_correlation_id(correlation_id: str) -> None:
    """Sets a correlation ID for the current span."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.set_attribute("correlation_id", correlation_id)
