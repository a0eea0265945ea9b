"""
Unified Error Governance

Centrally handles exception classification, structured logging, metrics and
OpenTelemetry span recording. Every error body has the same flat shape:
``{"error": <message>, "code": <CODE>, "details"?: {...}}``.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from opentelemetry import trace

from app.shared.core.config import get_settings
from app.shared.core.exceptions import NimbusException
from app.shared.core.ops_metrics import API_ERRORS_TOTAL

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

# Codes whose message and details are safe to return in production.
SAFE_CODES = {
    "TOKEN_MISSING",
    "TOKEN_INVALID",
    "INVALID_CREDENTIALS",
    "INSUFFICIENT_PERMISSIONS",
    "VALIDATION_ERROR",
    "NOT_FOUND",
    "UPSTREAM_PROVIDER_ERROR",
    "UNSUPPORTED_OPERATION",
    "PROVIDER_NOT_CONFIGURED",
    "REQUEST_TIMEOUT",
    "RATE_LIMITED",
    "HTTP_ERROR",
}


def error_body(
    message: str, code: str, details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def handle_exception(
    request: Request, exc: Exception, error_id: Optional[str] = None
) -> JSONResponse:
    """
    Classifies and records exceptions, returning a standardized JSON response.
    """
    error_id = error_id or str(uuid4())
    settings = get_settings()
    is_prod = settings.ENVIRONMENT.lower() in ("production", "staging")

    # 1. Classification & Sanitization
    if isinstance(exc, NimbusException):
        nimbus_exc = exc
    elif isinstance(exc, ValueError):
        nimbus_exc = NimbusException(
            message="Invalid request parameters" if is_prod else str(exc),
            code="VALIDATION_ERROR",
            status_code=400,
        )
        logger.warning(
            "business_validation_error",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )
    else:
        # Unhandled exceptions never leak their message.
        nimbus_exc = NimbusException(
            message="An unexpected internal error occurred",
            code="INTERNAL_ERROR",
            status_code=500,
        )
        logger.exception(
            "unhandled_raw_exception",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )

    message = nimbus_exc.message
    details: Optional[Dict[str, Any]] = nimbus_exc.details or None
    if is_prod and nimbus_exc.code not in SAFE_CODES:
        message = "An error occurred while processing your request"
        details = None

    # 2. OTel Recording
    with tracer.start_as_current_span("handle_exception") as span:
        span.set_attribute("error.id", error_id)
        span.set_attribute("error.code", nimbus_exc.code)
        span.set_attribute("http.path", request.url.path)
        span.set_attribute("http.method", request.method)
        span.record_exception(exc)
        span.set_status(trace.Status(trace.StatusCode.ERROR, nimbus_exc.code))

    # 3. Metrics
    API_ERRORS_TOTAL.labels(
        path=request.url.path,
        method=request.method,
        status_code=nimbus_exc.status_code,
    ).inc()

    # 4. Structured Logging (4xx are expected traffic, 5xx are incidents)
    log = logger.error if nimbus_exc.status_code >= 500 else logger.info
    log(
        "api_error",
        error_id=error_id,
        code=nimbus_exc.code,
        message=nimbus_exc.message,
        status_code=nimbus_exc.status_code,
        path=request.url.path,
        details=nimbus_exc.details,
    )

    return JSONResponse(
        status_code=nimbus_exc.status_code,
        content=error_body(message, nimbus_exc.code, details),
        headers={"X-Error-ID": error_id},
    )
