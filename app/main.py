import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Sequence

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.modules.inventory.domain.service import ResourceInventoryService
from app.shared.adapters.demo import DemoResourceStore
from app.shared.adapters.factory import AdapterFactory
from app.shared.core.app_routes import register_api_routers, register_lifecycle_routes
from app.shared.core.config import get_settings, reload_settings_from_environment
from app.shared.core.error_governance import error_body, handle_exception
from app.shared.core.exceptions import NimbusException
from app.shared.core.logging import setup_logging
from app.shared.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from app.shared.core.ops_metrics import API_ERRORS_TOTAL
from app.shared.core.provider import SUPPORTED_PROVIDERS
from app.shared.core.rate_limit import setup_rate_limiting
from app.shared.core.timeout import TimeoutMiddleware
from app.shared.core.tracing import setup_tracing
from app.shared.db.session import get_engine, init_models

setup_logging()
settings = get_settings()
logger = structlog.get_logger()

_HTTP_ERROR_CODES = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()
    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.ENVIRONMENT)

    await init_models()

    factory = AdapterFactory(settings)
    demo_store = DemoResourceStore()
    app.state.adapter_factory = factory
    app.state.demo_store = demo_store
    app.state.inventory_service = ResourceInventoryService(factory, demo_store, settings)

    configured = [p for p in SUPPORTED_PROVIDERS if factory.is_configured(p)]
    logger.info("providers_configured", providers=configured or None, demo_mode=not configured)

    yield

    logger.info("app_shutting_down")
    await factory.close_all()
    await get_engine().dispose()
    logger.info("db_engine_disposed")


# Application instance
nimbus_app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)
# Uvicorn looks for 'app' by default.
app: FastAPI = nimbus_app

__all__ = ["app", "nimbus_app", "lifespan"]

setup_tracing(nimbus_app)


@nimbus_app.exception_handler(NimbusException)
async def nimbus_exception_handler(request: Request, exc: NimbusException) -> JSONResponse:
    """Handle custom application exceptions."""
    return handle_exception(request, exc)


@nimbus_app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle framework HTTP exceptions (unknown routes, wrong methods) in the shared shape."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    API_ERRORS_TOTAL.labels(
        path=request.url.path, method=request.method, status_code=exc.status_code
    ).inc()
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, _HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")),
        headers=getattr(exc, "headers", None),
    )


@nimbus_app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed bodies and parameters are a 400 like any other validation error."""

    def _json_safe(value: Any) -> Any:
        if isinstance(value, Exception):
            return str(value)
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)

    def _sanitize_errors(errors: Sequence[Any]) -> List[Dict[str, Any]]:
        sanitized = []
        for err in errors:
            clean = {k: v for k, v in dict(err).items() if k != "url"}
            if "ctx" in clean and isinstance(clean["ctx"], dict):
                clean["ctx"] = {k: _json_safe(v) for k, v in clean["ctx"].items()}
            if "input" in clean:
                clean["input"] = _json_safe(clean["input"])
            sanitized.append(clean)
        return sanitized

    API_ERRORS_TOTAL.labels(
        path=request.url.path, method=request.method, status_code=400
    ).inc()
    return JSONResponse(
        status_code=400,
        content=error_body(
            "The request body or parameters are invalid.",
            "VALIDATION_ERROR",
            {"errors": _sanitize_errors(exc.errors())},
        ),
    )


@nimbus_app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle business logic ValueErrors via central governance."""
    return handle_exception(request, exc)


setup_rate_limiting(nimbus_app)


@nimbus_app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled exceptions: logged with a stack, answered with a generic 500."""
    return handle_exception(request, exc)


register_lifecycle_routes(
    nimbus_app,
    app_name=settings.APP_NAME,
    version=settings.VERSION,
)

# Initialize Prometheus Metrics
Instrumentator().instrument(nimbus_app).expose(nimbus_app, include_in_schema=False)

# Middleware is processed in REVERSE order of addition.
# CORS must be added LAST so it processes FIRST for incoming requests.
nimbus_app.add_middleware(TimeoutMiddleware)
nimbus_app.add_middleware(GZipMiddleware, minimum_size=1000)
nimbus_app.add_middleware(SecurityHeadersMiddleware)
nimbus_app.add_middleware(RequestIDMiddleware)

# allow_credentials=True forbids wildcard origins
if settings.CORS_ORIGINS and "*" in settings.CORS_ORIGINS:
    logger.error(
        "insecure_cors_config_detected",
        msg="allow_credentials=True with '*' origin is forbidden",
    )
    cors_allowed_origins = [o for o in settings.CORS_ORIGINS if o != "*"]
else:
    cors_allowed_origins = settings.CORS_ORIGINS

nimbus_app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

register_api_routers(nimbus_app, settings.API_PREFIX)
