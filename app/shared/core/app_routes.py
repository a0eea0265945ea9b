from typing import Any

from fastapi import FastAPI, Request
from prometheus_client import Gauge

from app.shared.db.session import health_check as db_health_check

SYSTEM_HEALTH = Gauge(
    "nimbus_system_health",
    "System health status (1=healthy, 0.5=degraded, 0=unhealthy)",
)

_REQUIRED_API_PREFIXES = {
    "/auth",
    "/resources",
    "/monitoring",
    "/billing",
    "/security",
    "/nlp",
}


def _validate_router_registry(routes: list[tuple[Any, str]]) -> None:
    seen_prefixes: set[str] = set()
    for router, prefix in routes:
        route_list = getattr(router, "routes", None)
        if not isinstance(route_list, list) or not route_list:
            raise RuntimeError("Router registry includes an empty router definition")
        normalized_prefix = prefix.strip()
        if not normalized_prefix.startswith("/"):
            raise RuntimeError(f"Router prefix must start with '/': {prefix!r}")
        if normalized_prefix in seen_prefixes:
            raise RuntimeError(f"Duplicate router prefix registered: {normalized_prefix}")
        seen_prefixes.add(normalized_prefix)

    missing_prefixes = sorted(_REQUIRED_API_PREFIXES - seen_prefixes)
    if missing_prefixes:
        raise RuntimeError(
            "Router registry is missing required API prefixes: "
            + ", ".join(missing_prefixes)
        )

    unexpected_prefixes = sorted(seen_prefixes - _REQUIRED_API_PREFIXES)
    if unexpected_prefixes:
        raise RuntimeError(
            "Router registry includes unexpected API prefixes: "
            + ", ".join(unexpected_prefixes)
        )


def register_lifecycle_routes(
    app: FastAPI,
    *,
    app_name: str,
    version: str,
) -> None:
    """Register lifecycle and health endpoints."""

    @app.get("/", tags=["Lifecycle"])
    async def root() -> dict[str, str]:
        """Root endpoint for basic reachability."""
        return {"status": "ok", "app": app_name, "version": version}

    @app.get("/health", tags=["Lifecycle"])
    async def health_check(request: Request) -> dict[str, Any]:
        """
        Always 200. Reports database reachability and, per provider,
        connected / error / not_configured.
        """
        database = await db_health_check()
        providers = await request.app.state.inventory_service.provider_health()

        if database["status"] == "down":
            overall = "unhealthy"
        elif any(p["status"] == "error" for p in providers.values()):
            overall = "degraded"
        else:
            overall = "healthy"
        status_map = {"healthy": 1.0, "degraded": 0.5, "unhealthy": 0.0}
        SYSTEM_HEALTH.set(status_map[overall])

        return {
            "status": overall,
            "version": version,
            "database": database,
            "providers": providers,
        }


def register_api_routers(app: FastAPI, api_prefix: str = "/api") -> None:
    """Register API route modules in one place to keep app entrypoint focused."""
    from app.modules.assistant.api.v1.nlp import router as nlp_router
    from app.modules.billing.api.v1.billing import router as billing_router
    from app.modules.identity.api.v1.auth import router as auth_router
    from app.modules.inventory.api.v1.resources import router as resources_router
    from app.modules.monitoring.api.v1.monitoring import router as monitoring_router
    from app.modules.security.api.v1.security import router as security_router

    routes: list[tuple[Any, str]] = [
        (auth_router, "/auth"),
        (resources_router, "/resources"),
        (monitoring_router, "/monitoring"),
        (billing_router, "/billing"),
        (security_router, "/security"),
        (nlp_router, "/nlp"),
    ]

    _validate_router_registry(routes)

    base = api_prefix.rstrip("/")
    for router, prefix in routes:
        app.include_router(router, prefix=f"{base}{prefix}")
