from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.modules.inventory.api.v1.resources import get_inventory_service
from app.modules.inventory.domain.service import ResourceInventoryService
from app.modules.monitoring.domain.telemetry import (
    METRIC_UNITS,
    SYNTHETIC_NOTE,
    build_alerts,
    build_metric_series,
    build_overview,
    filter_alerts,
)
from app.schemas.resources import ResourceLocator
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.exceptions import ValidationError
from app.shared.core.provider import require_provider

router = APIRouter(tags=["Monitoring"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/{provider}")
async def get_monitoring_overview(
    provider: str,
    time_range: str = Query(default="24h", alias="timeRange"),
    user: CurrentUser = Depends(requires_role("user")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {**build_overview(provider), "timeRange": time_range, "timestamp": _timestamp()}


@router.get("/{provider}/metrics/{metric}")
async def get_metric_series(
    provider: str,
    metric: str,
    time_range: str = Query(default="24h", alias="timeRange"),
    interval: str = Query(default="1h"),
    user: CurrentUser = Depends(requires_role("user")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    if metric not in METRIC_UNITS:
        raise ValidationError(
            "Invalid metric", details={"metric": metric, "allowed": list(METRIC_UNITS)}
        )
    return {
        **build_metric_series(provider, metric),
        "timeRange": time_range,
        "interval": interval,
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/alerts")
async def get_alerts(
    provider: str,
    severity: Optional[str] = Query(default=None),
    status: str = Query(default="active"),
    user: CurrentUser = Depends(requires_role("user")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    alerts = filter_alerts(build_alerts(provider), severity=severity, status=status)
    return {
        "provider": provider,
        "alerts": alerts,
        "count": len(alerts),
        "synthetic": True,
        "note": SYNTHETIC_NOTE,
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/resources/{resource_id}")
async def get_resource_metrics(
    provider: str,
    resource_id: str,
    zone: Optional[str] = Query(default=None),
    resource_group: Optional[str] = Query(default=None, alias="resourceGroup"),
    region: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(requires_role("user")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    sample = await service.get_metrics(
        provider,
        resource_id,
        ResourceLocator(zone=zone, resource_group=resource_group, region=region),
    )
    return {
        "provider": provider,
        "metrics": sample.model_dump(by_alias=True),
        "synthetic": sample.synthetic,
        "timestamp": _timestamp(),
    }
