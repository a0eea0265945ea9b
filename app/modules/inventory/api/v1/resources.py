"""
Resources API

Reads are open to any signed-in principal (guest and up); create, update and
delete require the user role. Providers without credentials are served from
the in-memory demo store.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request

from app.modules.inventory.domain.service import ResourceInventoryService
from app.schemas.resources import (
    CreateResourceRequest,
    ResourceLocator,
    UpdateResourceRequest,
    parse_kind,
)
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.logging import audit_log
from app.shared.core.provider import require_provider

logger = structlog.get_logger()
router = APIRouter(tags=["Resources"])


def get_inventory_service(request: Request) -> ResourceInventoryService:
    return request.app.state.inventory_service


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/{provider}")
async def list_resources(
    provider: str,
    resource_type: Optional[str] = Query(default=None, alias="type"),
    user: CurrentUser = Depends(requires_role("guest")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    kind = parse_kind(resource_type) if resource_type else None
    listing = await service.list_resources(provider, kind)
    return {
        **listing.model_dump(by_alias=True, exclude_none=True),
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/{resource_type}/{resource_id}")
async def get_resource(
    provider: str,
    resource_type: str,
    resource_id: str,
    user: CurrentUser = Depends(requires_role("guest")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    kind = parse_kind(resource_type)
    resource, source = await service.get_resource(provider, kind, resource_id)
    return {
        "provider": provider,
        "type": kind.value,
        "resource": resource.model_dump(by_alias=True, exclude_none=True),
        "source": source,
        "timestamp": _timestamp(),
    }


@router.post("/{provider}/{resource_type}", status_code=201)
async def create_resource(
    provider: str,
    resource_type: str,
    spec: Optional[CreateResourceRequest] = None,
    idempotency_key: Optional[str] = Header(
        default=None, alias="Idempotency-Key", min_length=1, max_length=64
    ),
    user: CurrentUser = Depends(requires_role("user")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    kind = parse_kind(resource_type)
    spec = spec or CreateResourceRequest()
    if idempotency_key:
        spec = spec.model_copy(update={"idempotency_key": idempotency_key})
    resource, source = await service.create_resource(provider, kind, spec, user)
    audit_log(
        "resource_created",
        user.id,
        {"provider": provider, "type": kind.value, "resource_id": resource.id, "source": source},
    )
    return {
        "message": "Resource created successfully",
        "resource": resource.model_dump(by_alias=True, exclude_none=True),
        "source": source,
        "timestamp": _timestamp(),
    }


@router.put("/{provider}/{resource_type}/{resource_id}")
async def update_resource(
    provider: str,
    resource_type: str,
    resource_id: str,
    update: UpdateResourceRequest,
    zone: Optional[str] = Query(default=None),
    resource_group: Optional[str] = Query(default=None, alias="resourceGroup"),
    region: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(requires_role("user")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    kind = parse_kind(resource_type)
    locator = ResourceLocator(zone=zone, resource_group=resource_group, region=region)
    ack, resource = await service.update_resource_state(
        provider, kind, resource_id, update, user, locator
    )
    audit_log(
        "resource_updated",
        user.id,
        {"provider": provider, "type": kind.value, "resource_id": resource_id},
    )
    payload: dict[str, Any] = {
        "message": ack.message,
        "ack": ack.model_dump(by_alias=True, exclude_none=True),
        "timestamp": _timestamp(),
    }
    if resource is not None:
        payload["resource"] = resource.model_dump(by_alias=True, exclude_none=True)
    return payload


@router.delete("/{provider}/{resource_type}/{resource_id}")
async def delete_resource(
    provider: str,
    resource_type: str,
    resource_id: str,
    zone: Optional[str] = Query(default=None),
    resource_group: Optional[str] = Query(default=None, alias="resourceGroup"),
    region: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(requires_role("user")),
    service: ResourceInventoryService = Depends(get_inventory_service),
) -> dict[str, Any]:
    provider = require_provider(provider)
    kind = parse_kind(resource_type)
    locator = ResourceLocator(zone=zone, resource_group=resource_group, region=region)
    ack, resource = await service.delete_resource(
        provider, kind, resource_id, user, locator
    )
    audit_log(
        "resource_deleted",
        user.id,
        {"provider": provider, "type": kind.value, "resource_id": resource_id},
    )
    payload: dict[str, Any] = {
        "message": ack.message,
        "ack": ack.model_dump(by_alias=True, exclude_none=True),
        "timestamp": _timestamp(),
    }
    if resource is not None:
        payload["resource"] = resource.model_dump(by_alias=True, exclude_none=True)
    return payload
