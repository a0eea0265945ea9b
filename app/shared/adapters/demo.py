"""
In-memory demo inventory.

Serves every provider when no credentials are configured and backs the
fallback path when a live listing fails. Fixtures are already in the
normalized shape; the store owns a deep copy so mutations never leak into
the module-level data.
"""

import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from app.schemas.resources import (
    CreateResourceRequest,
    NormalizedResource,
    ResourceKind,
)
from app.shared.core.exceptions import NotFoundError, ResourceNotFoundError
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_database_cost,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)
from app.shared.core.provider import SUPPORTED_PROVIDERS

logger = structlog.get_logger()

DEMO_REGIONS = {
    "aws": "us-east-1",
    "gcp": "us-central1",
    "azure": "eastus",
    "ibm": "us-south",
}

DEMO_FIXTURES: dict[str, dict[str, list[dict[str, Any]]]] = {
    "aws": {
        "instances": [
            {"id": "i-1234567890abc", "name": "web-server-01", "type": "instance", "sku": "t3.large", "status": "running", "region": "us-east-1", "cost": "$45.67/month", "createdAt": "2024-01-15T00:00:00+00:00"},
            {"id": "i-0987654321def", "name": "db-server-01", "type": "instance", "sku": "t2.micro", "status": "stopped", "region": "us-west-2", "cost": "$8.76/month", "createdAt": "2024-01-10T00:00:00+00:00"},
            {"id": "i-abcdef123456", "name": "api-server-01", "type": "instance", "sku": "m5.xlarge", "status": "running", "region": "eu-west-1", "cost": "$192.00/month", "createdAt": "2024-01-08T00:00:00+00:00"},
        ],
        "databases": [
            {"id": "db-1234567890", "name": "prod-database", "type": "database", "engine": "PostgreSQL", "status": "available", "region": "us-east-1", "cost": "$78.90/month", "createdAt": "2024-01-12T00:00:00+00:00"},
            {"id": "db-0987654321", "name": "test-database", "type": "database", "engine": "MySQL", "status": "maintenance", "region": "us-west-2", "cost": "$23.45/month", "createdAt": "2024-01-05T00:00:00+00:00"},
        ],
        "storage": [
            {"id": "bucket-1234567", "name": "app-assets", "type": "storage", "size": "1.2TB", "status": "active", "region": "us-east-1", "cost": "$567.89/month", "createdAt": "2024-01-02T00:00:00+00:00"},
            {"id": "bucket-7654321", "name": "backup-data", "type": "storage", "size": "850GB", "status": "active", "region": "us-west-2", "cost": "$234.56/month", "createdAt": "2023-12-20T00:00:00+00:00"},
        ],
    },
    "gcp": {
        "instances": [
            {"id": "gcp-inst-001", "name": "web-vm-01", "type": "instance", "sku": "n1-standard-2", "status": "running", "region": "us-central1", "zone": "us-central1-a", "cost": "$52.34/month", "createdAt": "2024-01-14T00:00:00+00:00"},
            {"id": "gcp-inst-002", "name": "worker-vm-01", "type": "instance", "sku": "n1-standard-1", "status": "stopped", "region": "europe-west1", "zone": "europe-west1-b", "cost": "$26.17/month", "createdAt": "2024-01-09T00:00:00+00:00"},
        ],
        "databases": [
            {"id": "gcp-db-001", "name": "main-db", "type": "database", "engine": "PostgreSQL", "status": "available", "region": "us-central1", "cost": "$89.12/month", "createdAt": "2024-01-11T00:00:00+00:00"},
        ],
        "storage": [
            {"id": "gcp-bucket-001", "name": "media-storage", "type": "storage", "size": "2.1TB", "status": "active", "region": "us-central1", "cost": "$423.67/month", "createdAt": "2024-01-03T00:00:00+00:00"},
        ],
    },
    "azure": {
        "instances": [
            {"id": "azure-vm-001", "name": "app-server", "type": "instance", "sku": "Standard_D2s_v3", "status": "running", "region": "eastus", "resourceGroup": "nimbus-resources", "cost": "$73.45/month", "createdAt": "2024-01-13T00:00:00+00:00"},
            {"id": "azure-vm-002", "name": "test-server", "type": "instance", "sku": "Standard_B1s", "status": "stopped", "region": "westus2", "resourceGroup": "nimbus-resources", "cost": "$7.30/month", "createdAt": "2024-01-07T00:00:00+00:00"},
        ],
        "databases": [
            {"id": "azure-sql-001", "name": "production-db", "type": "database", "engine": "SQL Server", "status": "available", "region": "eastus", "cost": "$156.78/month", "createdAt": "2024-01-06T00:00:00+00:00"},
        ],
        "storage": [
            {"id": "azure-storage-001", "name": "blob-storage", "type": "storage", "size": "1.8TB", "status": "available", "region": "eastus", "cost": "$634.56/month", "createdAt": "2024-01-04T00:00:00+00:00"},
        ],
    },
    "ibm": {
        "instances": [
            {"id": "ibm-vsi-001", "name": "web-server-ibm", "type": "instance", "sku": "bx2-2x8", "status": "running", "region": "us-south", "zone": "us-south-1", "cost": "$45.60/month", "createdAt": "2024-01-15T00:00:00+00:00"},
            {"id": "ibm-vsi-002", "name": "database-server-ibm", "type": "instance", "sku": "cx2-4x8", "status": "running", "region": "us-south", "zone": "us-south-2", "cost": "$76.80/month", "createdAt": "2024-01-10T00:00:00+00:00"},
        ],
        "databases": [
            {"id": "ibm-db-001", "name": "production-db-ibm", "type": "database", "engine": "PostgreSQL", "status": "running", "region": "us-south", "cost": "$89.12/month", "createdAt": "2024-01-12T00:00:00+00:00"},
        ],
        "storage": [
            {"id": "ibm-cos-001", "name": "app-storage-ibm", "type": "storage", "size": "2.1TB", "status": "active", "region": "us-south", "cost": "$48.30/month", "createdAt": "2024-01-15T00:00:00+00:00"},
        ],
    },
}

_STATE_AFTER_ACTION = {"start": "running", "stop": "stopped", "restart": "running"}


def demo_resources(provider: str, kind: ResourceKind) -> list[NormalizedResource]:
    """Fresh normalized copies of the static fixtures."""
    return [
        NormalizedResource.model_validate(raw)
        for raw in DEMO_FIXTURES.get(provider, {}).get(kind.value, [])
    ]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DemoResourceStore:
    """
    Mutable per-process inventory. Every mutation runs under one asyncio.Lock,
    and every read hands out copies.
    """

    def __init__(self, fixtures: Optional[dict[str, dict[str, list[dict[str, Any]]]]] = None):
        source = copy.deepcopy(fixtures if fixtures is not None else DEMO_FIXTURES)
        self._items: dict[str, dict[ResourceKind, list[NormalizedResource]]] = {
            provider: {
                kind: [
                    NormalizedResource.model_validate(raw)
                    for raw in source.get(provider, {}).get(kind.value, [])
                ]
                for kind in ResourceKind
            }
            for provider in SUPPORTED_PROVIDERS
        }
        self._lock = asyncio.Lock()

    def _bucket(self, provider: str, kind: ResourceKind) -> list[NormalizedResource]:
        if provider not in self._items:
            raise NotFoundError("Provider not found", details={"provider": provider})
        return self._items[provider][kind]

    @staticmethod
    def _index(items: list[NormalizedResource], resource_id: str) -> int:
        for index, item in enumerate(items):
            if item.id == resource_id:
                return index
        raise ResourceNotFoundError(
            "Resource not found", details={"id": resource_id}
        )

    async def list(self, provider: str, kind: ResourceKind) -> list[NormalizedResource]:
        async with self._lock:
            return [r.model_copy(deep=True) for r in self._bucket(provider, kind)]

    async def get(
        self, provider: str, kind: ResourceKind, resource_id: str
    ) -> NormalizedResource:
        async with self._lock:
            items = self._bucket(provider, kind)
            return items[self._index(items, resource_id)].model_copy(deep=True)

    def _estimate_cost(
        self, provider: str, kind: ResourceKind, spec: CreateResourceRequest
    ) -> str:
        if kind is ResourceKind.INSTANCES:
            amount = estimate_instance_cost(provider, spec.instance_type)
        elif kind is ResourceKind.DATABASES:
            amount = estimate_database_cost(provider, spec.size)
        else:
            amount = estimate_storage_cost(provider)
        return format_monthly_cost(amount)

    async def create(
        self,
        provider: str,
        kind: ResourceKind,
        spec: CreateResourceRequest,
        created_by: Optional[str] = None,
    ) -> NormalizedResource:
        resource = NormalizedResource(
            id=f"{provider}-{kind.value}-{uuid.uuid4().hex[:8]}",
            name=spec.name or f"new-{kind.value}",
            type=kind.resource_type,  # type: ignore[arg-type]
            status="creating",
            region=spec.region or DEMO_REGIONS.get(provider, ""),
            zone=spec.zone,
            sku=(
                spec.instance_type or DEFAULT_INSTANCE_SKU.get(provider)
                if kind is ResourceKind.INSTANCES
                else None
            ),
            engine=spec.engine if kind is ResourceKind.DATABASES else None,
            size=spec.size,
            tags=dict(spec.tags),
            cost=self._estimate_cost(provider, kind, spec),
            created_at=_now(),
            created_by=created_by,
        )
        async with self._lock:
            self._bucket(provider, kind).append(resource)
        logger.info(
            "demo_resource_created",
            provider=provider,
            kind=kind.value,
            resource_id=resource.id,
        )
        return resource.model_copy(deep=True)

    async def update(
        self,
        provider: str,
        kind: ResourceKind,
        resource_id: str,
        *,
        desired_state: Optional[str] = None,
        name: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> NormalizedResource:
        async with self._lock:
            items = self._bucket(provider, kind)
            current = items[self._index(items, resource_id)]
            if desired_state:
                current.status = _STATE_AFTER_ACTION[desired_state]
            if name:
                current.name = name
            current.updated_at = _now()
            current.updated_by = updated_by
            return current.model_copy(deep=True)

    async def delete(
        self, provider: str, kind: ResourceKind, resource_id: str
    ) -> NormalizedResource:
        async with self._lock:
            items = self._bucket(provider, kind)
            return items.pop(self._index(items, resource_id))
