"""
IBM Cloud adapter.

Virtual server instances come from the VPC API; databases and object
storage are read from the resource controller's service instance list.
Both SDKs are synchronous and run in worker threads.
"""

import asyncio
import uuid
from typing import Any, Callable, Optional, TypeVar

import structlog
from ibm_cloud_sdk_core import ApiException
from ibm_cloud_sdk_core.authenticators import IAMAuthenticator
from ibm_platform_services import ResourceControllerV2
from ibm_vpc import VpcV1

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceLocator,
)
from app.shared.adapters.base import BaseResourceAdapter, isoformat, synthesize_metrics
from app.shared.core.credentials import IBMCredentials
from app.shared.core.exceptions import (
    NimbusException,
    ResourceNotFoundError,
    ValidationError,
)
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_database_cost,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)

logger = structlog.get_logger()
T = TypeVar("T")

# Public Ubuntu image in us-south, used when the image listing fails
FALLBACK_IMAGE_ID = "r006-14140f94-fcc4-11e9-96e7-a72723715315"

_DB_ENGINES = (
    ("postgresql", "PostgreSQL"),
    ("mysql", "MySQL"),
    ("mongodb", "MongoDB"),
)


def _service_name(raw: dict[str, Any]) -> str:
    """Catalog service name, taken from the CRN when present."""
    crn = raw.get("crn") or ""
    parts = crn.split(":")
    if len(parts) > 4 and parts[4]:
        return parts[4]
    return str(raw.get("resource_id") or "")


def _db_engine(raw: dict[str, Any]) -> str:
    haystack = f"{_service_name(raw)} {raw.get('resource_plan_id') or ''}".lower()
    for needle, engine in _DB_ENGINES:
        if needle in haystack:
            return engine
    return "Db2"


class IBMAdapter(BaseResourceAdapter):
    provider = "ibm"

    STATUS_MAP = {
        "running": "running",
        "stopped": "stopped",
        "starting": "starting",
        "stopping": "stopping",
        "restarting": "starting",
        "pending": "creating",
        "deleting": "stopping",
        "failed": "error",
    }
    KIND_STATUS_MAPS = {
        ResourceKind.DATABASES: {"active": "running", "provisioning": "creating"},
        ResourceKind.STORAGE: {"active": "active", "provisioning": "creating"},
    }

    def __init__(self, credentials: IBMCredentials):
        self.credentials = credentials
        api_key = credentials.api_key.get_secret_value() if credentials.api_key else ""
        self._authenticator = IAMAuthenticator(apikey=api_key)
        self._vpc: VpcV1 | None = None
        self._controller: ResourceControllerV2 | None = None

    @property
    def region(self) -> str:
        return self.credentials.region

    def _vpc_client(self) -> VpcV1:
        if self._vpc is None:
            self._vpc = VpcV1(authenticator=self._authenticator)
            self._vpc.set_service_url(f"https://{self.region}.iaas.cloud.ibm.com/v1")
        return self._vpc

    def _controller_client(self) -> ResourceControllerV2:
        if self._controller is None:
            self._controller = ResourceControllerV2(authenticator=self._authenticator)
        return self._controller

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    def _translate(
        self, operation: str, exc: Exception, resource_id: str = ""
    ) -> NimbusException:
        if isinstance(exc, ApiException) and exc.code == 404:
            return ResourceNotFoundError(
                f"Resource {resource_id} not found",
                details={"provider": self.provider, "id": resource_id},
            )
        return self._upstream_error(operation, exc)

    async def verify_connection(self) -> bool:
        try:
            await self._run(
                lambda: self._controller_client().list_resource_instances(limit=1)
            )
            return True
        except Exception as e:
            self._set_last_error(str(e))
            logger.warning("ibm_verify_failed", error=str(e), region=self.region)
            return False

    # --- mapping ---

    def _map_instance(self, raw: dict[str, Any]) -> NormalizedResource:
        sku = (raw.get("profile") or {}).get("name")
        return NormalizedResource(
            id=raw["id"],
            name=raw.get("name") or raw["id"],
            type="instance",
            status=self.normalize_status(raw.get("status")),
            region=self.region,
            zone=(raw.get("zone") or {}).get("name") or f"{self.region}-1",
            sku=sku,
            cost=format_monthly_cost(estimate_instance_cost(self.provider, sku)),
            created_at=isoformat(raw.get("created_at")),
        )

    def _map_service_instance(
        self, raw: dict[str, Any], kind: ResourceKind
    ) -> NormalizedResource:
        if kind is ResourceKind.DATABASES:
            cost = estimate_database_cost(self.provider, raw.get("resource_plan_id"))
            engine: Optional[str] = _db_engine(raw)
        else:
            cost = estimate_storage_cost(self.provider)
            engine = None
        return NormalizedResource(
            id=raw["id"],
            name=raw.get("name") or raw["id"],
            type=kind.resource_type,  # type: ignore[arg-type]
            status=self.normalize_status(raw.get("state"), kind),
            region=raw.get("region_id") or self.region,
            engine=engine,
            cost=format_monthly_cost(cost),
            created_at=isoformat(raw.get("created_at")),
        )

    # --- reads ---

    def _list_instances_sync(self) -> list[dict[str, Any]]:
        client = self._vpc_client()
        items: list[dict[str, Any]] = []
        start: Optional[str] = None
        while True:
            result = client.list_instances(start=start, limit=100).get_result()
            items.extend(result.get("instances", []))
            next_href = (result.get("next") or {}).get("href")
            if not next_href or "start=" not in next_href:
                return items
            start = next_href.split("start=", 1)[1].split("&", 1)[0]

    def _list_service_instances_sync(self) -> list[dict[str, Any]]:
        result = self._controller_client().list_resource_instances(
            resource_group_id=self.credentials.resource_group_id
        ).get_result()
        return list(result.get("resources", []))

    async def list_resources(self, kind: ResourceKind) -> list[NormalizedResource]:
        try:
            if kind is ResourceKind.INSTANCES:
                raw_instances = await self._run(self._list_instances_sync)
                return [self._map_instance(raw) for raw in raw_instances]
            raw_services = await self._run(self._list_service_instances_sync)
            needle = (
                "databases" if kind is ResourceKind.DATABASES else "cloud-object-storage"
            )
            return [
                self._map_service_instance(raw, kind)
                for raw in raw_services
                if needle in _service_name(raw)
            ]
        except Exception as e:
            raise self._translate(f"list_{kind.value}", e) from e

    async def get_metrics(self, resource_id: str, locator: ResourceLocator) -> MetricSample:
        """
        No monitoring integration: a stopped instance reports zeros, a running
        one gets synthesised values.
        """
        try:
            raw = await self._run(
                lambda: self._vpc_client().get_instance(id=resource_id).get_result()
            )
        except Exception as e:
            raise self._translate("get_metrics", e, resource_id) from e

        if raw.get("status") != "running":
            return MetricSample(
                resource_id=resource_id,
                cpu=0,
                memory=0,
                network=0,
                disk=0,
                source="derived",
            )
        return synthesize_metrics(resource_id)

    # --- writes ---

    def _resolve_vpc_id_sync(self) -> str:
        if self.credentials.vpc_id:
            return self.credentials.vpc_id
        vpcs = self._vpc_client().list_vpcs().get_result().get("vpcs", [])
        first = self._first(vpcs)
        if not first:
            raise ValidationError(
                "No VPC available for new instances", details={"region": self.region}
            )
        return str(first["id"])

    def _resolve_subnet_id_sync(self, vpc_id: str) -> str:
        subnets = self._vpc_client().list_subnets().get_result().get("subnets", [])
        subnet = self._first(
            s for s in subnets if (s.get("vpc") or {}).get("id") == vpc_id
        )
        if not subnet:
            raise ValidationError(
                "No suitable subnet found for instance creation",
                details={"vpcId": vpc_id},
            )
        return str(subnet["id"])

    def _resolve_image_id_sync(self, spec: CreateResourceRequest) -> str:
        """Explicit image, then the first available Ubuntu image, then a fixed id."""
        if spec.image:
            return spec.image
        try:
            images = self._vpc_client().list_images().get_result().get("images", [])
        except Exception as e:
            logger.warning("ibm_default_image_lookup_failed", error=str(e))
            return FALLBACK_IMAGE_ID
        ubuntu = self._first(
            img
            for img in images
            if "ubuntu" in str(img.get("name", "")).lower()
            and img.get("status") == "available"
        )
        chosen = ubuntu or self._first(images)
        return str(chosen["id"]) if chosen else FALLBACK_IMAGE_ID

    def _create_instance_sync(self, spec: CreateResourceRequest) -> dict[str, Any]:
        # Lookups only; the single create_instance call is the one side effect.
        vpc_id = self._resolve_vpc_id_sync()
        subnet_id = self._resolve_subnet_id_sync(vpc_id)
        image_id = self._resolve_image_id_sync(spec)
        prototype: dict[str, Any] = {
            "name": (spec.name or f"nimbus-{uuid.uuid4().hex[:8]}").lower(),
            "profile": {"name": spec.instance_type or DEFAULT_INSTANCE_SKU[self.provider]},
            "image": {"id": image_id},
            "zone": {"name": spec.zone or f"{self.region}-1"},
            "vpc": {"id": vpc_id},
            "primary_network_interface": {"subnet": {"id": subnet_id}},
        }
        if self.credentials.resource_group_id:
            prototype["resource_group"] = {"id": self.credentials.resource_group_id}
        return dict(
            self._vpc_client().create_instance(instance_prototype=prototype).get_result()
        )

    async def create_resource(
        self, kind: ResourceKind, spec: CreateResourceRequest
    ) -> NormalizedResource:
        if kind is not ResourceKind.INSTANCES:
            raise self._unsupported(kind, "create")
        try:
            raw = await self._run(self._create_instance_sync, spec)
        except Exception as e:
            raise self._translate("create_instance", e) from e
        resource = self._map_instance(raw)
        resource.status = "creating"
        return resource

    async def update_resource_state(
        self,
        kind: ResourceKind,
        resource_id: str,
        desired_state: str,
        locator: ResourceLocator,
    ) -> ResourceAck:
        if kind is not ResourceKind.INSTANCES:
            raise self._unsupported(kind, desired_state)
        action = {"start": "start", "stop": "stop", "restart": "reboot"}[desired_state]
        try:
            await self._run(
                self._vpc_client().create_instance_action,
                instance_id=resource_id,
                type=action,
            )
        except Exception as e:
            raise self._translate(f"{desired_state}_instance", e, resource_id) from e
        return ResourceAck(
            message=f"Instance {resource_id} {desired_state} requested",
            resource_id=resource_id,
            status="stopping" if desired_state == "stop" else "starting",
        )

    async def delete_resource(
        self, kind: ResourceKind, resource_id: str, locator: ResourceLocator
    ) -> ResourceAck:
        if kind is not ResourceKind.INSTANCES:
            raise self._unsupported(kind, "delete")
        try:
            await self._run(self._vpc_client().delete_instance, id=resource_id)
        except Exception as e:
            raise self._translate("delete_instance", e, resource_id) from e
        return ResourceAck(
            message=f"Instance {resource_id} deleted successfully",
            resource_id=resource_id,
        )
