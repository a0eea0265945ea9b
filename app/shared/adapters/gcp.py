import asyncio
import re
import time
import uuid
from typing import Any, Callable, Optional, TypeVar, cast

import structlog
from google.api_core.exceptions import NotFound
from google.auth.credentials import Credentials as GoogleCredentials
from google.cloud import compute_v1, monitoring_v3, storage
from google.oauth2 import service_account

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceLocator,
)
from app.shared.adapters.base import BaseResourceAdapter, synthesize_metrics
from app.shared.core.config import get_settings
from app.shared.core.credentials import GCPCredentials
from app.shared.core.exceptions import (
    ConfigurationError,
    NimbusException,
    ResourceNotFoundError,
    UpstreamProviderError,
)
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)

logger = structlog.get_logger()
T = TypeVar("T")

# Project ID format validation
PROJECT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9\-]{4,28}[a-z0-9]$")

# Used when the image family lookup fails
FALLBACK_SOURCE_IMAGE = "projects/debian-cloud/global/images/family/debian-11"
DEFAULT_NETWORK = "global/networks/default"
DEFAULT_DISK_SIZE_GB = 10


def validate_project_id(project_id: str) -> bool:
    """Validate GCP project ID format."""
    return bool(PROJECT_ID_PATTERN.match(project_id))


def _last_segment(url: Optional[str]) -> Optional[str]:
    return url.rsplit("/", 1)[-1] if url else None


def _zone_to_region(zone: Optional[str]) -> str:
    return zone.rsplit("-", 1)[0] if zone and zone.count("-") >= 2 else (zone or "")


class GCPAdapter(BaseResourceAdapter):
    """
    Google Cloud adapter over Compute Engine, Cloud Storage and Cloud Monitoring.

    The google-cloud clients are synchronous, so every call is pushed to a
    worker thread. Cloud SQL is not wired in; database operations are
    reported as unsupported.
    """

    provider = "gcp"

    STATUS_MAP = {
        "provisioning": "creating",
        "staging": "starting",
        "running": "running",
        "stopping": "stopping",
        "stopped": "stopped",
        "suspending": "stopping",
        "suspended": "stopped",
        "terminated": "stopped",
        "repairing": "maintenance",
    }

    def __init__(self, credentials: GCPCredentials):
        self.credentials = credentials
        project_id = credentials.project_id or ""
        if not validate_project_id(project_id):
            logger.error("gcp_invalid_project_id", project_id=project_id)
            raise ConfigurationError(
                f"Invalid GCP project ID format: '{project_id}'. "
                "Must be 6-30 lowercase letters, digits, or hyphens."
            )
        self.project_id = project_id
        self._google_credentials = self._get_credentials()
        self._instances: compute_v1.InstancesClient | None = None
        self._images: compute_v1.ImagesClient | None = None
        self._storage: storage.Client | None = None
        self._monitoring: monitoring_v3.MetricServiceClient | None = None

    def _get_credentials(self) -> GoogleCredentials | None:
        """Service account key file, or application default credentials."""
        if not self.credentials.key_file:
            return None
        try:
            return cast(
                GoogleCredentials,
                service_account.Credentials.from_service_account_file(  # type: ignore[no-untyped-call]
                    self.credentials.key_file
                ),
            )
        except (OSError, ValueError) as e:
            logger.error("gcp_credentials_load_error", error=str(e))
            raise ConfigurationError(f"Unreadable GCP key file: {e}") from e

    def _instances_client(self) -> compute_v1.InstancesClient:
        if self._instances is None:
            self._instances = compute_v1.InstancesClient(
                credentials=self._google_credentials
            )
        return self._instances

    def _images_client(self) -> compute_v1.ImagesClient:
        if self._images is None:
            self._images = compute_v1.ImagesClient(credentials=self._google_credentials)
        return self._images

    def _storage_client(self) -> storage.Client:
        if self._storage is None:
            self._storage = storage.Client(
                project=self.project_id, credentials=self._google_credentials
            )
        return self._storage

    def _monitoring_client(self) -> monitoring_v3.MetricServiceClient:
        if self._monitoring is None:
            self._monitoring = monitoring_v3.MetricServiceClient(
                credentials=self._google_credentials
            )
        return self._monitoring

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    def _translate(
        self, operation: str, exc: Exception, resource_id: str = ""
    ) -> NimbusException:
        if isinstance(exc, NotFound):
            return ResourceNotFoundError(
                f"Resource {resource_id} not found",
                details={"provider": self.provider, "id": resource_id},
            )
        return self._upstream_error(operation, exc)

    async def verify_connection(self) -> bool:
        try:
            await self._run(
                lambda: next(
                    iter(
                        self._instances_client().aggregated_list(
                            request=compute_v1.AggregatedListInstancesRequest(
                                project=self.project_id, max_results=1
                            )
                        )
                    ),
                    None,
                )
            )
            return True
        except Exception as e:
            self._set_last_error(str(e))
            logger.warning("gcp_verify_failed", error=str(e))
            return False

    # --- mapping ---

    def _map_instance(self, vm: Any) -> NormalizedResource:
        zone = _last_segment(vm.zone)
        sku = _last_segment(vm.machine_type)
        return NormalizedResource(
            id=vm.name,
            name=vm.name,
            type="instance",
            status=self.normalize_status(vm.status),
            region=_zone_to_region(zone),
            zone=zone,
            sku=sku,
            cost=format_monthly_cost(estimate_instance_cost(self.provider, sku)),
            created_at=vm.creation_timestamp or None,
            tags=dict(vm.labels or {}),
        )

    def _map_bucket(self, bucket: Any) -> NormalizedResource:
        created = getattr(bucket, "time_created", None)
        return NormalizedResource(
            id=bucket.name,
            name=bucket.name,
            type="storage",
            status="active",
            region=str(bucket.location or "").lower(),
            size=getattr(bucket, "storage_class", None),
            cost=format_monthly_cost(estimate_storage_cost(self.provider)),
            created_at=created.isoformat() if created else None,
        )

    # --- reads ---

    def _list_instances_sync(self) -> list[NormalizedResource]:
        request = compute_v1.AggregatedListInstancesRequest(project=self.project_id)
        items: list[NormalizedResource] = []
        for _zone, scoped in self._instances_client().aggregated_list(request=request):
            for vm in scoped.instances or []:
                items.append(self._map_instance(vm))
        return items

    def _list_buckets_sync(self) -> list[NormalizedResource]:
        return [self._map_bucket(b) for b in self._storage_client().list_buckets()]

    async def list_resources(self, kind: ResourceKind) -> list[NormalizedResource]:
        if kind is ResourceKind.DATABASES:
            raise self._unsupported(kind, "list")
        try:
            if kind is ResourceKind.INSTANCES:
                return await self._run(self._list_instances_sync)
            return await self._run(self._list_buckets_sync)
        except Exception as e:
            raise self._translate(f"list_{kind.value}", e) from e

    def _cpu_utilization_sync(self, instance_name: str) -> Optional[float]:
        now = int(time.time())
        interval = monitoring_v3.TimeInterval(
            {"end_time": {"seconds": now}, "start_time": {"seconds": now - 600}}
        )
        series = self._monitoring_client().list_time_series(
            request={
                "name": f"projects/{self.project_id}",
                "filter": (
                    'metric.type="compute.googleapis.com/instance/cpu/utilization" '
                    f'AND metric.labels.instance_name="{instance_name}"'
                ),
                "interval": interval,
                "view": monitoring_v3.ListTimeSeriesRequest.TimeSeriesView.FULL,
            }
        )
        for ts in series:
            if ts.points:
                return float(ts.points[0].value.double_value) * 100
        return None

    async def get_metrics(self, resource_id: str, locator: ResourceLocator) -> MetricSample:
        """Cloud Monitoring supplies CPU; the remaining values are synthesised."""
        try:
            cpu = await self._run(self._cpu_utilization_sync, resource_id)
        except Exception as e:
            raise self._translate("get_metrics", e, resource_id) from e
        measured = {"cpu": min(cpu, 100.0)} if cpu is not None else {}
        return synthesize_metrics(resource_id, measured, source="provider")

    # --- writes ---

    def _resolve_image_sync(self, spec: CreateResourceRequest) -> str:
        """Explicit image, then the configured image family, then a fixed family URL."""
        if spec.image:
            return spec.image
        try:
            image = self._images_client().get_from_family(
                project=self.credentials.image_project,
                family=self.credentials.image_family,
            )
            if image.self_link:
                return str(image.self_link)
        except Exception as e:
            logger.warning("gcp_default_image_lookup_failed", error=str(e))
        return FALLBACK_SOURCE_IMAGE

    def _create_instance_sync(
        self, spec: CreateResourceRequest, zone: str, name: str
    ) -> Any:
        machine_type = spec.instance_type or DEFAULT_INSTANCE_SKU[self.provider]
        source_image = self._resolve_image_sync(spec)
        instance = compute_v1.Instance(
            name=name,
            machine_type=f"zones/{zone}/machineTypes/{machine_type}",
            labels=dict(spec.tags),
            disks=[
                compute_v1.AttachedDisk(
                    boot=True,
                    auto_delete=True,
                    initialize_params=compute_v1.AttachedDiskInitializeParams(
                        source_image=source_image,
                        disk_size_gb=DEFAULT_DISK_SIZE_GB,
                    ),
                )
            ],
            network_interfaces=[
                compute_v1.NetworkInterface(
                    network=DEFAULT_NETWORK,
                    access_configs=[
                        compute_v1.AccessConfig(
                            name="External NAT", type_="ONE_TO_ONE_NAT"
                        )
                    ],
                )
            ],
        )
        client = self._instances_client()
        operation = client.insert(
            project=self.project_id, zone=zone, instance_resource=instance
        )
        try:
            operation.result(timeout=get_settings().PROVIDER_OPERATION_WAIT_SECONDS)
        except Exception as e:
            # The insert was accepted, so a half-built VM may exist.
            compensation = "deleted"
            try:
                client.delete(project=self.project_id, zone=zone, instance=name)
            except NotFound:
                compensation = "nothing_to_delete"
            except Exception as cleanup_exc:
                compensation = "failed"
                logger.error(
                    "gcp_compensating_delete_failed",
                    instance=name,
                    error=str(cleanup_exc),
                )
            raise UpstreamProviderError(
                "gcp create_instance failed",
                provider=self.provider,
                operation="create_instance",
                upstream=str(e) or type(e).__name__,
                details={"compensation": compensation, "id": name},
            ) from e
        return client.get(project=self.project_id, zone=zone, instance=name)

    async def create_resource(
        self, kind: ResourceKind, spec: CreateResourceRequest
    ) -> NormalizedResource:
        if kind is ResourceKind.DATABASES:
            raise self._unsupported(kind, "create")
        name = (spec.name or f"nimbus-{uuid.uuid4().hex[:8]}").lower()
        try:
            if kind is ResourceKind.STORAGE:
                location = spec.region or self.credentials.region
                bucket = await self._run(
                    self._storage_client().create_bucket, name, location=location
                )
                return self._map_bucket(bucket)
            zone = spec.zone or self.credentials.zone
            vm = await self._run(self._create_instance_sync, spec, zone, name)
        except Exception as e:
            raise self._translate(f"create_{kind.resource_type}", e) from e
        return self._map_instance(vm)

    async def update_resource_state(
        self,
        kind: ResourceKind,
        resource_id: str,
        desired_state: str,
        locator: ResourceLocator,
    ) -> ResourceAck:
        if kind is not ResourceKind.INSTANCES:
            raise self._unsupported(kind, desired_state)
        zone = locator.zone or self.credentials.zone
        try:
            client = self._instances_client()
            method = {
                "start": client.start,
                "stop": client.stop,
                "restart": client.reset,
            }[desired_state]
            await self._run(
                method, project=self.project_id, zone=zone, instance=resource_id
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
        try:
            if kind is ResourceKind.INSTANCES:
                await self._run(
                    self._instances_client().delete,
                    project=self.project_id,
                    zone=locator.zone or self.credentials.zone,
                    instance=resource_id,
                )
            elif kind is ResourceKind.STORAGE:
                await self._run(self._storage_client().bucket(resource_id).delete)
            else:
                raise self._unsupported(kind, "delete")
        except Exception as e:
            raise self._translate(f"delete_{kind.resource_type}", e, resource_id) from e
        return ResourceAck(
            message=f"{kind.resource_type.capitalize()} {resource_id} deleted successfully",
            resource_id=resource_id,
        )

    async def close(self) -> None:
        for client in (self._instances, self._images, self._monitoring):
            transport = getattr(client, "transport", None)
            if transport is not None:
                await self._run(transport.close)
        if self._storage is not None:
            await self._run(self._storage.close)
