import asyncio
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError
from azure.identity.aio import ClientSecretCredential
from azure.mgmt.compute.aio import ComputeManagementClient
from azure.mgmt.compute.models import (
    HardwareProfile,
    ImageReference,
    LinuxConfiguration,
    NetworkInterfaceReference,
    NetworkProfile,
    OSDisk,
    OSProfile,
    SshConfiguration,
    SshPublicKey,
    StorageProfile,
    VirtualMachine,
)
from azure.mgmt.monitor.aio import MonitorManagementClient
from azure.mgmt.network.aio import NetworkManagementClient
from azure.mgmt.network.models import (
    NetworkInterface,
    NetworkInterfaceIPConfiguration,
    Subnet,
)
from azure.mgmt.storage.aio import StorageManagementClient
from azure.mgmt.storage.models import Sku, StorageAccountCreateParameters

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceLocator,
)
from app.shared.adapters.base import BaseResourceAdapter, isoformat, synthesize_metrics
from app.shared.core.config import get_settings
from app.shared.core.credentials import AzureCredentials
from app.shared.core.exceptions import (
    ConfigurationError,
    NimbusException,
    ResourceNotFoundError,
    UpstreamProviderError,
    ValidationError,
)
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)

logger = structlog.get_logger()

DEFAULT_IMAGE = ("Canonical", "0001-com-ubuntu-server-jammy", "22_04-lts-gen2")
# Used when the image version lookup fails
FALLBACK_IMAGE_URN = "Canonical:0001-com-ubuntu-server-jammy:22_04-lts-gen2:latest"


def resource_group_from_id(resource_id: Optional[str]) -> Optional[str]:
    """Extract the resource group segment from an ARM id."""
    if not resource_id:
        return None
    parts = resource_id.split("/")
    for index, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[index + 1]
    return None


def parse_image_urn(urn: str) -> ImageReference:
    parts = urn.split(":")
    if len(parts) != 4 or not all(parts):
        raise ValidationError(
            "Azure image must be a URN publisher:offer:sku:version",
            details={"image": urn},
        )
    publisher, offer, sku, version = parts
    return ImageReference(publisher=publisher, offer=offer, sku=sku, version=version)


class AzureAdapter(BaseResourceAdapter):
    """
    Azure adapter over the async management SDKs (compute, network, storage,
    monitor). Azure SQL is not wired in; database operations are unsupported.
    """

    provider = "azure"

    STATUS_MAP = {
        "powerstate/running": "running",
        "powerstate/starting": "starting",
        "powerstate/stopping": "stopping",
        "powerstate/stopped": "stopped",
        "powerstate/deallocating": "stopping",
        "powerstate/deallocated": "stopped",
        "creating": "creating",
        "updating": "maintenance",
        "deleting": "stopping",
        "failed": "error",
    }
    KIND_STATUS_MAPS = {
        ResourceKind.STORAGE: {
            "succeeded": "available",
            "creating": "creating",
            "resolvingdns": "creating",
        },
    }

    def __init__(self, credentials: AzureCredentials):
        self.credentials = credentials
        self._credential: ClientSecretCredential | None = None
        self._compute: ComputeManagementClient | None = None
        self._network: NetworkManagementClient | None = None
        self._storage: StorageManagementClient | None = None
        self._monitor: MonitorManagementClient | None = None

    def _get_credentials(self) -> ClientSecretCredential:
        if not self._credential:
            if not self.credentials.client_secret:
                raise ConfigurationError(
                    "Azure client_secret is required for client secret auth"
                )
            self._credential = ClientSecretCredential(
                tenant_id=str(self.credentials.tenant_id),
                client_id=str(self.credentials.client_id),
                client_secret=self.credentials.client_secret.get_secret_value(),
            )
        return self._credential

    @property
    def subscription_id(self) -> str:
        return str(self.credentials.subscription_id)

    def _compute_client(self) -> ComputeManagementClient:
        if not self._compute:
            self._compute = ComputeManagementClient(
                credential=self._get_credentials(), subscription_id=self.subscription_id
            )
        return self._compute

    def _network_client(self) -> NetworkManagementClient:
        if not self._network:
            self._network = NetworkManagementClient(
                credential=self._get_credentials(), subscription_id=self.subscription_id
            )
        return self._network

    def _storage_client(self) -> StorageManagementClient:
        if not self._storage:
            self._storage = StorageManagementClient(
                credential=self._get_credentials(), subscription_id=self.subscription_id
            )
        return self._storage

    def _monitor_client(self) -> MonitorManagementClient:
        if not self._monitor:
            self._monitor = MonitorManagementClient(
                credential=self._get_credentials(), subscription_id=self.subscription_id
            )
        return self._monitor

    def _translate(
        self, operation: str, exc: Exception, resource_id: str = ""
    ) -> NimbusException:
        if isinstance(exc, AzureResourceNotFoundError):
            return ResourceNotFoundError(
                f"Resource {resource_id} not found",
                details={"provider": self.provider, "id": resource_id},
            )
        return self._upstream_error(operation, exc)

    async def verify_connection(self) -> bool:
        try:
            async for _ in self._compute_client().virtual_machines.list_all():
                break
            return True
        except Exception as e:
            self._set_last_error(str(e))
            logger.warning(
                "azure_verify_failed",
                error=str(e),
                tenant_id=str(self.credentials.tenant_id),
            )
            return False

    # --- mapping ---

    @staticmethod
    def _power_state(vm: Any) -> Optional[str]:
        view = getattr(vm, "instance_view", None)
        for status in getattr(view, "statuses", None) or []:
            code = getattr(status, "code", "") or ""
            if code.startswith("PowerState/"):
                return code
        return getattr(vm, "provisioning_state", None)

    def _map_vm(self, vm: Any) -> NormalizedResource:
        sku = vm.hardware_profile.vm_size if vm.hardware_profile else None
        return NormalizedResource(
            id=vm.name,
            name=vm.name,
            type="instance",
            status=self.normalize_status(self._power_state(vm)),
            region=vm.location,
            sku=sku,
            resource_group=resource_group_from_id(vm.id),
            cost=format_monthly_cost(estimate_instance_cost(self.provider, sku)),
            created_at=isoformat(getattr(vm, "time_created", None)),
            tags=dict(vm.tags or {}),
        )

    def _map_storage_account(self, account: Any) -> NormalizedResource:
        return NormalizedResource(
            id=account.name,
            name=account.name,
            type="storage",
            status=self.normalize_status(
                str(account.provisioning_state or ""), ResourceKind.STORAGE
            ),
            region=account.location,
            size=account.sku.name if account.sku else None,
            resource_group=resource_group_from_id(account.id),
            cost=format_monthly_cost(estimate_storage_cost(self.provider)),
            created_at=isoformat(account.creation_time),
            tags=dict(account.tags or {}),
        )

    # --- reads ---

    async def list_resources(self, kind: ResourceKind) -> list[NormalizedResource]:
        if kind is ResourceKind.DATABASES:
            raise self._unsupported(kind, "list")
        try:
            if kind is ResourceKind.INSTANCES:
                return [
                    self._map_vm(vm)
                    async for vm in self._compute_client().virtual_machines.list_all(
                        status_only="true"
                    )
                ]
            return [
                self._map_storage_account(account)
                async for account in self._storage_client().storage_accounts.list()
            ]
        except Exception as e:
            raise self._translate(f"list_{kind.value}", e) from e

    async def get_metrics(self, resource_id: str, locator: ResourceLocator) -> MetricSample:
        """Azure Monitor supplies CPU; the remaining values are synthesised."""
        resource_group = locator.resource_group or self.credentials.resource_group
        uri = (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{resource_group}"
            f"/providers/Microsoft.Compute/virtualMachines/{resource_id}"
        )
        end = datetime.now(timezone.utc)
        start = end - timedelta(minutes=15)
        try:
            response = await self._monitor_client().metrics.list(
                uri,
                timespan=f"{start.isoformat()}/{end.isoformat()}",
                interval=timedelta(minutes=5),
                metricnames="Percentage CPU",
                aggregation="Average",
            )
        except Exception as e:
            raise self._translate("get_metrics", e, resource_id) from e

        cpu: Optional[float] = None
        for metric in response.value or []:
            for series in metric.timeseries or []:
                for point in series.data or []:
                    if point.average is not None:
                        cpu = point.average
        measured = {"cpu": cpu} if cpu is not None else {}
        return synthesize_metrics(resource_id, measured, source="provider")

    # --- writes ---

    async def _resolve_image(self, spec: CreateResourceRequest, location: str) -> ImageReference:
        """Explicit URN, then the newest default image version, then a fixed URN."""
        if spec.image:
            return parse_image_urn(spec.image)
        publisher, offer, sku = DEFAULT_IMAGE
        try:
            versions = await self._compute_client().virtual_machine_images.list(
                location, publisher, offer, sku, top=1, orderby="name desc"
            )
            if versions:
                return ImageReference(
                    publisher=publisher, offer=offer, sku=sku, version=versions[0].name
                )
        except Exception as e:
            logger.warning("azure_default_image_lookup_failed", error=str(e))
        return parse_image_urn(FALLBACK_IMAGE_URN)

    async def _resolve_subnet_id(self) -> str:
        if self.credentials.subnet_id:
            return self.credentials.subnet_id
        try:
            async for vnet in self._network_client().virtual_networks.list(
                self.credentials.resource_group
            ):
                for subnet in vnet.subnets or []:
                    if subnet.id:
                        return str(subnet.id)
        except Exception as e:
            raise self._translate("lookup_subnet", e) from e
        raise ValidationError(
            "No subnet available for new virtual machines",
            details={"resourceGroup": self.credentials.resource_group},
        )

    def _os_profile(self, name: str) -> OSProfile:
        username = self.credentials.admin_username
        if self.credentials.ssh_public_key:
            return OSProfile(
                computer_name=name,
                admin_username=username,
                linux_configuration=LinuxConfiguration(
                    disable_password_authentication=True,
                    ssh=SshConfiguration(
                        public_keys=[
                            SshPublicKey(
                                path=f"/home/{username}/.ssh/authorized_keys",
                                key_data=self.credentials.ssh_public_key,
                            )
                        ]
                    ),
                ),
            )
        # Without a key the VM gets a random password nobody ever sees.
        return OSProfile(
            computer_name=name,
            admin_username=username,
            admin_password=f"{secrets.token_urlsafe(24)}aA1!",
        )

    async def _rollback_vm_create(
        self, resource_group: str, name: str, nic_name: str, vm_started: bool
    ) -> str:
        """Remove what a failed VM create left behind; returns the compensation outcome."""
        compensation = "deleted"
        if vm_started:
            try:
                vm_delete = await self._compute_client().virtual_machines.begin_delete(
                    resource_group, name
                )
                await vm_delete.result()
            except AzureResourceNotFoundError:
                pass
            except Exception as cleanup_exc:
                compensation = "failed"
                logger.error(
                    "azure_compensating_vm_delete_failed",
                    vm=name,
                    error=str(cleanup_exc),
                )
        try:
            nic_delete = await self._network_client().network_interfaces.begin_delete(
                resource_group, nic_name
            )
            await nic_delete.result()
        except Exception as cleanup_exc:
            compensation = "failed"
            logger.error(
                "azure_compensating_nic_delete_failed",
                nic=nic_name,
                error=str(cleanup_exc),
            )
        return compensation

    async def _create_vm(self, spec: CreateResourceRequest) -> NormalizedResource:
        location = spec.region or self.credentials.location
        resource_group = self.credentials.resource_group
        name = (spec.name or f"nimbus-{uuid.uuid4().hex[:8]}").lower()
        image = await self._resolve_image(spec, location)
        subnet_id = await self._resolve_subnet_id()

        nic_name = f"{name}-nic"
        network = self._network_client()
        nic_poller = await network.network_interfaces.begin_create_or_update(
            resource_group,
            nic_name,
            NetworkInterface(
                location=location,
                ip_configurations=[
                    NetworkInterfaceIPConfiguration(
                        name=f"{name}-ipconfig", subnet=Subnet(id=subnet_id)
                    )
                ],
            ),
        )
        nic = await nic_poller.result()

        vm_size = spec.instance_type or DEFAULT_INSTANCE_SKU[self.provider]
        vm_started = False
        try:
            vm_poller = await self._compute_client().virtual_machines.begin_create_or_update(
                resource_group,
                name,
                VirtualMachine(
                    location=location,
                    tags=dict(spec.tags),
                    hardware_profile=HardwareProfile(vm_size=vm_size),
                    storage_profile=StorageProfile(
                        image_reference=image,
                        os_disk=OSDisk(create_option="FromImage", delete_option="Delete"),
                    ),
                    os_profile=self._os_profile(name),
                    network_profile=NetworkProfile(
                        network_interfaces=[
                            NetworkInterfaceReference(id=nic.id, primary=True)
                        ]
                    ),
                ),
            )
            vm_started = True
            vm = await asyncio.wait_for(
                vm_poller.result(),
                timeout=get_settings().PROVIDER_OPERATION_WAIT_SECONDS,
            )
        except asyncio.CancelledError:
            # An outer deadline fired; finish the rollback before giving up the task.
            compensation = await asyncio.shield(
                self._rollback_vm_create(resource_group, name, nic_name, vm_started)
            )
            logger.warning(
                "azure_create_cancelled",
                vm=name,
                compensation=compensation,
            )
            raise
        except Exception as e:
            compensation = await self._rollback_vm_create(
                resource_group, name, nic_name, vm_started
            )
            if isinstance(e, asyncio.TimeoutError):
                upstream = (
                    "provisioning did not finish within "
                    f"{get_settings().PROVIDER_OPERATION_WAIT_SECONDS} seconds"
                )
            else:
                upstream = str(e) or type(e).__name__
            raise UpstreamProviderError(
                "azure create_instance failed",
                provider=self.provider,
                operation="create_instance",
                upstream=upstream,
                details={"compensation": compensation, "id": name},
            ) from e
        return self._map_vm(vm)

    async def _create_storage_account(
        self, spec: CreateResourceRequest
    ) -> NormalizedResource:
        # Storage account names: 3-24 lowercase letters and digits
        raw = spec.name or f"nimbus{uuid.uuid4().hex[:8]}"
        name = "".join(ch for ch in raw.lower() if ch.isalnum())[:24]
        poller = await self._storage_client().storage_accounts.begin_create(
            self.credentials.resource_group,
            name,
            StorageAccountCreateParameters(
                sku=Sku(name=spec.storage_class or "Standard_LRS"),
                kind="StorageV2",
                location=spec.region or self.credentials.location,
                tags=dict(spec.tags),
            ),
        )
        return self._map_storage_account(await poller.result())

    async def create_resource(
        self, kind: ResourceKind, spec: CreateResourceRequest
    ) -> NormalizedResource:
        if kind is ResourceKind.DATABASES:
            raise self._unsupported(kind, "create")
        try:
            if kind is ResourceKind.INSTANCES:
                return await self._create_vm(spec)
            return await self._create_storage_account(spec)
        except Exception as e:
            raise self._translate(f"create_{kind.resource_type}", e) from e

    async def update_resource_state(
        self,
        kind: ResourceKind,
        resource_id: str,
        desired_state: str,
        locator: ResourceLocator,
    ) -> ResourceAck:
        if kind is not ResourceKind.INSTANCES:
            raise self._unsupported(kind, desired_state)
        resource_group = locator.resource_group or self.credentials.resource_group
        try:
            vms = self._compute_client().virtual_machines
            begin = {
                "start": vms.begin_start,
                "stop": vms.begin_deallocate,
                "restart": vms.begin_restart,
            }[desired_state]
            # Long-running operation accepted; completion is observed by later reads.
            await begin(resource_group, resource_id)
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
        resource_group = locator.resource_group or self.credentials.resource_group
        try:
            if kind is ResourceKind.INSTANCES:
                await self._compute_client().virtual_machines.begin_delete(
                    resource_group, resource_id
                )
            elif kind is ResourceKind.STORAGE:
                await self._storage_client().storage_accounts.delete(
                    resource_group, resource_id
                )
            else:
                raise self._unsupported(kind, "delete")
        except Exception as e:
            raise self._translate(f"delete_{kind.resource_type}", e, resource_id) from e
        return ResourceAck(
            message=f"{kind.resource_type.capitalize()} {resource_id} deleted successfully",
            resource_id=resource_id,
        )

    async def close(self) -> None:
        for client in (self._compute, self._network, self._storage, self._monitor):
            if client is not None:
                await client.close()
        if self._credential is not None:
            await self._credential.close()
