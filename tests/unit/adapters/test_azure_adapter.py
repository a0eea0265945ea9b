import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schemas.resources import CreateResourceRequest, ResourceKind, ResourceLocator
from app.shared.adapters.azure import (
    AzureAdapter,
    parse_image_urn,
    resource_group_from_id,
)
from app.shared.core.config import get_settings
from app.shared.core.credentials import AzureCredentials
from app.shared.core.exceptions import (
    UnsupportedOperationError,
    UpstreamProviderError,
    ValidationError,
)

SUBNET_ID = (
    "/subscriptions/sub/resourceGroups/nimbus-resources/providers/"
    "Microsoft.Network/virtualNetworks/vnet/subnets/default"
)


def _poller(result):
    poller = MagicMock()
    poller.result = AsyncMock(return_value=result)
    return poller


def _slow_poller(delay):
    async def _result():
        await asyncio.sleep(delay)

    poller = MagicMock()
    poller.result = _result
    return poller


def _async_iter(items):
    async def _gen(*_args, **_kwargs):
        for item in items:
            yield item

    return _gen


@pytest.fixture
def credentials():
    return AzureCredentials(
        tenant_id="tenant",
        client_id="client",
        client_secret="secret",
        subscription_id="sub",
        subnet_id=SUBNET_ID,
    )


@pytest.fixture
def adapter(credentials):
    adapter = AzureAdapter(credentials)
    adapter._compute = MagicMock()
    adapter._network = MagicMock()
    adapter._network.network_interfaces.begin_create_or_update = AsyncMock(
        return_value=_poller(SimpleNamespace(id="/nic/web-1-nic"))
    )
    adapter._network.network_interfaces.begin_delete = AsyncMock(
        return_value=_poller(None)
    )
    adapter._compute.virtual_machines.begin_delete = AsyncMock(
        return_value=_poller(None)
    )
    return adapter


@pytest.fixture
def short_operation_wait(monkeypatch):
    monkeypatch.setenv("PROVIDER_OPERATION_WAIT_SECONDS", "0.05")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_resource_group_from_arm_id():
    assert resource_group_from_id(SUBNET_ID) == "nimbus-resources"
    assert resource_group_from_id("/subscriptions/sub") is None
    assert resource_group_from_id(None) is None


def test_parse_image_urn():
    image = parse_image_urn("Canonical:ubuntu:22_04-lts:latest")
    assert (image.publisher, image.offer, image.sku, image.version) == (
        "Canonical",
        "ubuntu",
        "22_04-lts",
        "latest",
    )
    with pytest.raises(ValidationError):
        parse_image_urn("ubuntu-latest")


@pytest.mark.asyncio
async def test_list_vms_reads_power_state(adapter):
    vm = SimpleNamespace(
        name="app-server",
        id="/subscriptions/sub/resourceGroups/rg-web/providers/Microsoft.Compute/virtualMachines/app-server",
        location="eastus",
        hardware_profile=SimpleNamespace(vm_size="Standard_B2s"),
        instance_view=SimpleNamespace(
            statuses=[
                SimpleNamespace(code="ProvisioningState/succeeded"),
                SimpleNamespace(code="PowerState/deallocated"),
            ]
        ),
        provisioning_state="Succeeded",
        tags=None,
    )
    adapter._compute.virtual_machines.list_all = _async_iter([vm])

    resources = await adapter.list_resources(ResourceKind.INSTANCES)

    assert resources[0].status == "stopped"
    assert resources[0].resource_group == "rg-web"
    assert resources[0].cost == "$30.37/month"


@pytest.mark.asyncio
async def test_failed_vm_create_deletes_nic(adapter):
    adapter._compute.virtual_machines.begin_create_or_update = AsyncMock(
        side_effect=RuntimeError("SkuNotAvailable")
    )

    with pytest.raises(UpstreamProviderError) as exc:
        await adapter.create_resource(
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
        )

    adapter._network.network_interfaces.begin_delete.assert_awaited_once_with(
        "nimbus-resources", "web-1-nic"
    )
    assert exc.value.details["compensation"] == "deleted"
    assert exc.value.details["id"] == "web-1"


@pytest.mark.asyncio
async def test_failed_nic_cleanup_is_reported(adapter):
    adapter._compute.virtual_machines.begin_create_or_update = AsyncMock(
        side_effect=RuntimeError("SkuNotAvailable")
    )
    adapter._network.network_interfaces.begin_delete = AsyncMock(
        side_effect=RuntimeError("locked")
    )

    with pytest.raises(UpstreamProviderError) as exc:
        await adapter.create_resource(
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
        )
    assert exc.value.details["compensation"] == "failed"


@pytest.mark.asyncio
async def test_no_subnet_is_validation_error(credentials):
    credentials.subnet_id = None
    adapter = AzureAdapter(credentials)
    adapter._compute = MagicMock()
    adapter._network = MagicMock()
    adapter._network.virtual_networks.list = _async_iter(
        [SimpleNamespace(subnets=[])]
    )

    with pytest.raises(ValidationError):
        await adapter.create_resource(
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
        )
    adapter._network.network_interfaces.begin_create_or_update.assert_not_called()


@pytest.mark.asyncio
async def test_stop_deallocates(adapter):
    adapter._compute.virtual_machines.begin_deallocate = AsyncMock()
    ack = await adapter.update_resource_state(
        ResourceKind.INSTANCES, "app-server", "stop", ResourceLocator(resource_group="rg-web")
    )
    adapter._compute.virtual_machines.begin_deallocate.assert_awaited_once_with(
        "rg-web", "app-server"
    )
    assert ack.status == "stopping"


@pytest.mark.asyncio
async def test_database_operations_are_unsupported(adapter):
    with pytest.raises(UnsupportedOperationError):
        await adapter.list_resources(ResourceKind.DATABASES)
    with pytest.raises(UnsupportedOperationError):
        await adapter.update_resource_state(
            ResourceKind.DATABASES, "sql-1", "start", ResourceLocator()
        )


@pytest.mark.asyncio
async def test_vm_provisioning_past_wait_rolls_back(adapter, short_operation_wait):
    adapter._compute.virtual_machines.begin_create_or_update = AsyncMock(
        return_value=_slow_poller(5)
    )

    with pytest.raises(UpstreamProviderError) as exc:
        await adapter.create_resource(
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
        )

    adapter._compute.virtual_machines.begin_delete.assert_awaited_once_with(
        "nimbus-resources", "web-1"
    )
    adapter._network.network_interfaces.begin_delete.assert_awaited_once_with(
        "nimbus-resources", "web-1-nic"
    )
    assert exc.value.details["compensation"] == "deleted"
    assert "0.05 seconds" in exc.value.details["upstream"]


@pytest.mark.asyncio
async def test_cancelled_create_still_rolls_back(adapter):
    adapter._compute.virtual_machines.begin_create_or_update = AsyncMock(
        return_value=_slow_poller(5)
    )

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(
            adapter.create_resource(
                ResourceKind.INSTANCES,
                CreateResourceRequest(
                    name="web-1", image="Canonical:ubuntu:22_04-lts:latest"
                ),
            ),
            timeout=0.05,
        )

    adapter._compute.virtual_machines.begin_delete.assert_awaited_once_with(
        "nimbus-resources", "web-1"
    )
    adapter._network.network_interfaces.begin_delete.assert_awaited_once_with(
        "nimbus-resources", "web-1-nic"
    )


@pytest.mark.asyncio
async def test_vm_that_never_started_is_not_deleted(adapter):
    adapter._compute.virtual_machines.begin_create_or_update = AsyncMock(
        side_effect=RuntimeError("QuotaExceeded")
    )

    with pytest.raises(UpstreamProviderError):
        await adapter.create_resource(
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
        )
    adapter._compute.virtual_machines.begin_delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_client_construction_failure_on_update_is_upstream_error(credentials):
    adapter = AzureAdapter(credentials)
    adapter._compute_client = MagicMock(side_effect=RuntimeError("credential expired"))

    with pytest.raises(UpstreamProviderError) as exc:
        await adapter.update_resource_state(
            ResourceKind.INSTANCES, "web-1", "stop", ResourceLocator()
        )
    assert exc.value.status_code == 500
    assert exc.value.details["operation"] == "stop_instance"
    assert "credential expired" in exc.value.details["upstream"]
