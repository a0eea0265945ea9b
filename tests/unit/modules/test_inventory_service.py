"""
Read paths degrade to demo data; write paths against a configured provider
never do.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.modules.inventory.domain.service import (
    DEMO_NOTE,
    FALLBACK_NOTE,
    ResourceInventoryService,
)
from app.schemas.resources import (
    CreateResourceRequest,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    UpdateResourceRequest,
)
from app.shared.adapters.azure import AzureAdapter
from app.shared.adapters.demo import DemoResourceStore
from app.shared.core.auth import CurrentUser, UserRole
from app.shared.core.config import get_settings
from app.shared.core.credentials import AzureCredentials
from app.shared.core.exceptions import (
    NotFoundError,
    UnsupportedOperationError,
    UpstreamProviderError,
)


class _FakeFactory:
    """Only the providers given adapters count as configured."""

    def __init__(self, adapters):
        self.adapters = adapters

    def is_configured(self, provider):
        return provider in self.adapters

    def get_adapter(self, provider):
        return self.adapters[provider]


def _live_instance(resource_id="i-live"):
    return NormalizedResource(
        id=resource_id,
        name="live",
        type="instance",
        status="running",
        region="us-east-1",
        cost="$7.59/month",
    )


def _upstream(operation="list_instances"):
    return UpstreamProviderError(
        f"aws {operation} failed", provider="aws", operation=operation, upstream="boom"
    )


@pytest.fixture
def principal():
    return CurrentUser(id="user-1", role=UserRole.USER)


@pytest.fixture
def adapter():
    adapter = MagicMock()
    adapter.list_resources = AsyncMock(return_value=[_live_instance()])
    adapter.create_resource = AsyncMock(return_value=_live_instance("i-new"))
    adapter.update_resource_state = AsyncMock(
        return_value=ResourceAck(message="ok", resource_id="i-live", status="stopping")
    )
    adapter.delete_resource = AsyncMock(
        return_value=ResourceAck(message="deleted", resource_id="i-live")
    )
    adapter.get_metrics = AsyncMock()
    adapter.verify_connection = AsyncMock(return_value=True)
    adapter.last_error = None
    return adapter


@pytest.fixture
def store():
    return DemoResourceStore()


@pytest.fixture
def service(adapter, store):
    return ResourceInventoryService(_FakeFactory({"aws": adapter}), store, get_settings())


class TestReads:
    @pytest.mark.asyncio
    async def test_unconfigured_provider_serves_demo(self, service):
        listing = await service.list_resources("gcp")
        assert set(listing.resources) == {"instances", "databases", "storage"}
        assert set(listing.sources.values()) == {"demo"}
        assert listing.synthetic is True
        assert listing.note == DEMO_NOTE

    @pytest.mark.asyncio
    async def test_live_listing(self, service):
        listing = await service.list_resources("aws", ResourceKind.INSTANCES)
        assert listing.sources == {"instances": "live"}
        assert listing.resources["instances"][0].id == "i-live"
        assert listing.synthetic is False
        assert listing.note is None

    @pytest.mark.asyncio
    async def test_upstream_failure_retries_then_falls_back(self, service, adapter, store):
        adapter.list_resources.side_effect = _upstream()
        listing = await service.list_resources("aws", ResourceKind.INSTANCES)

        assert adapter.list_resources.await_count == get_settings().PROVIDER_READ_RETRY_ATTEMPTS
        assert listing.sources == {"instances": "fallback"}
        assert listing.note == FALLBACK_NOTE
        assert listing.resources["instances"] == await store.list("aws", ResourceKind.INSTANCES)

    @pytest.mark.asyncio
    async def test_unsupported_kind_falls_back_without_retry(self, service, adapter):
        adapter.list_resources.side_effect = UnsupportedOperationError("aws", "databases", "list")
        listing = await service.list_resources("aws", ResourceKind.DATABASES)

        adapter.list_resources.assert_awaited_once()
        assert listing.sources == {"databases": "fallback"}

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_falls_back(self, service, adapter, store):
        adapter.list_resources.side_effect = KeyError("id")
        listing = await service.list_resources("aws", ResourceKind.STORAGE)

        assert listing.sources == {"storage": "fallback"}
        assert listing.note == FALLBACK_NOTE
        assert listing.resources["storage"] == await store.list("aws", ResourceKind.STORAGE)

    @pytest.mark.asyncio
    async def test_partial_fallback_marks_listing(self, service, adapter):
        adapter.list_resources.side_effect = [
            [_live_instance()],
            UnsupportedOperationError("aws", "databases", "list"),
            [],
        ]
        listing = await service.list_resources("aws")
        assert listing.sources == {
            "instances": "live",
            "databases": "fallback",
            "storage": "live",
        }
        assert listing.note == FALLBACK_NOTE

    @pytest.mark.asyncio
    async def test_unknown_provider(self, service):
        with pytest.raises(NotFoundError):
            await service.list_resources("oracle")

    @pytest.mark.asyncio
    async def test_get_resource_by_id(self, service):
        resource, source = await service.get_resource("azure", ResourceKind.INSTANCES, "azure-vm-001")
        assert resource.name == "app-server"
        assert source == "demo"
        with pytest.raises(NotFoundError):
            await service.get_resource("azure", ResourceKind.INSTANCES, "nope")

    @pytest.mark.asyncio
    async def test_metrics_failure_is_fully_synthetic(self, service, adapter):
        adapter.get_metrics.side_effect = _upstream("get_metrics")
        sample = await service.get_metrics("aws", "i-live")
        assert sample.source == "synthetic"
        assert sample.synthetic_fields == ["cpu", "memory", "network", "disk"]

    @pytest.mark.asyncio
    async def test_provider_health(self, service, adapter):
        health = await service.provider_health()
        assert health["aws"] == {"status": "connected"}
        assert health["gcp"] == {"status": "not_configured"}

        adapter.verify_connection.return_value = False
        adapter.last_error = "ExpiredToken"
        health = await service.provider_health()
        assert health["aws"] == {"status": "error", "error": "ExpiredToken"}


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_on_live_provider(self, service, adapter, store, principal):
        before = await store.list("aws", ResourceKind.INSTANCES)
        resource, source = await service.create_resource(
            "aws", ResourceKind.INSTANCES, CreateResourceRequest(name="x"), principal
        )
        assert source == "live"
        assert resource.created_by == "user-1"
        assert await store.list("aws", ResourceKind.INSTANCES) == before

    @pytest.mark.asyncio
    async def test_failed_create_is_not_retried_or_recorded(self, service, adapter, store, principal):
        adapter.create_resource.side_effect = _upstream("create_instance")
        before = await store.list("aws", ResourceKind.INSTANCES)

        with pytest.raises(UpstreamProviderError):
            await service.create_resource(
                "aws", ResourceKind.INSTANCES, CreateResourceRequest(), principal
            )

        adapter.create_resource.assert_awaited_once()
        assert await store.list("aws", ResourceKind.INSTANCES) == before

    @pytest.mark.asyncio
    async def test_create_on_demo_provider(self, service, store, principal):
        resource, source = await service.create_resource(
            "ibm", ResourceKind.INSTANCES, CreateResourceRequest(name="vsi"), principal
        )
        assert source == "demo"
        assert resource.status == "creating"
        assert (await store.get("ibm", ResourceKind.INSTANCES, resource.id)).name == "vsi"

    @pytest.mark.asyncio
    async def test_failed_update_propagates(self, service, adapter, principal):
        adapter.update_resource_state.side_effect = _upstream("stop_instance")
        with pytest.raises(UpstreamProviderError):
            await service.update_resource_state(
                "aws", ResourceKind.INSTANCES, "i-live", UpdateResourceRequest(action="stop"), principal
            )
        adapter.update_resource_state.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_status_maps_to_action(self, service, adapter, principal):
        ack, resource = await service.update_resource_state(
            "aws", ResourceKind.INSTANCES, "i-live", UpdateResourceRequest(status="stopped"), principal
        )
        assert adapter.update_resource_state.await_args.args[2] == "stop"
        assert ack.status == "stopping"
        assert resource is None

    @pytest.mark.asyncio
    async def test_rename_on_live_provider_is_unsupported(self, service, principal):
        with pytest.raises(UnsupportedOperationError):
            await service.update_resource_state(
                "aws", ResourceKind.INSTANCES, "i-live", UpdateResourceRequest(name="new"), principal
            )

    @pytest.mark.asyncio
    async def test_demo_update_and_delete(self, service, store, principal):
        ack, resource = await service.update_resource_state(
            "gcp", ResourceKind.INSTANCES, "gcp-inst-002", UpdateResourceRequest(action="start"), principal
        )
        assert resource.status == "running"
        assert ack.status == "running"

        ack, removed = await service.delete_resource(
            "gcp", ResourceKind.INSTANCES, "gcp-inst-002", principal
        )
        assert removed.id == "gcp-inst-002"
        with pytest.raises(NotFoundError):
            await store.get("gcp", ResourceKind.INSTANCES, "gcp-inst-002")

    @pytest.mark.asyncio
    async def test_failed_delete_propagates(self, service, adapter, principal):
        adapter.delete_resource.side_effect = _upstream("delete_instance")
        with pytest.raises(UpstreamProviderError):
            await service.delete_resource("aws", ResourceKind.INSTANCES, "i-live", principal)

    @pytest.mark.asyncio
    async def test_idempotency_key_is_scoped_to_principal(self, service, adapter, principal):
        await service.create_resource(
            "aws",
            ResourceKind.INSTANCES,
            CreateResourceRequest(name="x", idempotency_key="launch-1"),
            principal,
        )
        sent = adapter.create_resource.await_args.args[1]
        assert sent.idempotency_key == "user-1:launch-1"


class TestSlowCreates:
    @pytest.fixture
    def short_deadlines(self, monkeypatch):
        monkeypatch.setenv("PROVIDER_CALL_TIMEOUT_SECONDS", "0.01")
        monkeypatch.setenv("PROVIDER_OPERATION_WAIT_SECONDS", "0.05")
        monkeypatch.setenv("PROVIDER_WRITE_TIMEOUT_SECONDS", "1")
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_create_is_bounded_by_write_deadline(self, short_deadlines, adapter, store, principal):
        async def _slow_create(kind, spec):
            await asyncio.sleep(0.05)
            return _live_instance("i-slow")

        adapter.create_resource = AsyncMock(side_effect=_slow_create)
        service = ResourceInventoryService(_FakeFactory({"aws": adapter}), store, get_settings())

        resource, source = await service.create_resource(
            "aws", ResourceKind.INSTANCES, CreateResourceRequest(name="x"), principal
        )
        assert source == "live"
        assert resource.id == "i-slow"

    @pytest.mark.asyncio
    async def test_slow_vm_provisioning_is_rolled_back(self, short_deadlines, store, principal):
        async def _never_finishes():
            await asyncio.sleep(5)

        azure = AzureAdapter(
            AzureCredentials(
                tenant_id="tenant",
                client_id="client",
                client_secret="secret",
                subscription_id="sub",
                subnet_id="/subscriptions/sub/resourceGroups/nimbus-resources/subnets/default",
            )
        )
        azure._compute = MagicMock()
        azure._network = MagicMock()
        nic_poller = MagicMock(result=AsyncMock(return_value=SimpleNamespace(id="/nic/web-1-nic")))
        vm_poller = MagicMock(result=_never_finishes)
        done_poller = MagicMock(result=AsyncMock(return_value=None))
        azure._network.network_interfaces.begin_create_or_update = AsyncMock(return_value=nic_poller)
        azure._network.network_interfaces.begin_delete = AsyncMock(return_value=done_poller)
        azure._compute.virtual_machines.begin_create_or_update = AsyncMock(return_value=vm_poller)
        azure._compute.virtual_machines.begin_delete = AsyncMock(return_value=done_poller)
        service = ResourceInventoryService(_FakeFactory({"azure": azure}), store, get_settings())

        with pytest.raises(UpstreamProviderError) as exc:
            await service.create_resource(
                "azure",
                ResourceKind.INSTANCES,
                CreateResourceRequest(name="web-1", image="Canonical:ubuntu:22_04-lts:latest"),
                principal,
            )

        assert exc.value.details["compensation"] == "deleted"
        azure._compute.virtual_machines.begin_delete.assert_awaited_once()
        azure._network.network_interfaces.begin_delete.assert_awaited_once_with(
            "nimbus-resources", "web-1-nic"
        )
