"""
Resource inventory across cloud providers.

Reads degrade: a failed or unsupported live listing is replaced with demo
data and tagged as such. Writes never degrade: when a provider is
configured, a failed create/update/delete surfaces as an error and nothing
is recorded locally.
"""

from typing import Any, Optional

import structlog

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceListing,
    ResourceLocator,
    UpdateResourceRequest,
)
from app.shared.adapters.base import synthesize_metrics
from app.shared.adapters.demo import DemoResourceStore
from app.shared.adapters.factory import AdapterFactory
from app.shared.core.config import get_settings
from app.shared.core.exceptions import (
    NimbusException,
    ResourceNotFoundError,
    UnsupportedOperationError,
)
from app.shared.core.ops_metrics import record_fallback
from app.shared.core.provider import SUPPORTED_PROVIDERS, require_provider
from app.shared.core.retry import retry_read
from app.shared.core.timeout import call_with_timeout

logger = structlog.get_logger()

DEMO_NOTE = "Provider credentials are not configured; showing demo data."
FALLBACK_NOTE = "Live provider data was unavailable; showing fallback demo data."


class ResourceInventoryService:
    def __init__(
        self,
        factory: AdapterFactory,
        demo_store: DemoResourceStore,
        settings: Any = None,
    ):
        self.factory = factory
        self.demo_store = demo_store
        self.settings = settings or get_settings()

    # --- reads ---

    async def _list_kind(
        self, provider: str, kind: ResourceKind
    ) -> tuple[list[NormalizedResource], str]:
        if not self.factory.is_configured(provider):
            return await self.demo_store.list(provider, kind), "demo"

        operation = f"list_{kind.value}"
        try:
            adapter = self.factory.get_adapter(provider)
            resources = await retry_read(
                f"{provider}.{operation}",
                call_with_timeout,
                provider,
                operation,
                adapter.list_resources,
                kind,
            )
            return resources, "live"
        except NimbusException as e:
            reason = "unsupported" if isinstance(e, UnsupportedOperationError) else e.code.lower()
            record_fallback(provider, kind.value, reason)
            logger.warning(
                "provider_read_fallback",
                provider=provider,
                kind=kind.value,
                reason=reason,
                error=e.message,
                details=e.details,
            )
            return await self.demo_store.list(provider, kind), "fallback"
        except Exception as e:
            # Mapping bugs and SDK surprises degrade the same way as upstream errors.
            record_fallback(provider, kind.value, "upstream_error")
            logger.error(
                "provider_read_fallback",
                provider=provider,
                kind=kind.value,
                reason="upstream_error",
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
            )
            return await self.demo_store.list(provider, kind), "fallback"

    async def list_resources(
        self, provider: str, kind: Optional[ResourceKind] = None
    ) -> ResourceListing:
        provider = require_provider(provider)
        kinds = [kind] if kind else list(ResourceKind)

        resources: dict[str, list[NormalizedResource]] = {}
        sources: dict[str, Any] = {}
        for item in kinds:
            resources[item.value], sources[item.value] = await self._list_kind(
                provider, item
            )

        note: Optional[str] = None
        if "fallback" in sources.values():
            note = FALLBACK_NOTE
        elif "demo" in sources.values():
            note = DEMO_NOTE
        return ResourceListing(
            provider=provider,
            resources=resources,
            sources=sources,
            synthetic=note is not None,
            note=note,
        )

    async def get_resource(
        self, provider: str, kind: ResourceKind, resource_id: str
    ) -> tuple[NormalizedResource, str]:
        provider = require_provider(provider)
        resources, source = await self._list_kind(provider, kind)
        for resource in resources:
            if resource.id == resource_id:
                return resource, source
        raise ResourceNotFoundError(
            "Resource not found",
            details={"provider": provider, "type": kind.value, "id": resource_id},
        )

    async def get_metrics(
        self,
        provider: str,
        resource_id: str,
        locator: Optional[ResourceLocator] = None,
    ) -> MetricSample:
        """Live sample when possible; otherwise a fully synthetic one."""
        provider = require_provider(provider)
        locator = locator or ResourceLocator()
        if not self.factory.is_configured(provider):
            return synthesize_metrics(resource_id)
        try:
            adapter = self.factory.get_adapter(provider)
            return await retry_read(
                f"{provider}.get_metrics",
                call_with_timeout,
                provider,
                "get_metrics",
                adapter.get_metrics,
                resource_id,
                locator,
            )
        except NimbusException as e:
            record_fallback(provider, "metrics", e.code.lower())
            logger.warning(
                "provider_metrics_fallback",
                provider=provider,
                resource_id=resource_id,
                error=e.message,
            )
            return synthesize_metrics(resource_id)

    async def provider_health(self) -> dict[str, dict[str, Any]]:
        health: dict[str, dict[str, Any]] = {}
        for provider in SUPPORTED_PROVIDERS:
            if not self.factory.is_configured(provider):
                health[provider] = {"status": "not_configured"}
                continue
            try:
                adapter = self.factory.get_adapter(provider)
                connected = await call_with_timeout(
                    provider, "verify_connection", adapter.verify_connection
                )
            except NimbusException as e:
                health[provider] = {"status": "error", "error": e.message}
                continue
            if connected:
                health[provider] = {"status": "connected"}
            else:
                health[provider] = {
                    "status": "error",
                    "error": adapter.last_error or "connection check failed",
                }
        return health

    # --- writes ---

    async def create_resource(
        self,
        provider: str,
        kind: ResourceKind,
        spec: CreateResourceRequest,
        principal: Any,
    ) -> tuple[NormalizedResource, str]:
        provider = require_provider(provider)
        principal_id = str(getattr(principal, "id", "") or "") or None
        if not self.factory.is_configured(provider):
            resource = await self.demo_store.create(provider, kind, spec, principal_id)
            return resource, "demo"

        if spec.idempotency_key:
            # Keys are per principal; two users reusing a key get distinct launches.
            spec = spec.model_copy(
                update={"idempotency_key": f"{principal_id}:{spec.idempotency_key}"}
            )
        adapter = self.factory.get_adapter(provider)
        resource = await call_with_timeout(
            provider,
            f"create_{kind.resource_type}",
            adapter.create_resource,
            kind,
            spec,
            timeout=self.settings.PROVIDER_WRITE_TIMEOUT_SECONDS,
        )
        resource.created_by = principal_id
        logger.info(
            "provider_resource_created",
            provider=provider,
            kind=kind.value,
            resource_id=resource.id,
            user_id=principal_id,
        )
        return resource, "live"

    async def update_resource_state(
        self,
        provider: str,
        kind: ResourceKind,
        resource_id: str,
        update: UpdateResourceRequest,
        principal: Any,
        locator: Optional[ResourceLocator] = None,
    ) -> tuple[ResourceAck, Optional[NormalizedResource]]:
        provider = require_provider(provider)
        locator = locator or ResourceLocator()
        desired_state = update.desired_state()
        principal_id = str(getattr(principal, "id", "") or "") or None

        if not self.factory.is_configured(provider):
            resource = await self.demo_store.update(
                provider,
                kind,
                resource_id,
                desired_state=desired_state,
                name=update.name,
                updated_by=principal_id,
            )
            ack = ResourceAck(
                message="Resource updated successfully",
                resource_id=resource_id,
                status=resource.status,
            )
            return ack, resource

        if desired_state is None:
            raise UnsupportedOperationError(provider, kind.value, "rename")
        adapter = self.factory.get_adapter(provider)
        ack = await call_with_timeout(
            provider,
            f"{desired_state}_{kind.resource_type}",
            adapter.update_resource_state,
            kind,
            resource_id,
            desired_state,
            locator,
        )
        logger.info(
            "provider_resource_state_changed",
            provider=provider,
            kind=kind.value,
            resource_id=resource_id,
            desired_state=desired_state,
            user_id=principal_id,
        )
        return ack, None

    async def delete_resource(
        self,
        provider: str,
        kind: ResourceKind,
        resource_id: str,
        principal: Any,
        locator: Optional[ResourceLocator] = None,
    ) -> tuple[ResourceAck, Optional[NormalizedResource]]:
        provider = require_provider(provider)
        locator = locator or ResourceLocator()
        principal_id = str(getattr(principal, "id", "") or "") or None

        if not self.factory.is_configured(provider):
            resource = await self.demo_store.delete(provider, kind, resource_id)
            ack = ResourceAck(
                message="Resource deleted successfully", resource_id=resource_id
            )
            return ack, resource

        adapter = self.factory.get_adapter(provider)
        ack = await call_with_timeout(
            provider,
            f"delete_{kind.resource_type}",
            adapter.delete_resource,
            kind,
            resource_id,
            locator,
        )
        logger.info(
            "provider_resource_deleted",
            provider=provider,
            kind=kind.value,
            resource_id=resource_id,
            user_id=principal_id,
        )
        return ack, None
