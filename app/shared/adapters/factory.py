"""
Multi-Cloud Adapter Factory

Builds one long-lived adapter per configured provider and caches it, so SDK
sessions and credential objects are shared across requests.
"""

from typing import Any, Callable

import structlog

from app.shared.adapters.aws import AWSAdapter
from app.shared.adapters.azure import AzureAdapter
from app.shared.adapters.base import BaseResourceAdapter
from app.shared.adapters.gcp import GCPAdapter
from app.shared.adapters.ibm import IBMAdapter
from app.shared.core.credentials import CloudCredentials, credentials_from_settings
from app.shared.core.exceptions import ProviderNotConfiguredError
from app.shared.core.provider import require_provider

logger = structlog.get_logger()

_ADAPTER_CLASSES: dict[str, Callable[[Any], BaseResourceAdapter]] = {
    "aws": AWSAdapter,
    "gcp": GCPAdapter,
    "azure": AzureAdapter,
    "ibm": IBMAdapter,
}


class AdapterFactory:
    def __init__(self, settings: Any):
        self.settings = settings
        self._adapters: dict[str, BaseResourceAdapter] = {}

    def credentials_for(self, provider: str) -> CloudCredentials:
        return credentials_from_settings(require_provider(provider), self.settings)

    def is_configured(self, provider: str) -> bool:
        return self.credentials_for(provider).is_configured

    def get_adapter(self, provider: str) -> BaseResourceAdapter:
        """
        Returns the cached adapter for a provider, building it on first use.
        Raises NotFoundError for unknown providers and ProviderNotConfiguredError
        when the provider has no credentials.
        """
        key = require_provider(provider)
        cached = self._adapters.get(key)
        if cached is not None:
            return cached
        credentials = self.credentials_for(key)
        if not credentials.is_configured:
            raise ProviderNotConfiguredError(key)
        adapter = _ADAPTER_CLASSES[key](credentials)
        self._adapters[key] = adapter
        logger.info("provider_adapter_initialized", provider=key)
        return adapter

    async def close_all(self) -> None:
        adapters, self._adapters = self._adapters, {}
        for provider, adapter in adapters.items():
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(
                    "provider_adapter_close_failed", provider=provider, error=str(e)
                )
