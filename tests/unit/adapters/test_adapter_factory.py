from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.shared.adapters.aws import AWSAdapter
from app.shared.adapters.factory import AdapterFactory
from app.shared.core.config import get_settings
from app.shared.core.exceptions import NotFoundError, ProviderNotConfiguredError


@pytest.fixture
def aws_settings():
    return get_settings().model_copy(
        update={"AWS_ACCESS_KEY_ID": "AKIATEST", "AWS_SECRET_ACCESS_KEY": "secret"}
    )


def test_unconfigured_provider_raises(aws_settings):
    factory = AdapterFactory(aws_settings)
    assert factory.is_configured("gcp") is False
    with pytest.raises(ProviderNotConfiguredError) as exc:
        factory.get_adapter("gcp")
    assert exc.value.status_code == 503


def test_unknown_provider_is_not_found(aws_settings):
    with pytest.raises(NotFoundError):
        AdapterFactory(aws_settings).get_adapter("oracle")


def test_adapter_is_built_once_and_cached(aws_settings):
    factory = AdapterFactory(aws_settings)
    first = factory.get_adapter("AWS")
    assert isinstance(first, AWSAdapter)
    assert factory.get_adapter("aws") is first


@pytest.mark.asyncio
async def test_close_all_survives_failing_adapter(aws_settings):
    factory = AdapterFactory(aws_settings)
    failing = SimpleNamespace(close=AsyncMock(side_effect=RuntimeError("socket")))
    healthy = SimpleNamespace(close=AsyncMock())
    factory._adapters = {"aws": failing, "gcp": healthy}

    await factory.close_all()

    healthy.close.assert_awaited_once()
    assert factory._adapters == {}
