from unittest.mock import AsyncMock

import pytest

from app.shared.core.config import get_settings
from app.shared.core.exceptions import UpstreamProviderError, ValidationError
from app.shared.core.retry import retry_read


def _upstream() -> UpstreamProviderError:
    return UpstreamProviderError(
        "aws list_instances failed", provider="aws", operation="list_instances"
    )


@pytest.mark.asyncio
async def test_retry_read_returns_first_success():
    func = AsyncMock(return_value=["i-1"])
    assert await retry_read("aws.list", func, "instances") == ["i-1"]
    func.assert_awaited_once_with("instances")


@pytest.mark.asyncio
async def test_retry_read_recovers_after_transient_failure():
    func = AsyncMock(side_effect=[_upstream(), ["i-1"]])
    assert await retry_read("aws.list", func) == ["i-1"]
    assert func.await_count == 2


@pytest.mark.asyncio
async def test_retry_read_gives_up_after_configured_attempts():
    func = AsyncMock(side_effect=_upstream())
    with pytest.raises(UpstreamProviderError):
        await retry_read("aws.list", func)
    assert func.await_count == get_settings().PROVIDER_READ_RETRY_ATTEMPTS


@pytest.mark.asyncio
async def test_retry_read_does_not_retry_other_errors():
    func = AsyncMock(side_effect=ValidationError("bad"))
    with pytest.raises(ValidationError):
        await retry_read("aws.list", func)
    func.assert_awaited_once()
