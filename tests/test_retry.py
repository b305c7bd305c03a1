"""Tests for retry and readiness polling."""

from unittest.mock import AsyncMock

import httpx
import pytest

from vidstore.core.retry import (
    RetryConfig,
    calculate_backoff_delay,
    is_retryable,
    retry_async,
    wait_until_ready,
)
from vidstore.services.appwrite import AppwriteAPIError

FAST = RetryConfig(max_retries=2, base_delay=0, jitter=False)


def test_backoff_is_exponential_and_capped():
    config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
    assert [calculate_backoff_delay(n, config) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]


def test_is_retryable():
    config = RetryConfig()
    assert is_retryable(httpx.ConnectError("refused"), config)
    assert is_retryable(AppwriteAPIError("busy", status_code=503), config)
    assert not is_retryable(AppwriteAPIError("missing", status_code=404), config)
    assert not is_retryable(ValueError("bug"), config)


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_errors():
    func = AsyncMock(side_effect=[httpx.ConnectError("a"), httpx.ReadTimeout("b"), "ok"])
    assert await retry_async(func, config=FAST) == "ok"
    assert func.await_count == 3


@pytest.mark.asyncio
async def test_retry_gives_up():
    func = AsyncMock(side_effect=httpx.ConnectError("down"))
    with pytest.raises(httpx.ConnectError):
        await retry_async(func, config=FAST)
    assert func.await_count == 3


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    func = AsyncMock(side_effect=AppwriteAPIError("bad request", status_code=400))
    with pytest.raises(AppwriteAPIError):
        await retry_async(func, config=FAST)
    assert func.await_count == 1


@pytest.mark.asyncio
async def test_wait_until_ready():
    is_ready = AsyncMock(side_effect=[False, RuntimeError("not yet"), True])
    assert await wait_until_ready(is_ready, interval=0, timeout=60)
    assert is_ready.await_count == 3


@pytest.mark.asyncio
async def test_wait_until_ready_times_out():
    is_ready = AsyncMock(return_value=False)
    assert not await wait_until_ready(is_ready, interval=0, timeout=0)
    assert is_ready.await_count == 1
