"""Retry with exponential backoff, and polling until a backend resource is ready."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple = (
        httpx.TimeoutException,
        httpx.ConnectError,
        httpx.NetworkError,
        ConnectionError,
        TimeoutError,
    )
    retryable_status_codes: tuple = (429, 502, 503, 504)


NO_RETRY = RetryConfig(max_retries=0)


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at max_delay."""
    delay = min(config.base_delay * (config.exponential_base**attempt), config.max_delay)
    if config.jitter:
        delay = delay * (0.5 + random.random())
    return delay


def is_retryable(error: Exception, config: RetryConfig) -> bool:
    status_code = getattr(error, "status_code", None)
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
    if status_code is not None:
        return status_code in config.retryable_status_codes
    return isinstance(error, config.retryable_exceptions)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    **kwargs,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying transient failures.

    Errors that are not transient, and the last transient error once
    retries are exhausted, propagate unchanged.
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e, config) or attempt >= config.max_retries:
                raise
            delay = calculate_backoff_delay(attempt, config)
            logger.info(
                "Retry attempt %d/%d after %.2fs delay: %s",
                attempt + 1,
                config.max_retries,
                delay,
                e,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")


async def wait_until_ready(
    is_ready: Callable[[], Awaitable[Any]],
    *,
    interval: float,
    timeout: float,
    description: str = "resource",
) -> bool:
    """Poll ``is_ready`` until it returns a truthy value or ``timeout`` elapses.

    Exceptions from it count as "not ready yet". Returns False on timeout
    instead of raising; callers decide whether that is fatal.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            if await is_ready():
                return True
        except Exception as e:
            logger.debug("Readiness check for %s failed: %s", description, e)

        if time.monotonic() >= deadline:
            logger.warning("Timed out after %.1fs waiting for %s", timeout, description)
            return False
        await asyncio.sleep(interval)
