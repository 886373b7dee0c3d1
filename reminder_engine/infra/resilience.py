from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    base_delay_ms: int = 200
    max_delay_ms: int = 1000
    jitter_ms: int = 100


def next_backoff_ms(policy: RetryPolicy, attempt: int) -> int:
    exp = min(policy.max_delay_ms, int(policy.base_delay_ms * (2 ** max(attempt - 1, 0))))
    jitter = int(random.random() * policy.jitter_ms) if policy.jitter_ms > 0 else 0
    return min(policy.max_delay_ms, exp + jitter)


def is_timeout_error(exc: BaseException) -> bool:
    return isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException))


def is_transient_error(exc: BaseException) -> bool:
    return is_timeout_error(exc) or isinstance(exc, httpx.TransportError)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    name: str,
    is_retryable: Callable[[Exception], bool] = is_transient_error,
    logger: logging.Logger = LOGGER,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``func`` until it succeeds, a non-retryable error occurs or attempts run out."""
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as exc:
            if attempt >= attempts or not is_retryable(exc):
                raise
            wait_ms = next_backoff_ms(policy, attempt)
            logger.info(
                "retry.attempt name=%s attempt=%s wait_ms=%s error=%s",
                name,
                attempt + 1,
                wait_ms,
                type(exc).__name__,
            )
            await sleep(wait_ms / 1000)
    raise RuntimeError("retry_attempts_exhausted")
