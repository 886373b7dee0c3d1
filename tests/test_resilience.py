import asyncio
import logging

import httpx
import pytest

from reminder_engine.infra.resilience import (
    RetryPolicy,
    is_timeout_error,
    is_transient_error,
    next_backoff_ms,
    retry_async,
)


def test_retry_success_after_transient() -> None:
    attempts: list[int] = []
    waits: list[float] = []

    async def _call() -> str:
        attempts.append(len(attempts))
        if len(attempts) < 3:
            raise asyncio.TimeoutError("transient")
        return "ok"

    async def _sleep(delay: float) -> None:
        waits.append(delay)

    policy = RetryPolicy(max_attempts=3, base_delay_ms=1, max_delay_ms=1, jitter_ms=0)

    result = asyncio.run(
        retry_async(
            _call,
            policy=policy,
            name="retry",
            logger=logging.getLogger(__name__),
            sleep=_sleep,
        )
    )

    assert result == "ok"
    assert len(attempts) == 3
    assert waits == [0.001, 0.001]


def test_retry_non_retryable_error() -> None:
    attempts: list[int] = []

    async def _call() -> str:
        attempts.append(1)
        raise ValueError("bad input")

    async def _sleep(delay: float) -> None:
        raise AssertionError("must not sleep")

    with pytest.raises(ValueError):
        asyncio.run(retry_async(_call, policy=RetryPolicy(max_attempts=3), name="retry", sleep=_sleep))

    assert len(attempts) == 1


def test_retry_gives_up_after_max_attempts() -> None:
    attempts: list[int] = []

    async def _call() -> str:
        attempts.append(1)
        raise httpx.ConnectError("refused")

    async def _sleep(delay: float) -> None:
        return None

    with pytest.raises(httpx.ConnectError):
        asyncio.run(retry_async(_call, policy=RetryPolicy(max_attempts=2), name="retry", sleep=_sleep))

    assert len(attempts) == 2


def test_backoff_is_capped() -> None:
    policy = RetryPolicy(max_attempts=5, base_delay_ms=200, max_delay_ms=1000, jitter_ms=0)

    assert [next_backoff_ms(policy, attempt) for attempt in range(1, 6)] == [200, 400, 800, 1000, 1000]


def test_error_classification() -> None:
    assert is_timeout_error(asyncio.TimeoutError())
    assert is_timeout_error(httpx.ReadTimeout("slow"))
    assert is_transient_error(httpx.ConnectError("refused"))
    assert not is_transient_error(ValueError("nope"))
