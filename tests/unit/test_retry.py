"""Unit tests for the retry combinator."""

import asyncio

import pytest

from backend.docctx.errors import RetryExhaustedError
from backend.docctx.retry import RetryPolicy, linear_backoff, with_retry


def test_linear_backoff_grows_with_attempt() -> None:
    """Test that delay is attempt x base delay."""
    assert linear_backoff(1, 500) == 500
    assert linear_backoff(2, 500) == 1000
    assert linear_backoff(3, 500) == 1500


@pytest.mark.asyncio
async def test_returns_first_success_without_sleeping(sleep) -> None:
    """Test that a successful first attempt does not back off."""

    async def op() -> str:
        return "ok"

    result = await with_retry(op, RetryPolicy(), operation="read", sleep_fn=sleep)

    assert result == "ok"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retries_until_success_with_linear_delays(sleep) -> None:
    """Test that failures are retried with 0.5s then 1.0s delays."""
    calls = 0

    async def op() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ConnectionError("boom")
        return "ok"

    result = await with_retry(op, RetryPolicy(), operation="read", sleep_fn=sleep)

    assert result == "ok"
    assert calls == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_raises_after_max_attempts(sleep) -> None:
    """Test that exhaustion raises RetryExhaustedError chained to the last error."""
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise TimeoutError("slow")

    with pytest.raises(RetryExhaustedError) as exc_info:
        await with_retry(op, RetryPolicy(max_attempts=3), operation="write", sleep_fn=sleep)

    assert calls == 3
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.__cause__, TimeoutError)
    # No sleep after the final attempt
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_custom_backoff_function(sleep) -> None:
    """Test that the policy's backoff function drives delays."""

    async def op() -> None:
        raise ValueError("bad")

    policy = RetryPolicy(max_attempts=4, base_delay_ms=100, backoff_fn=lambda attempt, base: base)

    with pytest.raises(RetryExhaustedError):
        await with_retry(op, policy, operation="read", sleep_fn=sleep)

    assert sleep.delays == [0.1, 0.1, 0.1]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried(sleep) -> None:
    """Test that CancelledError propagates immediately."""
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await with_retry(op, RetryPolicy(), operation="read", sleep_fn=sleep)

    assert calls == 1
    assert sleep.delays == []
