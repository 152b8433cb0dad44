"""Retry policy and async retry combinator for key-value operations."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from backend.docctx.errors import RetryExhaustedError
from backend.docctx.utils.metrics import kv_retries_total

T = TypeVar("T")

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def linear_backoff(attempt: int, base_delay_ms: int) -> int:
    """Delay before the attempt following `attempt` (1-based): attempt x base."""
    return attempt * base_delay_ms


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay_ms: Base delay fed to the backoff function
        backoff_fn: Maps (attempt, base_delay_ms) to a delay in milliseconds
    """

    max_attempts: int = 3
    base_delay_ms: int = 500
    backoff_fn: Callable[[int, int], int] = field(default=linear_backoff)

    def delay_seconds(self, attempt: int) -> float:
        """Delay to wait after a failed attempt, in seconds."""
        return self.backoff_fn(attempt, self.base_delay_ms) / 1000


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation: str,
    sleep_fn: SleepFn | None = None,
) -> T:
    """Run `fn` until it succeeds or the policy's attempts are used up.

    Cancellation is never retried: `asyncio.CancelledError` propagates from
    the wrapped call or from the backoff sleep.

    Args:
        fn: Zero-argument coroutine factory
        policy: Retry policy
        operation: Operation name for logs and metrics
        sleep_fn: Injectable sleep function (default: asyncio.sleep)

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: Every attempt failed
    """
    sleep = sleep_fn or asyncio.sleep
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            logger.warning(
                f"KV {operation} failed (attempt {attempt}/{policy.max_attempts})",
                extra={
                    "structured": {
                        "operation": operation,
                        "attempt": attempt,
                        "error_reason": type(e).__name__,
                    }
                },
            )

            if attempt < policy.max_attempts:
                kv_retries_total.labels(operation=operation).inc()
                await sleep(policy.delay_seconds(attempt))

    raise RetryExhaustedError(operation, policy.max_attempts) from last_error
