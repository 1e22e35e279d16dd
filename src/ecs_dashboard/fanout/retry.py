"""Retry with exponential backoff and jitter for throttled AWS calls."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from ecs_dashboard.aws.errors import RemoteThrottlingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff configuration.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the first retry, doubled on each attempt
        max_delay: Cap on the exponential part of the delay
        jitter: Upper bound of the random seconds added to every delay
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.25

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the given failed attempt (0-indexed)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    def is_retryable(self, exception: BaseException) -> bool:
        return isinstance(exception, RemoteThrottlingError)


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    operation: str | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying on AWS throttling.

    Only RemoteThrottlingError is retried. Anything else propagates on
    the first failure; the last throttling error propagates once the
    attempts are used up.
    """
    policy = policy or RetryPolicy()
    name = operation or getattr(func, "__name__", "remote call")

    for attempt in range(policy.max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            if attempt + 1 >= policy.max_attempts:
                logger.error(
                    f"{name} still throttled after {policy.max_attempts} attempts"
                )
                raise

            delay = policy.calculate_delay(attempt)
            logger.warning(
                f"{name} throttled. Retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            await sleep(delay)

    raise RuntimeError("Unexpected retry loop exit")
