"""Process-wide concurrency gate for per-item enrichment calls."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class EnrichmentGate:
    """
    Counting semaphore with FIFO admission and spaced acquisitions.

    At most ``max_concurrent`` holders at once, no matter how many
    requests are enriching items. Waiters are admitted in arrival order,
    and two successive admissions are at least ``min_interval`` seconds
    apart.

    Usage:
        async with gate:
            await backend.describe_task_definition(arn)
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_acquired: float | None = None
        self._active = 0
        self._peak = 0

    @property
    def active(self) -> int:
        """Holders right now."""
        return self._active

    @property
    def peak(self) -> int:
        """Highest number of simultaneous holders seen."""
        return self._peak

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._spacing_lock:
                if self._last_acquired is not None and self.min_interval > 0:
                    wait = self._last_acquired + self.min_interval - self._clock()
                    if wait > 0:
                        await self._sleep(wait)
                self._last_acquired = self._clock()
        except BaseException:
            self._semaphore.release()
            raise

        self._active += 1
        self._peak = max(self._peak, self._active)

    def release(self) -> None:
        self._active -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "EnrichmentGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()
