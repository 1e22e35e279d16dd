"""
Bounded, retrying fan-out over paginated and batched AWS calls.

A target's pipeline is list -> batch describe -> enrich. Pipelines for
several targets run concurrently with staggered starts, and a failure
in one target never aborts its siblings.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from ecs_dashboard.aws.errors import RemoteError
from ecs_dashboard.fanout.gate import EnrichmentGate
from ecs_dashboard.fanout.models import (
    STATUS_ERROR,
    STATUS_NOT_FOUND,
    FanoutTask,
    TargetResult,
)
from ecs_dashboard.fanout.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AggregationTimeoutError(Exception):
    """Raised when an aggregation misses its deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        self.message = f"Aggregation did not finish within {timeout:g}s"
        super().__init__(self.message)


def _item_label(item: Any) -> str:
    return getattr(item, "service_name", None) or str(item)


class FanoutScheduler:
    """
    Runs FanoutTasks against a rate-limited remote API.

    Describe batches for a target go out one at a time, separated by
    ``batch_delay``. Enrichment calls share the given gate, which is
    meant to be one instance per process.
    """

    def __init__(
        self,
        gate: EnrichmentGate | None = None,
        retry_policy: RetryPolicy | None = None,
        batch_size: int = 10,
        batch_delay: float = 0.1,
        stagger_delay: float = 0.2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            gate: Shared enrichment gate (a private one is created if None)
            retry_policy: Backoff policy for throttled calls
            batch_size: Identifiers per describe call
            batch_delay: Seconds between describe batches
            stagger_delay: Start offset per target index, in seconds
            sleep: Awaitable sleep, replaceable in tests
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.gate = gate or EnrichmentGate()
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.stagger_delay = stagger_delay
        self._sleep = sleep

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        operation: str | None = None,
    ) -> T:
        """Single remote call under the retry policy."""
        return await call_with_retry(
            func,
            *args,
            policy=self.retry_policy,
            operation=operation,
            sleep=self._sleep,
        )

    async def collect_identifiers(self, task: FanoutTask[T]) -> list[str]:
        """Follow the continuation token until the listing is exhausted."""
        identifiers: list[str] = []
        token: str | None = None
        pages = 0

        while True:
            page = await self.call(task.list_page, token, operation=f"list {task.name}")
            identifiers.extend(page.service_arns)
            pages += 1
            token = page.next_token
            if not token:
                break

        logger.debug(f"{task.name}: {len(identifiers)} identifiers in {pages} page(s)")
        return identifiers

    def split_batches(self, identifiers: Sequence[str]) -> list[list[str]]:
        return [
            list(identifiers[i : i + self.batch_size])
            for i in range(0, len(identifiers), self.batch_size)
        ]

    async def describe_in_batches(
        self,
        task: FanoutTask[T],
        identifiers: Sequence[str],
    ) -> list[T]:
        """Describe identifiers batch by batch, in split order."""
        items: list[T] = []
        for index, batch in enumerate(self.split_batches(identifiers)):
            if index and self.batch_delay > 0:
                await self._sleep(self.batch_delay)
            described = await self.call(
                task.describe_batch,
                batch,
                operation=f"describe {task.name} batch {index + 1}",
            )
            items.extend(described)
        return items

    async def _enrich_one(self, task: FanoutTask[T], item: T) -> tuple[T, str | None]:
        try:
            async with self.gate:
                enriched = await self.call(
                    task.enrich,
                    item,
                    operation=f"enrich {_item_label(item)}",
                )
            return enriched, None
        except RemoteError as e:
            label = _item_label(item)
            logger.warning(f"{task.name}: enrichment failed for {label}: {e.message}")
            return item, f"{label}: {e.message}"

    async def enrich_items(
        self,
        task: FanoutTask[T],
        items: list[T],
    ) -> tuple[list[T], list[str]]:
        """
        Enrich every item through the gate.

        Returns:
            Items in their original order and warnings for items whose
            enrichment failed (those are returned unenriched)
        """
        if task.enrich is None or not items:
            return items, []

        outcomes = await asyncio.gather(*(self._enrich_one(task, item) for item in items))
        enriched = [item for item, _ in outcomes]
        warnings = [warning for _, warning in outcomes if warning]
        return enriched, warnings

    async def run_task(self, task: FanoutTask[T]) -> TargetResult[T]:
        """
        Run one target's pipeline.

        Raises:
            RemoteError: If any phase fails after retries
        """
        status = "ok"
        summary: dict[str, Any] = {}

        if task.describe_target is not None:
            described = await self.call(task.describe_target, operation=f"describe {task.name}")
            if described is None:
                return TargetResult(
                    name=task.name,
                    status=STATUS_NOT_FOUND,
                    error=f"{task.name} not found",
                )
            status = getattr(described, "status", status)
            if hasattr(described, "to_dict"):
                summary = described.to_dict()

        identifiers = await self.collect_identifiers(task)
        if not identifiers:
            return TargetResult(name=task.name, status=status, summary=summary)

        items = await self.describe_in_batches(task, identifiers)
        items, warnings = await self.enrich_items(task, items)

        return TargetResult(
            name=task.name,
            status=status,
            items=items,
            summary=summary,
            warnings=warnings,
        )

    async def run_isolated(self, task: FanoutTask[T], index: int = 0) -> TargetResult[T]:
        """Stagger by index, then run the task converting remote failures."""
        delay = index * self.stagger_delay
        if delay > 0:
            await self._sleep(delay)

        try:
            return await self.run_task(task)
        except RemoteError as e:
            logger.error(f"Error fetching data for {task.name}: {e.message}")
            return TargetResult(name=task.name, status=STATUS_ERROR, error=e.message)

    async def aggregate(
        self,
        tasks: Sequence[FanoutTask[T]],
        timeout: float | None = None,
    ) -> list[TargetResult[T]]:
        """
        Run all tasks and return one result per task, in request order.

        Args:
            tasks: Targets to aggregate
            timeout: Overall deadline in seconds; None waits indefinitely

        Raises:
            AggregationTimeoutError: If the deadline passes. In-flight
                calls, retries and staggers are cancelled and nothing
                is returned.
        """
        if not tasks:
            return []

        pipelines = asyncio.gather(
            *(self.run_isolated(task, index) for index, task in enumerate(tasks))
        )
        if timeout is None:
            return list(await pipelines)

        try:
            return list(await asyncio.wait_for(pipelines, timeout))
        except asyncio.TimeoutError:
            logger.error(f"Aggregation of {len(tasks)} target(s) timed out after {timeout}s")
            raise AggregationTimeoutError(timeout)
