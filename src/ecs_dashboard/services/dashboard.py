"""Dashboard operations over ECS and CloudWatch."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Sequence, TypeVar

from ecs_dashboard.aws.base import EcsBackend, ServiceDetail
from ecs_dashboard.aws.errors import RemoteError
from ecs_dashboard.fanout.models import FanoutTask, ItemResult, TargetResult
from ecs_dashboard.fanout.scheduler import AggregationTimeoutError, FanoutScheduler
from ecs_dashboard.governance.validator import TimeRangeRequest, ValidationError, Validator

logger = logging.getLogger(__name__)

METRIC_NAMES = {
    "cpu": "CPUUtilization",
    "memory": "MemoryUtilization",
}

LATEST_WINDOW = timedelta(minutes=5)

T = TypeVar("T")


@dataclass
class MetricSeries:
    """CPU and memory utilization for one service over a range."""

    cluster_name: str
    service_name: str
    time_range: TimeRangeRequest
    cpu: list[dict[str, Any]] = field(default_factory=list)
    memory: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cluster_name": self.cluster_name,
            "service_name": self.service_name,
            "time_range": {
                "start": self.time_range.start.isoformat(),
                "end": self.time_range.end.isoformat(),
                "period": self.time_range.period,
            },
            "cpu": self.cpu,
            "memory": self.memory,
        }


class DashboardService:
    """
    Validated, throttling-aware access to cluster state.

    Callers are expected to have passed rate limiting already; this
    layer validates input before touching AWS.
    """

    def __init__(
        self,
        backend: EcsBackend,
        scheduler: FanoutScheduler,
        validator: Validator | None = None,
        page_size: int = 100,
        aggregate_timeout: float | None = None,
    ) -> None:
        self.backend = backend
        self.scheduler = scheduler
        self.validator = validator or Validator()
        self.page_size = page_size
        self.aggregate_timeout = aggregate_timeout

    async def _within_deadline(self, operation: Awaitable[T]) -> T:
        """Await ``operation`` under ``aggregate_timeout``, cancelling it on expiry."""
        if self.aggregate_timeout is None:
            return await operation
        try:
            return await asyncio.wait_for(operation, self.aggregate_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Request timed out after {self.aggregate_timeout}s")
            raise AggregationTimeoutError(self.aggregate_timeout)

    def _build_task(
        self,
        cluster: str,
        describe_cluster: bool = True,
        include_definitions: bool = False,
    ) -> FanoutTask[ServiceDetail]:
        backend = self.backend

        async def list_page(token: str | None):
            return await backend.list_services(cluster, token, self.page_size)

        async def describe_batch(arns: list[str]) -> list[ServiceDetail]:
            return await backend.describe_services(cluster, arns)

        async def describe_target():
            return await backend.describe_cluster(cluster)

        async def enrich(service: ServiceDetail) -> ServiceDetail:
            reference = service.task_definition_arn or service.task_definition
            service.definition = await backend.describe_task_definition(reference)
            return service

        return FanoutTask(
            name=cluster,
            list_page=list_page,
            describe_batch=describe_batch,
            describe_target=describe_target if describe_cluster else None,
            enrich=enrich if include_definitions else None,
        )

    async def aggregate_status(
        self,
        clusters: Sequence[str] | None = None,
        include_definitions: bool = False,
    ) -> list[TargetResult[ServiceDetail]]:
        """
        Status of several clusters with their services.

        Args:
            clusters: Cluster names (defaults to every allowed cluster)
            include_definitions: Also look up each service's task definition

        Raises:
            ValidationError: If any cluster is not allow-listed
            AggregationTimeoutError: If the deadline passes
        """
        names = list(clusters) if clusters else self.validator.allowed_clusters
        for name in names:
            self.validator.require_cluster(name)

        tasks = [
            self._build_task(name, include_definitions=include_definitions)
            for name in names
        ]
        results = await self.scheduler.aggregate(tasks, timeout=self.aggregate_timeout)

        failed = sum(1 for result in results if not result.ok)
        if failed:
            logger.warning(f"Status aggregation: {failed}/{len(results)} cluster(s) failed")
        return results

    async def list_services(self, cluster: str) -> list[ServiceDetail]:
        """
        Services of one cluster, sorted by name.

        Raises:
            ValidationError: If the cluster is not allow-listed
            RemoteError: If AWS fails after retries
        """
        self.validator.require_cluster(cluster)
        task = self._build_task(cluster, describe_cluster=False)
        result = await self.scheduler.run_task(task)
        return sorted(result.items, key=lambda service: service.service_name)

    async def _redeploy_one(self, cluster: str, service: str) -> ItemResult:
        try:
            self.validator.require_service(service)
        except ValidationError as e:
            logger.warning(f"Skipping redeploy in {cluster}: {e.message}")
            return ItemResult(name=str(service), success=False, message=e.message)

        try:
            task_definition = await self.scheduler.call(
                self.backend.force_new_deployment,
                cluster,
                service,
                operation=f"force deploy {service}",
            )
        except RemoteError as e:
            logger.error(f"Error updating service {service}: {e.message}")
            return ItemResult(
                name=service,
                success=False,
                message=f"Failed to initiate deployment: {e.message}",
            )

        logger.info(f"Forced new deployment of {cluster}/{service}")
        return ItemResult(
            name=service,
            success=True,
            message=(
                "Force deployment initiated successfully "
                f"(Task Definition: {task_definition})"
            ),
        )

    async def force_redeploy(self, cluster: str, services: Sequence[str]) -> list[ItemResult]:
        """
        Force a new deployment of each service independently.

        An invalid service name fails only its own item.

        Returns:
            One result per service, in input order

        Raises:
            ValidationError: On a missing or unlisted cluster, or no services
            AggregationTimeoutError: If the deadline passes
        """
        if not cluster or not services:
            raise ValidationError("Cluster name and service names are required")
        self.validator.require_cluster(cluster)

        results = await self._within_deadline(
            asyncio.gather(*(self._redeploy_one(cluster, service) for service in services))
        )
        return list(results)

    async def _series(
        self,
        cluster: str,
        service: str,
        metric_kind: str,
        start: datetime,
        end: datetime,
        period: int,
    ) -> list[dict[str, Any]]:
        datapoints = await self.scheduler.call(
            self.backend.get_metric_statistics,
            cluster,
            service,
            METRIC_NAMES[metric_kind],
            start,
            end,
            period,
            operation=f"{metric_kind} metrics for {service}",
        )
        datapoints = sorted(datapoints, key=lambda dp: dp.timestamp)
        return [
            {"timestamp": dp.timestamp.isoformat(), "value": round(dp.value, 2)}
            for dp in datapoints
        ]

    async def fetch_metrics(
        self,
        cluster: str,
        service: str,
        start: Any,
        end: Any,
        metric_kind: str = "both",
    ) -> MetricSeries:
        """
        CPU and/or memory utilization over a validated range.

        Raises:
            ValidationError: On bad cluster, service, range or metric kind
            RemoteError: If CloudWatch fails after retries
        """
        self.validator.require_cluster(cluster)
        self.validator.require_service(service)
        kind = self.validator.metric_kind(metric_kind)
        time_range = self.validator.time_range(start, end)

        kinds = ["cpu", "memory"] if kind == "both" else [kind]
        series = await self._within_deadline(
            asyncio.gather(
                *(
                    self._series(
                        cluster, service, name, time_range.start, time_range.end, time_range.period
                    )
                    for name in kinds
                )
            )
        )

        result = MetricSeries(cluster_name=cluster, service_name=service, time_range=time_range)
        for name, points in zip(kinds, series):
            setattr(result, name, points)
        return result

    async def latest_metrics(self, cluster: str, service: str) -> dict[str, Any]:
        """Most recent CPU and memory datapoints over the last five minutes."""
        self.validator.require_cluster(cluster)
        self.validator.require_service(service)

        end = datetime.now(timezone.utc)
        start = end - LATEST_WINDOW
        cpu, memory = await self._within_deadline(
            asyncio.gather(
                self._series(cluster, service, "cpu", start, end, 300),
                self._series(cluster, service, "memory", start, end, 300),
            )
        )

        def latest(points: list[dict[str, Any]]) -> dict[str, Any]:
            point = points[-1] if points else None
            return {
                "value": point["value"] if point else None,
                "unit": "Percent",
                "timestamp": point["timestamp"] if point else None,
            }

        return {
            "cluster_name": cluster,
            "service_name": service,
            "cpu": latest(cpu),
            "memory": latest(memory),
        }

    async def check_connection(self) -> dict[str, Any]:
        """Connectivity probe for the health endpoint."""
        status = await self.backend.test_connection()
        return {
            "status": "healthy" if status.success else "unhealthy",
            "message": status.message,
            "region": status.region,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
