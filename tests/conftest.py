"""Pytest configuration and fixtures."""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from ecs_dashboard.aws.base import (
    ClusterSummary,
    ConnectionStatus,
    Datapoint,
    EcsBackend,
    ServiceDetail,
    ServicePage,
)
from ecs_dashboard.aws.errors import RemoteNotFoundError
from ecs_dashboard.config import Settings
from ecs_dashboard.fanout import EnrichmentGate, FanoutScheduler, RetryPolicy

CLUSTERS = ["alpha-cluster", "beta-cluster", "gamma-cluster"]


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def service_arn(cluster: str, name: str) -> str:
    return f"arn:aws:ecs:ap-southeast-3:123456789012:service/{cluster}/{name}"


class FakeEcsBackend(EcsBackend):
    """
    In-memory ECS/CloudWatch stand-in.

    ``failures[operation]`` holds exceptions raised, in order, by the
    next calls to that operation before it starts succeeding.
    """

    def __init__(
        self,
        services: dict[str, list[str]] | None = None,
        enrich_delay: float = 0.0,
    ) -> None:
        self.services = services if services is not None else {
            name: [] for name in CLUSTERS
        }
        self.enrich_delay = enrich_delay
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.cluster_failures: dict[str, Exception] = {}
        self.service_failures: dict[str, Exception] = {}
        self.datapoints: dict[str, list[Datapoint]] = {}
        self.connection_ok = True
        self.in_flight = 0
        self.max_in_flight = 0

    def _record(self, operation: str, payload: Any = None) -> None:
        self.calls.append((operation, payload))
        if self.failures[operation]:
            raise self.failures[operation].pop(0)

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    @property
    def region(self) -> str | None:
        return "ap-southeast-3"

    async def describe_cluster(self, cluster: str) -> ClusterSummary | None:
        self._record("describe_cluster", cluster)
        if cluster in self.cluster_failures:
            raise self.cluster_failures[cluster]
        if cluster not in self.services:
            return None
        return ClusterSummary(
            cluster_name=cluster,
            status="ACTIVE",
            active_services_count=len(self.services[cluster]),
            running_tasks_count=len(self.services[cluster]),
        )

    async def list_services(
        self,
        cluster: str,
        next_token: str | None = None,
        page_size: int = 100,
    ) -> ServicePage:
        self._record("list_services", (cluster, next_token))
        if cluster not in self.services:
            raise RemoteNotFoundError("Cluster not found", "ClusterNotFoundException")
        names = self.services[cluster]
        offset = int(next_token or 0)
        page = names[offset : offset + page_size]
        more = offset + page_size < len(names)
        return ServicePage(
            service_arns=[service_arn(cluster, name) for name in page],
            next_token=str(offset + page_size) if more else None,
        )

    async def describe_services(
        self,
        cluster: str,
        service_arns: list[str],
    ) -> list[ServiceDetail]:
        self._record("describe_services", list(service_arns))
        return [
            ServiceDetail(
                service_name=arn.rsplit("/", 1)[-1],
                service_arn=arn,
                status="ACTIVE",
                running_count=1,
                desired_count=1,
                task_definition=f"{arn.rsplit('/', 1)[-1]}:1",
                task_definition_arn=f"arn:aws:ecs:task-definition/{arn.rsplit('/', 1)[-1]}:1",
            )
            for arn in service_arns
        ]

    async def describe_task_definition(self, task_definition: str) -> dict[str, Any]:
        self._record("describe_task_definition", task_definition)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.enrich_delay)
        finally:
            self.in_flight -= 1
        return {"family": task_definition.rsplit("/", 1)[-1].split(":")[0], "cpu": "256"}

    async def force_new_deployment(self, cluster: str, service: str) -> str:
        self._record("force_new_deployment", (cluster, service))
        if service in self.service_failures:
            raise self.service_failures[service]
        return f"{service}:2"

    async def get_metric_statistics(
        self,
        cluster: str,
        service: str,
        metric_name: str,
        start: datetime,
        end: datetime,
        period: int,
    ) -> list[Datapoint]:
        self._record("get_metric_statistics", (metric_name, period))
        return list(self.datapoints.get(metric_name, []))

    async def test_connection(self) -> ConnectionStatus:
        self.calls.append(("test_connection", None))
        if self.connection_ok:
            return ConnectionStatus(True, "AWS connection successful", self.region)
        return ConnectionStatus(False, "Invalid AWS credentials", self.region)


def instant_retry(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay=0, max_delay=0, jitter=0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeEcsBackend:
    return FakeEcsBackend(
        services={
            "alpha-cluster": [f"svc-{i:02d}" for i in range(25)],
            "beta-cluster": ["api", "worker"],
            "gamma-cluster": [],
        }
    )


@pytest.fixture
def fanout() -> FanoutScheduler:
    """Scheduler with no artificial delays."""
    return FanoutScheduler(
        gate=EnrichmentGate(max_concurrent=3, min_interval=0),
        retry_policy=instant_retry(),
        batch_size=10,
        batch_delay=0,
        stagger_delay=0,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        allowed_clusters=CLUSTERS,
        metrics_rate_limit_requests=3,
        services_rate_limit_requests=5,
        fanout_batch_delay=0,
        fanout_stagger_delay=0,
        enrichment_min_interval=0,
        remote_retry_base_delay=0,
        remote_retry_max_delay=0,
        remote_retry_jitter=0,
        api_key=None,
    )


@pytest.fixture
def recent_datapoints() -> list[Datapoint]:
    now = datetime.now(timezone.utc)
    return [
        Datapoint(timestamp=now - timedelta(minutes=1), value=41.237),
        Datapoint(timestamp=now - timedelta(minutes=3), value=12.5),
        Datapoint(timestamp=now - timedelta(minutes=2), value=20.0),
    ]
