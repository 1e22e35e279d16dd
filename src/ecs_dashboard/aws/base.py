"""Abstract interface to the ECS and CloudWatch APIs."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ServicePage:
    """One page of ListServices output."""

    service_arns: list[str]
    next_token: str | None = None


@dataclass
class Deployment:
    """Most recent deployment of a service."""

    status: str
    created_at: str | None
    task_definition: str


@dataclass
class ServiceDetail:
    """
    A described ECS service.

    Task definition fields are filled in by the enrichment phase.
    """

    service_name: str
    service_arn: str
    status: str
    running_count: int = 0
    pending_count: int = 0
    desired_count: int = 0
    task_definition: str = "Unknown"
    task_definition_arn: str | None = None
    platform_version: str | None = None
    created_at: str | None = None
    last_deployment: Deployment | None = None
    definition: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "service_name": self.service_name,
            "service_arn": self.service_arn,
            "status": self.status,
            "running_count": self.running_count,
            "pending_count": self.pending_count,
            "desired_count": self.desired_count,
            "task_definition": self.task_definition,
            "platform_version": self.platform_version,
            "created_at": self.created_at,
            "last_deployment": None,
            "definition": self.definition,
        }
        if self.last_deployment is not None:
            data["last_deployment"] = {
                "status": self.last_deployment.status,
                "created_at": self.last_deployment.created_at,
                "task_definition": self.last_deployment.task_definition,
            }
        return data


@dataclass
class ClusterSummary:
    """DescribeClusters statistics for one cluster."""

    cluster_name: str
    status: str
    active_services_count: int = 0
    running_tasks_count: int = 0
    pending_tasks_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_services_count": self.active_services_count,
            "running_tasks_count": self.running_tasks_count,
            "pending_tasks_count": self.pending_tasks_count,
        }


@dataclass
class Datapoint:
    """A CloudWatch datapoint."""

    timestamp: datetime
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


@dataclass
class ConnectionStatus:
    """Outcome of a connectivity probe."""

    success: bool
    message: str
    region: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def short_name(arn: str | None, default: str = "Unknown") -> str:
    """Last path segment of an ARN, e.g. ``web:42`` for a task definition."""
    if not arn:
        return default
    return arn.rsplit("/", 1)[-1]


class EcsBackend(ABC):
    """
    Abstract access to the AWS APIs the dashboard consumes.

    Implementations raise RemoteError subclasses for every failure the
    remote side reports.
    """

    @property
    @abstractmethod
    def region(self) -> str | None:
        """AWS region served by this backend."""
        ...

    @abstractmethod
    async def describe_cluster(self, cluster: str) -> ClusterSummary | None:
        """
        Describe one cluster with statistics.

        Returns:
            ClusterSummary, or None if the cluster does not exist
        """
        ...

    @abstractmethod
    async def list_services(
        self,
        cluster: str,
        next_token: str | None = None,
        page_size: int = 100,
    ) -> ServicePage:
        """Fetch one page of service ARNs."""
        ...

    @abstractmethod
    async def describe_services(
        self,
        cluster: str,
        service_arns: list[str],
    ) -> list[ServiceDetail]:
        """Describe up to ten services."""
        ...

    @abstractmethod
    async def describe_task_definition(self, task_definition: str) -> dict[str, Any]:
        """Describe a task definition by ARN or family:revision."""
        ...

    @abstractmethod
    async def force_new_deployment(self, cluster: str, service: str) -> str:
        """
        Force a new deployment of a service.

        Returns:
            Short name of the task definition being deployed
        """
        ...

    @abstractmethod
    async def get_metric_statistics(
        self,
        cluster: str,
        service: str,
        metric_name: str,
        start: datetime,
        end: datetime,
        period: int,
    ) -> list[Datapoint]:
        """Average of an AWS/ECS metric for one service."""
        ...

    @abstractmethod
    async def test_connection(self) -> ConnectionStatus:
        """Probe connectivity and credentials. Never raises."""
        ...
