"""
Typed views of ECS dashboard API responses.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ServiceStatus:
    """A service as reported by the cluster status endpoint."""

    service_name: str
    status: str
    running_count: int
    desired_count: int
    pending_count: int = 0
    task_definition: str = "Unknown"
    last_deployment_status: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.running_count >= self.desired_count

    @classmethod
    def from_dict(cls, data: dict) -> "ServiceStatus":
        deployment = data.get("last_deployment") or {}
        return cls(
            service_name=data.get("service_name", ""),
            status=data.get("status", "Unknown"),
            running_count=data.get("running_count", 0),
            desired_count=data.get("desired_count", 0),
            pending_count=data.get("pending_count", 0),
            task_definition=data.get("task_definition", "Unknown"),
            last_deployment_status=deployment.get("status"),
        )


@dataclass
class ClusterStatus:
    """One cluster from the status endpoint."""

    name: str
    status: str
    services: list[ServiceStatus] = field(default_factory=list)
    running_tasks_count: int = 0
    pending_tasks_count: int = 0
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterStatus":
        summary = data.get("summary") or {}
        return cls(
            name=data.get("name", ""),
            status=data.get("status", "Unknown"),
            services=[ServiceStatus.from_dict(s) for s in data.get("items", [])],
            running_tasks_count=summary.get("running_tasks_count", 0),
            pending_tasks_count=summary.get("pending_tasks_count", 0),
            error=data.get("error"),
            warnings=data.get("warnings", []),
        )


@dataclass
class DeployOutcome:
    """Result of forcing a deployment of one service."""

    service_name: str
    success: bool
    message: str

    @classmethod
    def from_dict(cls, data: dict) -> "DeployOutcome":
        return cls(
            service_name=data.get("service_name", ""),
            success=data.get("success", False),
            message=data.get("message", ""),
        )


@dataclass
class MetricPoint:
    timestamp: str
    value: float


@dataclass
class MetricRange:
    """CPU/memory series of one service."""

    cluster_name: str
    service_name: str
    period: int
    cpu: list[MetricPoint]
    memory: list[MetricPoint]

    @classmethod
    def from_dict(cls, data: dict) -> "MetricRange":
        def points(raw: list[dict]) -> list[MetricPoint]:
            return [MetricPoint(timestamp=p["timestamp"], value=p["value"]) for p in raw]

        return cls(
            cluster_name=data.get("cluster_name", ""),
            service_name=data.get("service_name", ""),
            period=data.get("time_range", {}).get("period", 0),
            cpu=points(data.get("cpu", [])),
            memory=points(data.get("memory", [])),
        )
