"""
AWS access layer.

Wraps the ECS and CloudWatch APIs behind an async backend interface
and maps botocore failures onto a small error taxonomy.
"""

from ecs_dashboard.aws.base import (
    ClusterSummary,
    ConnectionStatus,
    Datapoint,
    Deployment,
    EcsBackend,
    ServiceDetail,
    ServicePage,
)
from ecs_dashboard.aws.boto import BotoEcsBackend
from ecs_dashboard.aws.errors import (
    RemoteError,
    RemoteNotFoundError,
    RemotePermissionDeniedError,
    RemoteThrottlingError,
    RemoteUnknownError,
    translate_error,
)

__all__ = [
    "BotoEcsBackend",
    "ClusterSummary",
    "ConnectionStatus",
    "Datapoint",
    "Deployment",
    "EcsBackend",
    "RemoteError",
    "RemoteNotFoundError",
    "RemotePermissionDeniedError",
    "RemoteThrottlingError",
    "RemoteUnknownError",
    "ServiceDetail",
    "ServicePage",
    "translate_error",
]
