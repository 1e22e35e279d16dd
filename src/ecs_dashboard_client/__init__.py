"""
ECS Dashboard Client SDK
Python client library for the ECS dashboard API.
"""

from .client import DashboardApiError, DashboardClient, RateLimitedError
from .models import ClusterStatus, DeployOutcome, MetricRange, ServiceStatus

__version__ = "0.1.0"
__all__ = [
    "DashboardApiError",
    "DashboardClient",
    "RateLimitedError",
    "ClusterStatus",
    "DeployOutcome",
    "MetricRange",
    "ServiceStatus",
]
