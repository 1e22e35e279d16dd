"""
Fan-out scheduling for multi-call AWS aggregations.

Provides:
- FanoutScheduler: list -> batch describe -> enrich pipelines per target
- EnrichmentGate: process-wide bounded concurrency for per-item lookups
- RetryPolicy / call_with_retry: backoff with jitter on throttling
"""

from ecs_dashboard.fanout.gate import EnrichmentGate
from ecs_dashboard.fanout.models import (
    STATUS_ERROR,
    STATUS_NOT_FOUND,
    FanoutTask,
    ItemResult,
    TargetResult,
)
from ecs_dashboard.fanout.retry import RetryPolicy, call_with_retry
from ecs_dashboard.fanout.scheduler import AggregationTimeoutError, FanoutScheduler

__all__ = [
    "STATUS_ERROR",
    "STATUS_NOT_FOUND",
    "AggregationTimeoutError",
    "EnrichmentGate",
    "FanoutScheduler",
    "FanoutTask",
    "ItemResult",
    "RetryPolicy",
    "TargetResult",
    "call_with_retry",
]
