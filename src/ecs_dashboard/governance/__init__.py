"""
Request governance: input validation and per-caller rate limiting.

Both run before any AWS call is made so rejected requests cost nothing.
"""

from ecs_dashboard.governance.limiter import (
    RateLimitDecision,
    RateLimitEntry,
    RateLimitExceeded,
    RateLimiter,
)
from ecs_dashboard.governance.validator import (
    TimeRangeRequest,
    ValidationError,
    Validator,
    is_allowed_target,
    validate_identifier,
    validate_metric_kind,
    validate_time_range,
)

__all__ = [
    "RateLimitDecision",
    "RateLimitEntry",
    "RateLimitExceeded",
    "RateLimiter",
    "TimeRangeRequest",
    "ValidationError",
    "Validator",
    "is_allowed_target",
    "validate_identifier",
    "validate_metric_kind",
    "validate_time_range",
]
