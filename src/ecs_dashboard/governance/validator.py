"""Input guards: identifier sanity, time ranges and cluster allow-listing."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from ecs_dashboard.config import settings

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when request input fails validation."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


MAX_RANGE = timedelta(days=30)
MAX_FUTURE = timedelta(days=1)
MAX_HISTORY = timedelta(days=455)  # CloudWatch retention

METRIC_KINDS = ("cpu", "memory", "both")

# Rejected anywhere in a free-text identifier
SUSPICIOUS_PATTERNS = [
    re.compile(r"[<>]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+=", re.IGNORECASE),
    re.compile(r"script", re.IGNORECASE),
    re.compile(r";.*--"),
    re.compile(r"union.*select", re.IGNORECASE),
    re.compile(r"drop.*table", re.IGNORECASE),
]


@dataclass(frozen=True)
class TimeRangeRequest:
    """A validated metrics time range."""

    start: datetime
    end: datetime

    @property
    def duration_hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    @property
    def period(self) -> int:
        """CloudWatch aggregation period in seconds for this range."""
        hours = self.duration_hours
        if hours <= 1:
            return 60
        if hours <= 6:
            return 300
        if hours <= 24:
            return 900
        return 3600


def parse_instant(value: Any) -> datetime:
    """
    Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Raises:
        ValidationError: If the value is not a usable date
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError("Invalid date format")
    else:
        raise ValidationError("Invalid date format")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_identifier(text: Any, max_length: int = 100) -> str:
    """
    Validate a free-text identifier such as a service name.

    Args:
        text: Value to check
        max_length: Maximum accepted length

    Returns:
        The identifier unchanged

    Raises:
        ValidationError: If the value is empty, too long or suspicious
    """
    if not text or not isinstance(text, str):
        raise ValidationError("Input must be a non-empty string")

    if len(text) > max_length:
        raise ValidationError(f"Input too long (max {max_length} characters)")

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(text):
            logger.warning(f"Rejected identifier matching {pattern.pattern!r}")
            raise ValidationError("Input contains invalid characters or patterns")

    return text


def validate_time_range(
    start: Any,
    end: Any,
    now: datetime | None = None,
) -> TimeRangeRequest:
    """
    Validate a metrics query window.

    Rules are checked in order so the caller gets the most specific message.

    Raises:
        ValidationError: On the first violated rule
    """
    start_at = parse_instant(start)
    end_at = parse_instant(end)
    now = now or datetime.now(timezone.utc)

    if start_at >= end_at:
        raise ValidationError("Start time must be before end time")

    if end_at - start_at > MAX_RANGE:
        raise ValidationError("Time range too large (max 30 days)")

    if end_at > now + MAX_FUTURE:
        raise ValidationError("End time cannot be more than 1 day in the future")

    if start_at < now - MAX_HISTORY:
        raise ValidationError("Start time too old (max 455 days ago)")

    return TimeRangeRequest(start=start_at, end=end_at)


def is_allowed_target(name: Any, allowed: Iterable[str] | None = None) -> bool:
    """Check a cluster name against the allow-list."""
    allowed_names = settings.allowed_clusters if allowed is None else allowed
    return isinstance(name, str) and name in set(allowed_names)


def validate_metric_kind(kind: Any) -> str:
    """Validate the requested metric family."""
    if kind not in METRIC_KINDS:
        raise ValidationError(
            "Invalid metric type. Must be 'cpu', 'memory', or 'both'"
        )
    return kind


class Validator:
    """
    Bundles the validation guards with a fixed cluster allow-list.

    Stateless apart from configuration; safe to share across requests.
    """

    def __init__(self, allowed_clusters: Iterable[str] | None = None) -> None:
        self._allowed = frozenset(
            settings.allowed_clusters if allowed_clusters is None else allowed_clusters
        )

    @property
    def allowed_clusters(self) -> list[str]:
        return sorted(self._allowed)

    def require_cluster(self, name: Any) -> str:
        """Return the cluster name or raise if it is not allow-listed."""
        if not is_allowed_target(name, self._allowed):
            raise ValidationError("Invalid cluster name")
        return name

    def require_service(self, name: Any) -> str:
        try:
            return validate_identifier(name, max_length=255)
        except ValidationError as e:
            raise ValidationError(f"Invalid service name: {e.message}")

    def is_valid_identifier(self, text: Any, max_length: int = 100) -> bool:
        """Check an identifier without raising."""
        try:
            validate_identifier(text, max_length)
            return True
        except ValidationError:
            return False

    def time_range(self, start: Any, end: Any) -> TimeRangeRequest:
        return validate_time_range(start, end)

    def metric_kind(self, kind: Any) -> str:
        return validate_metric_kind(kind)
