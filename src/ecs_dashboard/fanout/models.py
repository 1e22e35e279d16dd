"""Task and result types for fan-out aggregation."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from ecs_dashboard.aws.base import ServicePage

T = TypeVar("T")

STATUS_ERROR = "error"
STATUS_NOT_FOUND = "not-found"


@dataclass
class FanoutTask(Generic[T]):
    """
    One top-level target and the dependent calls it needs.

    Phases run in order: describe_target, list_page (until the
    continuation token runs out), describe_batch per batch, then
    enrich per item. The remote calls are bound by the caller so the
    scheduler stays agnostic of the API behind them.
    """

    name: str
    list_page: Callable[[str | None], Awaitable[ServicePage]]
    describe_batch: Callable[[list[str]], Awaitable[list[T]]]
    describe_target: Callable[[], Awaitable[Any | None]] | None = None
    enrich: Callable[[T], Awaitable[T]] | None = None


@dataclass
class TargetResult(Generic[T]):
    """Aggregated outcome for one target."""

    name: str
    status: str
    items: list[T] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status not in (STATUS_ERROR, STATUS_NOT_FOUND)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "summary": self.summary,
            "items": [
                item.to_dict() if hasattr(item, "to_dict") else item
                for item in self.items
            ],
            "error": self.error,
            "warnings": self.warnings,
        }


@dataclass
class ItemResult:
    """Outcome of a per-item mutation such as a forced deployment."""

    name: str
    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "success": self.success, "message": self.message}
