"""Dashboard service layer."""

from ecs_dashboard.services.dashboard import DashboardService, MetricSeries

__all__ = ["DashboardService", "MetricSeries"]
