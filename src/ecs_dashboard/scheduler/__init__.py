"""Background maintenance scheduling."""

from ecs_dashboard.scheduler.service import SchedulerService, register_sweep, sweep_limiters

__all__ = ["SchedulerService", "register_sweep", "sweep_limiters"]
