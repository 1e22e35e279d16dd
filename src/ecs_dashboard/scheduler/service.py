"""APScheduler-based maintenance jobs for the running app."""

import logging
from typing import Any, Awaitable, Callable, Iterable

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ecs_dashboard.governance.limiter import RateLimiter

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "rate_limit_sweep"


class SchedulerService:
    """
    Periodic maintenance on the application's event loop.

    Jobs are coroutine functions run by an AsyncIOScheduler with an
    in-memory job store, so the job list is rebuilt on every startup.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self._timezone = timezone
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def scheduler(self) -> AsyncIOScheduler:
        """Lazily built scheduler; creating it does not need a running loop."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(
                jobstores={"default": MemoryJobStore()},
                job_defaults={
                    "coalesce": True,
                    "max_instances": 1,
                    "misfire_grace_time": 60,
                },
                timezone=self._timezone,
            )
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Begin firing jobs. Call from inside the running event loop."""
        if self.is_running:
            logger.warning("Maintenance scheduler already running")
            return
        self.scheduler.start()
        logger.info(f"Maintenance scheduler started with {len(self.list_jobs())} job(s)")

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the scheduler and forget its jobs.

        Args:
            wait: Block until running jobs finish
        """
        if self.is_running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Maintenance scheduler stopped")
        self._scheduler = None

    def add_job(
        self,
        job_id: str,
        func: Callable[..., Awaitable[Any]],
        interval_minutes: float,
        args: tuple[Any, ...] | None = None,
    ) -> None:
        """Schedule ``func`` every ``interval_minutes``, replacing a job with the same id."""
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=job_id,
            name=job_id,
            args=args or (),
            replace_existing=True,
        )
        logger.info(f"Scheduled '{job_id}' every {interval_minutes}m")

    def remove_job(self, job_id: str) -> bool:
        """
        Unschedule a job.

        Returns:
            False if no job had that id
        """
        job = self.scheduler.get_job(job_id)
        if job is None:
            return False
        job.remove()
        logger.info(f"Unscheduled '{job_id}'")
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        # Pending jobs have no next_run_time until the scheduler starts
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": getattr(job, "next_run_time", None),
            }
            for job in self.scheduler.get_jobs()
        ]


async def sweep_limiters(limiters: Iterable[RateLimiter]) -> int:
    """Sweep expired entries from every limiter."""
    total = 0
    for limiter in limiters:
        total += await limiter.sweep()
    if total:
        logger.info(f"Rate limit sweep removed {total} entries")
    return total


def register_sweep(
    service: SchedulerService,
    limiters: Iterable[RateLimiter],
    interval_minutes: float = 5,
) -> None:
    """Register the periodic rate limiter sweep."""
    service.add_job(
        job_id=SWEEP_JOB_ID,
        func=sweep_limiters,
        interval_minutes=interval_minutes,
        args=(list(limiters),),
    )
