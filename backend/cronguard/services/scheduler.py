"""Scheduler service - drives the liveness sweep and housekeeping jobs.

Jobs:
- sweep_monitors: one liveness sweep every SWEEP_INTERVAL_SECONDS
- cleanup_archived_monitors: purge archived monitors past their retention
- cleanup_rate_limits: drop expired rate limit counters

Every job wrapper logs and swallows its own errors so a failing tick never
stops the scheduler. max_instances=1 keeps sweeps from overlapping in one
process; overlapping sweeps across processes are safe because each
transition is a conditional update.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from .sweeper import liveness_sweeper
from .retention import retention_service
from .rate_limiter import rate_limiter

logger = logging.getLogger(__name__)

RATE_LIMIT_CLEANUP_MINUTES = 5


class SchedulerService:
    """Service for scheduling the periodic sweep and cleanup jobs."""

    def __init__(self, sweeper=None, retention=None, limiter=None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._sweeper = sweeper or liveness_sweeper
        self._retention = retention or retention_service
        self._limiter = limiter or rate_limiter

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=settings.sweep_interval_seconds),
            id="sweep_monitors",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=settings.sweep_interval_seconds,
        )

        self.scheduler.add_job(
            self._cleanup_archived_monitors,
            trigger=IntervalTrigger(hours=settings.cleanup_interval_hours),
            id="cleanup_archived_monitors",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.add_job(
            self._cleanup_rate_limits,
            trigger=IntervalTrigger(minutes=RATE_LIMIT_CLEANUP_MINUTES),
            id="cleanup_rate_limits",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (sweep every {settings.sweep_interval_seconds}s)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _run_sweep(self):
        """Run one liveness sweep."""
        try:
            await self._sweeper.sweep()
        except Exception as e:
            logger.error(f"Error running sweep: {e}")

    async def _cleanup_archived_monitors(self):
        """Delete archived monitors past their retention window."""
        try:
            await self._retention.purge_archived()
        except Exception as e:
            logger.error(f"Error cleaning up archived monitors: {e}")

    async def _cleanup_rate_limits(self):
        """Delete expired rate limit counters."""
        try:
            purged = await self._limiter.purge_expired()
            if purged:
                logger.debug(f"Purged {purged} expired rate limit counters")
        except Exception as e:
            logger.error(f"Error cleaning up rate limit counters: {e}")


# Global instance
scheduler_service = SchedulerService()
