"""Background scheduler service driving the collection loop."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from harborwatch.services.collector import Collector
from harborwatch.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

JOB_ID = "collection_tick"
SHUTDOWN_DRAIN_SECONDS = 5.0


class SchedulerService:
    """Service for running the collection tick on a fixed interval."""

    def __init__(self) -> None:
        """Initialize the scheduler service."""
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.collector: Optional[Collector] = None
        self._interval: float = 1.0
        self._last_tick: Optional[datetime] = None
        self._tick_task: Optional[asyncio.Task] = None

    async def start(self, collector: Collector) -> None:
        """Start ticking.

        The first tick fires immediately; afterwards a tick still running
        when the next one is due makes the scheduler skip that run instead
        of overlapping it.

        Args:
            collector: Collector whose ``tick`` is run on every interval
        """
        self.collector = collector
        self._interval = SettingsService.get_float("collection_interval", 1.0)
        if self._interval <= 0:
            logger.warning(f"Invalid collection interval {self._interval}, using 1.0s")
            self._interval = 1.0

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_tick,
            IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="Telemetry Collection Tick",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=None,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        logger.info(f"Background scheduler started, collecting every {self._interval}s")

    async def stop(self) -> None:
        """Stop the background scheduler.

        A tick still in flight gets up to ``SHUTDOWN_DRAIN_SECONDS`` to finish
        and is cancelled after that, so callers can release the Docker client
        once this returns.
        """
        if self.scheduler:
            try:
                self.scheduler.shutdown(wait=False)
                # Give event loop a chance to process shutdown
                await asyncio.sleep(0)
                logger.info("Background scheduler stopped")
            except RuntimeError as e:
                logger.error(f"Scheduler shutdown error: {e}")
            self.scheduler = None

        task = self._tick_task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=SHUTDOWN_DRAIN_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Collection tick still running after {SHUTDOWN_DRAIN_SECONDS}s, cancelled"
                )

    async def _run_tick(self) -> None:
        """Run one collection tick."""
        if self.collector is None:
            return
        self._tick_task = asyncio.current_task()
        try:
            await self.collector.tick()
            self._last_tick = datetime.now(timezone.utc)
        finally:
            self._tick_task = None

    def get_next_run_time(self) -> Optional[datetime]:
        """Get the next scheduled tick time."""
        if not self.scheduler or not self.scheduler.running:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def get_status(self) -> dict:
        """Get scheduler status information.

        Returns:
            Dict with scheduler status details
        """
        running = bool(self.scheduler and self.scheduler.running)
        next_run = self.get_next_run_time()
        collector = self.collector
        return {
            "running": running,
            "interval_seconds": self._interval,
            "next_run": next_run.isoformat() if next_run else None,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "tick_count": collector.tick_count if collector else 0,
            "last_tick_duration": collector.last_tick_duration if collector else None,
        }


# Global scheduler instance
scheduler_service = SchedulerService()
