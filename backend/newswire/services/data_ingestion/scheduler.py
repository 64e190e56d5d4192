"""
Ingestion Scheduler - Periodic cycles and the daily retention sweep.

Cycles run on a fixed interval, the first one shortly after start. A
trigger that arrives while a cycle is still running is dropped, not
queued. The retention sweep has its own independent guard.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from newswire.jobs.ingestion_cycle import CycleStats, IngestionCycleJob
from newswire.jobs.retention import RetentionJob

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """
    Schedules and runs periodic data ingestion.

    Features:
    - Fixed-interval cycles with a delayed first run
    - Non-overlapping cycles via an in-progress flag
    - Daily retention sweep on a cron trigger
    - Manual triggers that go through the same guards
    """

    def __init__(
        self,
        cycle_job: IngestionCycleJob,
        retention_job: Optional[RetentionJob] = None,
        fetch_interval_minutes: int = 5,
        retention_hour: int = 2,
        retention_minute: int = 0,
        startup_delay_seconds: float = 2.0,
    ):
        """
        Initialize the scheduler.

        Args:
            cycle_job: Runs one fetch/dedup/persist/publish cycle
            retention_job: Runs the retention sweep (None disables it)
            fetch_interval_minutes: Minutes between cycles
            retention_hour: UTC hour of the daily sweep
            retention_minute: Minute of the daily sweep
            startup_delay_seconds: Delay before the first cycle after start
        """
        self.cycle_job = cycle_job
        self.retention_job = retention_job
        self.fetch_interval = timedelta(minutes=fetch_interval_minutes)
        self.retention_hour = retention_hour
        self.retention_minute = retention_minute
        self.startup_delay = timedelta(seconds=startup_delay_seconds)

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._cycle_running = False
        self._sweep_running = False
        self._last_cycle: Optional[CycleStats] = None
        self._last_sweep: Optional[datetime] = None
        self._last_sweep_count: Optional[int] = None

    def start(self):
        """Start the interval and cron jobs. Must be called from a running event loop."""
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(seconds=self.fetch_interval.total_seconds(), timezone=timezone.utc),
            id="ingestion_cycle",
            name="News Ingestion Cycle",
            next_run_time=datetime.now(timezone.utc) + self.startup_delay,
            replace_existing=True,
        )
        if self.retention_job is not None:
            self._scheduler.add_job(
                self.run_retention_sweep,
                CronTrigger(hour=self.retention_hour, minute=self.retention_minute, timezone=timezone.utc),
                id="retention_sweep",
                name="Retention Sweep",
                replace_existing=True,
            )

        self._scheduler.start()
        logger.info(
            f"Started ingestion scheduler (interval: {self.fetch_interval}, "
            f"sweep: {self.retention_hour:02d}:{self.retention_minute:02d} UTC)"
        )

    def stop(self):
        """Stop the scheduler. An in-flight cycle is left to finish."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Ingestion scheduler stopped")

    async def run_cycle(self) -> Optional[CycleStats]:
        """
        Execute one cycle unless one is already in progress.

        Returns:
            The cycle's stats, or None if the trigger was dropped or the
            cycle failed unexpectedly
        """
        if self._cycle_running:
            logger.warning("Ingestion cycle already in progress, skipping trigger")
            return None

        self._cycle_running = True
        try:
            stats = await self.cycle_job.run()
            self._last_cycle = stats
            return stats
        except Exception as e:
            logger.error(f"Ingestion cycle failed: {e}", exc_info=True)
            return None
        finally:
            self._cycle_running = False

    async def run_retention_sweep(self) -> Optional[int]:
        """Execute the retention sweep unless one is already in progress."""
        if self.retention_job is None:
            return None
        if self._sweep_running:
            logger.warning("Retention sweep already in progress, skipping trigger")
            return None

        self._sweep_running = True
        try:
            count = await self.retention_job.run()
            self._last_sweep = datetime.now(timezone.utc)
            self._last_sweep_count = count
            return count
        except Exception as e:
            logger.error(f"Retention sweep failed: {e}", exc_info=True)
            return None
        finally:
            self._sweep_running = False

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def is_cycle_running(self) -> bool:
        return self._cycle_running

    @property
    def is_sweep_running(self) -> bool:
        return self._sweep_running

    @property
    def last_cycle(self) -> Optional[CycleStats]:
        return self._last_cycle

    def get_status(self) -> dict:
        """Get scheduler status."""
        next_cycle = None
        if self.is_running:
            job = self._scheduler.get_job("ingestion_cycle")
            if job is not None and job.next_run_time is not None:
                next_cycle = job.next_run_time.isoformat()

        return {
            "running": self.is_running,
            "cycle_in_progress": self._cycle_running,
            "sweep_in_progress": self._sweep_running,
            "next_cycle": next_cycle,
            "fetch_interval_minutes": self.fetch_interval.total_seconds() / 60,
            "last_cycle": self._last_cycle.to_dict() if self._last_cycle else None,
            "last_sweep": self._last_sweep.isoformat() if self._last_sweep else None,
            "last_sweep_count": self._last_sweep_count,
            "sources": self.cycle_job.aggregator.get_source_stats(),
        }
