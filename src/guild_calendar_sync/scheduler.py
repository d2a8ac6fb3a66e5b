"""
Periodic inbound sync driven by APScheduler.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime
from datetime import timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from guild_calendar_sync.models import SyncStats

logger = logging.getLogger(__name__)

JOB_ID = "guild_calendar_sync"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SyncScheduler:
    """
    Runs a sync callable every ``interval_minutes`` on a background thread.

    At most one pass runs at a time: the job is registered with
    ``max_instances=1`` and every pass, scheduled or manual, takes a
    non-blocking lock and is dropped if another pass holds it.  A failed pass
    is logged and recorded in ``last_error``; the schedule keeps running.
    """

    def __init__(
        self,
        run_sync: Callable[[], SyncStats],
        interval_minutes: int = 15,
        clock: Callable[[], datetime] = now_utc,
    ):
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        self.run_sync = run_sync
        self.interval_minutes = interval_minutes
        self.clock = clock
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self.is_running = False
        self.last_run_at: datetime | None = None
        self.last_result: SyncStats | None = None
        self.last_error: Exception | None = None
        self._lock = threading.Lock()

        logger.debug(f"SyncScheduler initialized with {interval_minutes}min interval")

    def start(self, run_immediately: bool = False):
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        job_options = {}
        if run_immediately:
            job_options["next_run_time"] = self.clock()
        self.scheduler.add_job(
            func=self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Discord inbound sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_options,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(f"Sync scheduler started, every {self.interval_minutes} minute(s)")

    def stop(self, wait: bool = True):
        if not self.is_running:
            logger.warning("Scheduler is not running")
            return
        self.scheduler.shutdown(wait=wait)
        self.is_running = False
        logger.info("Sync scheduler stopped")

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(JOB_ID) if self.is_running else None
        return job.next_run_time if job else None

    def run_once(self) -> bool:
        """Run one pass now; returns False when another pass is in progress."""
        if not self._lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping this run")
            return False
        try:
            self.last_run_at = self.clock()
            logger.info("Starting scheduled sync")
            try:
                self.last_result = self.run_sync()
                self.last_error = None
            except Exception as e:
                self.last_error = e
                logger.error(f"Scheduled sync failed: {e}")
            else:
                logger.info(
                    f"Scheduled sync done: {self.last_result.created_or_updated} "
                    f"created/updated, {self.last_result.skipped} skipped"
                )
            return True
        finally:
            self._lock.release()

    def sync_now(self):
        """Queue an immediate pass on the scheduler thread."""
        if not self.is_running:
            logger.warning("Scheduler is not running, cannot trigger manual sync")
            return
        self.scheduler.add_job(
            func=self.run_once,
            id=f"{JOB_ID}_manual",
            name="Manual Discord sync",
            replace_existing=True,
        )
        logger.info("Manual sync triggered")
