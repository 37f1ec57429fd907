"""
Reviewsync Refresh Scheduler
============================

Runs the periodic review cycle in the background with APScheduler.

Features:
    - One cycle immediately at start, then every REFRESH_INTERVAL_HOURS (24)
    - Never overlaps itself (max_instances=1, coalesce)
    - Manual trigger support
    - Run history lives on the refresher (last_run_at, status, totals)

Usage:
    # Start scheduler daemon
    python -m reviewsync.orchestrator.cli daemon

    # Or use programmatically
    from reviewsync.orchestrator.scheduler import RefreshScheduler

    scheduler = RefreshScheduler(refresher)
    scheduler.start()
"""

import signal
import logging
from datetime import datetime, timedelta, timezone
from threading import Event
from typing import Optional, Callable, Dict, Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import (
    EVENT_JOB_EXECUTED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)

from ..storage.backends import PersistenceError
from .refresh import ReviewRefresher, CycleResult

logger = logging.getLogger(__name__)


JOB_ID = "periodic_review_refresh"


class RefreshScheduler:
    """
    Background timer for ReviewRefresher.run_periodic_cycle.

    The timer has no mid-cycle cancellation: stop() waits for a running
    cycle by default.
    """

    def __init__(
        self,
        refresher: ReviewRefresher,
        interval: Optional[timedelta] = None,
        run_at_start: bool = True,
        misfire_grace_time: int = 3600,
    ):
        """
        Args:
            refresher: Configured ReviewRefresher
            interval: Cadence (refresher.interval if None)
            run_at_start: Fire the first cycle immediately
            misfire_grace_time: Seconds a late run is still executed
        """
        self.refresher = refresher
        self.interval = interval or refresher.interval
        self.run_at_start = run_at_start
        self.misfire_grace_time = misfire_grace_time
        self._scheduler: Optional[BackgroundScheduler] = None
        self._stop_event = Event()
        self._on_complete_callback: Optional[Callable[[CycleResult], None]] = None

        logger.info(f"RefreshScheduler initialized: every {self.interval}")

    @property
    def is_running(self) -> bool:
        if self._scheduler is None:
            return False
        return self._scheduler.running

    def set_on_complete_callback(self, callback: Callable[[CycleResult], None]):
        """
        Set callback to be invoked after each periodic cycle.

        Args:
            callback: Function that receives the CycleResult
        """
        self._on_complete_callback = callback

    # =========================================================================
    # APScheduler
    # =========================================================================

    def start(self, blocking: bool = False):
        """
        Start the scheduler.

        Args:
            blocking: If True, blocks until scheduler is stopped
        """
        if self._scheduler is not None and self._scheduler.running:
            logger.warning("Scheduler is already running")
            return

        self._stop_event.clear()
        self._scheduler = BackgroundScheduler(timezone="UTC")

        job_options = {}
        if self.run_at_start:
            # next_run_time=None would add the job paused
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            self._execute_cycle,
            trigger=IntervalTrigger(seconds=int(self.interval.total_seconds()), timezone="UTC"),
            id=JOB_ID,
            name="Periodic review refresh",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
            **job_options
        )

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        self._scheduler.start()
        logger.info(f"Scheduler started. Next run at: {self._get_next_run_time()}")

        if blocking:
            self._run_blocking()

    def stop(self, wait: bool = True):
        """
        Stop the scheduler.

        Args:
            wait: If True, waits for a running cycle to complete
        """
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            logger.info("Scheduler stopped")

        self._stop_event.set()

    def _run_blocking(self):
        """Block until stop signal received."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, stopping scheduler...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Scheduler running in blocking mode. Press Ctrl+C to stop.")
        self._stop_event.wait()

    def trigger_now(self) -> Optional[CycleResult]:
        """Run one periodic cycle immediately, in the calling thread."""
        logger.info("Triggering immediate review refresh")
        return self._execute_cycle()

    def _execute_cycle(self) -> Optional[CycleResult]:
        """Execute one periodic cycle; store failures are logged, not raised."""
        try:
            result = self.refresher.run_periodic_cycle()
        except PersistenceError as e:
            logger.error(f"Periodic review refresh failed, stored reviews unchanged: {e.message}")
            return None

        if self._on_complete_callback:
            try:
                self._on_complete_callback(result)
            except Exception as e:
                logger.warning(f"Callback failed: {e}")

        if self.refresher.history.consecutive_failures >= 3:
            logger.error(
                f"Review refresh has failed {self.refresher.history.consecutive_failures} "
                f"consecutive times. Check provider credentials."
            )
        return result

    def _get_next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        if job is None:
            return None
        return job.next_run_time

    def _on_job_executed(self, event: JobExecutionEvent):
        logger.info(f"Job {event.job_id} executed successfully")

    def _on_job_error(self, event: JobExecutionEvent):
        logger.error(f"Job {event.job_id} raised an exception: {event.exception}")

    def _on_job_missed(self, event: JobExecutionEvent):
        logger.warning(f"Job {event.job_id} missed its scheduled time")

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> Dict[str, Any]:
        next_run = self._get_next_run_time()
        return {
            "is_running": self.is_running,
            "interval_hours": self.interval.total_seconds() / 3600,
            "next_run": next_run.isoformat() if next_run else None,
            "history": self.refresher.history.to_dict(),
        }
