"""
LTP Detection Scheduler

APScheduler wrapper that drives the periodic detection cycle.

Features:
- Interval jobs on a BackgroundScheduler thread
- One running instance per job (a cycle never overlaps the previous one)
- Missed runs coalesced into a single run
- Per-job run/error/missed statistics
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.events import (
    EVENT_JOB_EXECUTED,
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    JobEvent,
)
import pytz

logger = logging.getLogger(__name__)


class DetectionScheduler:
    """
    Background scheduler for detection jobs.

    Usage:
        scheduler = DetectionScheduler()
        scheduler.add_interval_job(engine.run_detection_cycle, 60, 'ltp_detection')
        scheduler.start()
        # ... later ...
        scheduler.shutdown(wait=False)
    """

    def __init__(
        self,
        timezone: str = 'America/New_York',
        misfire_grace_time: int = 30,
    ):
        """
        Initialize detection scheduler.

        Args:
            timezone: Scheduler timezone
            misfire_grace_time: Seconds a late run may still start
        """
        self.timezone = pytz.timezone(timezone)

        self._scheduler = BackgroundScheduler(
            timezone=self.timezone,
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': misfire_grace_time,
            }
        )

        self._jobs: Dict[str, str] = {}  # name -> job_id
        self._job_stats: Dict[str, Dict[str, Any]] = {}
        self._is_running = False

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    def _on_job_executed(self, event: JobEvent) -> None:
        job_id = event.job_id
        if job_id in self._job_stats:
            self._job_stats[job_id]['last_run'] = datetime.now()
            self._job_stats[job_id]['run_count'] += 1
            self._job_stats[job_id]['last_status'] = 'success'
        logger.debug(f"Job executed: {job_id}")

    def _on_job_error(self, event: JobEvent) -> None:
        job_id = event.job_id
        if job_id in self._job_stats:
            self._job_stats[job_id]['last_run'] = datetime.now()
            self._job_stats[job_id]['error_count'] += 1
            self._job_stats[job_id]['last_status'] = 'error'
            self._job_stats[job_id]['last_error'] = str(event.exception)
        logger.error(f"Job error: {job_id} - {event.exception}")

    def _on_job_missed(self, event: JobEvent) -> None:
        job_id = event.job_id
        if job_id in self._job_stats:
            self._job_stats[job_id]['missed_count'] += 1
            self._job_stats[job_id]['last_status'] = 'missed'
        logger.warning(f"Job missed: {job_id}")

    def add_interval_job(
        self,
        callback: Callable,
        interval_seconds: int,
        job_id: str,
        job_name: Optional[str] = None,
        next_run_time: Optional[datetime] = None,
    ) -> str:
        """
        Add periodic interval job.

        Args:
            callback: Function to call on interval
            interval_seconds: Interval in seconds
            job_id: Unique job identifier
            job_name: Human-readable job name
            next_run_time: First run time (default: one interval from now)

        Returns:
            Job ID
        """
        # APScheduler treats an explicit next_run_time=None as "paused"
        job_kwargs = {}
        if next_run_time is not None:
            job_kwargs['next_run_time'] = next_run_time

        job = self._scheduler.add_job(
            callback,
            trigger='interval',
            seconds=interval_seconds,
            id=job_id,
            name=job_name or job_id,
            replace_existing=True,
            **job_kwargs,
        )

        self._jobs[job_id] = job.id
        self._job_stats[job.id] = {
            'name': job_name or job_id,
            'run_count': 0,
            'error_count': 0,
            'missed_count': 0,
            'last_run': None,
            'last_status': 'pending',
            'last_error': None,
        }

        logger.info(f"Added interval job: {job.id} (every {interval_seconds}s)")
        return job.id

    def remove_job(self, job_id: str) -> bool:
        """
        Remove a job so it never runs again. A run already in progress
        is not interrupted.

        Returns:
            True if the job existed
        """
        if job_id not in self._jobs:
            return False

        if self._scheduler.get_job(job_id):
            self._scheduler.remove_job(job_id)
        del self._jobs[job_id]
        logger.info(f"Removed job: {job_id}")
        return True

    def start(self) -> None:
        """Start the scheduler."""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.start()
        self._is_running = True
        logger.info("Scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: Wait for running jobs to complete
        """
        if not self._is_running:
            logger.warning("Scheduler not running")
            return

        self._scheduler.shutdown(wait=wait)
        self._is_running = False
        logger.info("Scheduler shutdown complete")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        job = self._scheduler.get_job(job_id) if job_id in self._jobs else None
        return job.next_run_time if job else None

    def get_job_stats(self) -> Dict[str, Dict[str, Any]]:
        return {job_id: dict(stats) for job_id, stats in self._job_stats.items()}

    def get_status(self) -> Dict[str, Any]:
        """
        Get overall scheduler status.

        Returns:
            Status dictionary
        """
        next_runs = {}
        for name in self._jobs:
            next_run = self.get_next_run_time(name)
            next_runs[name] = str(next_run) if next_run else None

        return {
            'running': self._is_running,
            'timezone': str(self.timezone),
            'jobs_count': len(self._jobs),
            'jobs': list(self._jobs.keys()),
            'next_runs': next_runs,
            'job_stats': self.get_job_stats(),
        }
