"""This module wraps the APScheduler jobs used by the grid engine.

Two kinds of jobs exist:
- one-shot restore jobs (`DateTrigger`) that turn a shed device back on once
  its playbook step duration has elapsed, keyed ``restore:<event>:<device>``;
- daily peak-window jobs (`CronTrigger`) that start and stop an automatic
  event at the edges of each configured window, keyed ``peak-start:<n>`` and
  ``peak-stop:<n>``.

The class only manages job bookkeeping; the callbacks it schedules belong to
the engine.
"""

from datetime import datetime, tzinfo
from typing import Callable, List

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from grid_shed.events.peak_window import PeakWindow
from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

RESTORE_PREFIX = "restore"
PEAK_PREFIXES = ("peak-start:", "peak-stop:")


class GridJobs:
    """Schedules and cancels the engine's timed actions on an APScheduler scheduler."""

    def __init__(self, scheduler: BaseScheduler) -> None:
        self._scheduler = scheduler

    @property
    def timezone(self) -> tzinfo:
        return self._scheduler.timezone

    def schedule_restore(
        self,
        event_id: str,
        device_id: str,
        run_at: datetime,
        callback: Callable[[str, str], None],
    ) -> str:
        """Adds a one-shot job calling ``callback(event_id, device_id)`` at `run_at`.

        Returns:
            The id of the scheduled job.
        """
        job_id = self._restore_job_id(event_id, device_id)
        self.cancel_restore(event_id, device_id)
        logger.info("Adding restore job %s to scheduler for date: %s", job_id, run_at)
        self._scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_at),
            args=[event_id, device_id],
            id=job_id,
            name=job_id,
            misfire_grace_time=None,
        )
        return job_id

    def pending_restores(self, event_id: str) -> List[str]:
        """Lists the device ids still waiting for an automatic restore in an event."""
        prefix = f"{RESTORE_PREFIX}:{event_id}:"
        return [job.args[1] for job in self._scheduler.get_jobs() if job.id.startswith(prefix)]

    def cancel_restore(self, event_id: str, device_id: str) -> bool:
        job_id = self._restore_job_id(event_id, device_id)
        if self._scheduler.get_job(job_id) is None:
            return False
        self._scheduler.remove_job(job_id)
        logger.info("Restore job %s cancelled", job_id)
        return True

    def cancel_restores(self, event_id: str) -> List[str]:
        """Removes every pending restore job of an event.

        Returns:
            The device ids whose restore was cancelled, in scheduling order.
        """
        device_ids = self.pending_restores(event_id)
        for device_id in device_ids:
            self.cancel_restore(event_id, device_id)
        return device_ids

    def sync_peak_windows(
        self,
        windows: List[PeakWindow],
        start_callback: Callable[[], None],
        stop_callback: Callable[[], None],
    ) -> List[str]:
        """Replaces all peak-window jobs with one start/stop pair per window.

        Passing an empty list simply clears the existing peak jobs.

        Returns:
            The ids of the jobs now scheduled.
        """
        for job in self._scheduler.get_jobs():
            if job.id.startswith(PEAK_PREFIXES):
                self._scheduler.remove_job(job.id)

        job_ids = []
        for index, window in enumerate(windows):
            for prefix, moment, callback in (
                (PEAK_PREFIXES[0], window.start, start_callback),
                (PEAK_PREFIXES[1], window.end, stop_callback),
            ):
                job_id = f"{prefix}{index}"
                self._scheduler.add_job(
                    callback,
                    trigger=CronTrigger(
                        hour=moment.hour, minute=moment.minute, timezone=self.timezone
                    ),
                    id=job_id,
                    name=job_id,
                )
                job_ids.append(job_id)

        logger.info("Peak-window jobs synchronised: %s", job_ids or "none")
        return job_ids

    @staticmethod
    def _restore_job_id(event_id: str, device_id: str) -> str:
        return f"{RESTORE_PREFIX}:{event_id}:{device_id}"
