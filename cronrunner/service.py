"""
Core scheduler service using APScheduler.

Provides:
- SchedulerService: one set of cron triggers on a background scheduler
- ReloadController: rebuilds the whole job set from the crontab file

A reload never mutates a running scheduler. It stops the current service,
builds a new one from the file and starts that instead. Jobs already
running under the old service keep running until their command exits.
"""

import logging
import threading
from typing import Optional, Dict, Any, List

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_MISSED,
    EVENT_JOB_MAX_INSTANCES
)

from cronrunner.config import RunnerConfig
from cronrunner.crontab import CrontabParser
from cronrunner.errors import ScheduleError, CrontabError
from cronrunner.jobs import Job

logger = logging.getLogger(__name__)

# Crontab day-of-week numbers; 0 and 7 are both Sunday
DAY_NAMES = ['sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun']


def translate_day_of_week(expr: str) -> str:
    """
    Translate a crontab day-of-week field into APScheduler syntax.

    APScheduler numbers weekdays from Monday (0) while crontab numbers
    them from Sunday (0 or 7), so numeric values are rewritten as day
    names. Names and '*' are passed through unchanged.

    Args:
        expr: Crontab day-of-week field (e.g. "1-5", "0,6", "*/2", "mon")

    Returns:
        Equivalent APScheduler day_of_week expression

    Raises:
        ScheduleError: If a numeric value or step is invalid
    """
    if expr == '?':
        return '*'
    return ",".join(_translate_day_of_week_part(part) for part in expr.split(","))


def _translate_day_of_week_part(part: str) -> str:
    if not any(c.isdigit() for c in part):
        return part

    base, _, step_text = part.partition("/")
    try:
        step = int(step_text) if step_text else 1
        if base == '*':
            start, end = 0, 6
        elif '-' in base:
            first, last = base.split("-", 1)
            start, end = int(first), int(last)
        else:
            start = int(base)
            end = 6 if step_text else start
    except ValueError as e:
        raise ScheduleError(f"Invalid day-of-week value '{part}'") from e

    if step <= 0:
        raise ScheduleError(f"Invalid day-of-week step in '{part}'")
    if not (0 <= start <= 7 and 0 <= end <= 7) or start > end:
        raise ScheduleError(f"Day-of-week out of range in '{part}'")

    days = []
    for value in range(start, end + 1, step):
        if DAY_NAMES[value] not in days:
            days.append(DAY_NAMES[value])
    return ",".join(days)


def dispatch(job: Job) -> threading.Thread:
    """
    Start one run of a job on its own thread and return immediately.

    The scheduler's pool workers only hand runs off, so a command that
    never exits cannot hold a worker and starve the other jobs.
    """
    runner = threading.Thread(target=job.run, name=f"job-{job.id[:8]}", daemon=True)
    runner.start()
    return runner


class SchedulerService:
    """
    One generation of cron triggers.

    Uses an APScheduler BackgroundScheduler with an in-memory job store.
    Every fire starts a separate run thread, so concurrent runs never
    block each other and the scheduler never waits for a job to finish.
    """

    def __init__(
        self,
        max_workers: int = 20,
        misfire_grace_time: int = 60,
        timezone: Optional[str] = None
    ):
        """
        Initialize scheduler service.

        Args:
            max_workers: Pool size for handing fired runs off to their threads
            misfire_grace_time: Seconds a late run is still allowed to start
            timezone: Timezone for cron triggers (None = local time)
        """
        self.timezone = timezone
        self._registrations: List[tuple] = []

        executors = {
            'default': ThreadPoolExecutor(max_workers)
        }

        job_defaults = {
            'coalesce': True,
            'misfire_grace_time': misfire_grace_time
        }

        scheduler_kwargs = {'executors': executors, 'job_defaults': job_defaults}
        if timezone:
            scheduler_kwargs['timezone'] = timezone
        self.scheduler = BackgroundScheduler(**scheduler_kwargs)

        self._setup_event_listeners()

    @classmethod
    def from_config(cls, config: RunnerConfig) -> 'SchedulerService':
        return cls(
            max_workers=config.max_workers,
            misfire_grace_time=config.misfire_grace_time,
            timezone=config.timezone
        )

    def _setup_event_listeners(self):
        """Setup APScheduler event listeners for logging."""

        def job_error_listener(event):
            logger.error(
                f"Job '{event.job_id}' raised exception: {event.exception}\n{event.traceback}"
            )

        def job_missed_listener(event):
            logger.warning(f"Job '{event.job_id}' missed scheduled run time")

        def job_max_instances_listener(event):
            logger.warning(
                f"Job '{event.job_id}' skipped: maximum number of running instances reached"
            )

        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)
        self.scheduler.add_listener(job_max_instances_listener, EVENT_JOB_MAX_INSTANCES)

    def _build_trigger(self, schedule: str) -> BaseTrigger:
        """
        Build a trigger from a six-field schedule.

        When both day-of-month and day-of-week are restricted, a day
        matching either one fires, as in cron. APScheduler requires both,
        so that case becomes an OrTrigger of two cron triggers.

        Args:
            schedule: Cron expression with a leading seconds field
                (e.g., "0 */5 * * * *")

        Raises:
            ScheduleError: If the expression is malformed
        """
        parts = schedule.split()
        if len(parts) != 6:
            raise ScheduleError(f"Expected 6 fields, found {len(parts)}: {schedule!r}")

        second, minute, hour, day, month, day_of_week = parts
        day = '*' if day == '?' else day
        day_of_week = translate_day_of_week(day_of_week)

        def cron(day, day_of_week):
            return CronTrigger(
                second=second,
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
                timezone=self.timezone
            )

        try:
            if day != '*' and day_of_week != '*':
                return OrTrigger([cron(day, '*'), cron('*', day_of_week)])
            return cron(day, day_of_week)
        except (ValueError, TypeError) as e:
            raise ScheduleError(str(e)) from e

    def add_job(self, job: Job):
        """
        Register a job under its cron schedule.

        Args:
            job: Job to fire on schedule

        Raises:
            ScheduleError: If the job's schedule is malformed
        """
        trigger = self._build_trigger(job.schedule)
        aps_job = self.scheduler.add_job(dispatch, trigger, args=[job], name=job.command)
        self._registrations.append((aps_job, job))

    @property
    def jobs(self) -> List[Job]:
        return [job for _, job in self._registrations]

    def get_jobs(self) -> List[Dict[str, Any]]:
        """
        Get list of all registered jobs.

        Returns:
            List of job information dictionaries
        """
        jobs = []
        for aps_job, job in self._registrations:
            next_run = getattr(aps_job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'command': job.command,
                'args': job.args,
                'schedule': job.schedule,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(aps_job.trigger)
            })
        return jobs

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Start firing the registered triggers."""
        if self.scheduler.running:
            logger.warning("Scheduler is already running")
            return

        self.scheduler.start()
        logger.info(f"Scheduler started with {len(self._registrations)} job(s)")

    def stop(self):
        """
        Stop firing triggers.

        Jobs that are already executing are neither interrupted nor
        waited for.
        """
        if not self.scheduler.running:
            logger.debug("Scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    def __repr__(self):
        state = "running" if self.running else "stopped"
        return f"SchedulerService(jobs={len(self._registrations)}, state={state})"


class ReloadController:
    """
    Rebuilds the scheduler from the crontab file.

    Owns the authoritative SchedulerService. Every reload replaces it with
    a new instance so no registration survives from a previous generation.
    """

    def __init__(self, config: RunnerConfig, service: Optional[SchedulerService] = None):
        self.config = config
        self.current = service
        # Reentrant: a signal handler may shut down in the middle of a reload
        self._lock = threading.RLock()

    def reload(self) -> SchedulerService:
        """
        Stop the current scheduler and start a new one from the crontab file.

        Returns:
            The newly started SchedulerService

        Raises:
            CrontabError: If the crontab file cannot be read
        """
        with self._lock:
            if self.current is not None:
                self.current.stop()

            service = SchedulerService.from_config(self.config)
            parser = CrontabParser(service, self.config)

            try:
                with open(self.config.crontab, 'r', encoding='utf-8', errors='replace') as f:
                    jobs = parser.parse_lines(f)
            except OSError as e:
                raise CrontabError(f"Cannot read crontab {self.config.crontab}: {e}") from e

            service.start()
            self.current = service

            logger.info(f"Loaded {len(jobs)} job(s) from {self.config.crontab}")
            return service

    def shutdown(self):
        """Stop the current scheduler without waiting for running jobs."""
        with self._lock:
            if self.current is not None:
                self.current.stop()
