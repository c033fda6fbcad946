"""
Crontab Job Runner

Runs the commands of a crontab file on their cron schedules and reloads
the whole job set whenever the file changes on disk.

Main Components:
- CrontabParser: turns crontab lines into jobs
- Job / OutputBuffer: command execution with buffered output logging
- SchedulerService / ReloadController: APScheduler triggers, rebuilt on reload
- FileWatcher: watchdog-based crontab change detection
"""

__version__ = "0.1.0"

from cronrunner.buffer import OutputBuffer
from cronrunner.config import RunnerConfig, LoggingConfig
from cronrunner.crontab import CrontabEntry, CrontabParser, parse_line
from cronrunner.errors import CronRunnerError, ScheduleError, CrontabError, WatcherError
from cronrunner.jobs import Job
from cronrunner.service import SchedulerService, ReloadController
from cronrunner.watcher import FileWatcher

__all__ = [
    "OutputBuffer",
    "RunnerConfig",
    "LoggingConfig",
    "CrontabEntry",
    "CrontabParser",
    "parse_line",
    "CronRunnerError",
    "ScheduleError",
    "CrontabError",
    "WatcherError",
    "Job",
    "SchedulerService",
    "ReloadController",
    "FileWatcher",
]
