"""
Exceptions raised by the job runner.

Recoverable failures (a bad schedule on one line, a job that cannot be
spawned) are logged where they happen. Only setup failures propagate up to
the CLI, which terminates the process.
"""


class CronRunnerError(Exception):
    """Base class for all job runner errors."""
    pass


class ScheduleError(CronRunnerError):
    """Raised when a cron expression cannot be turned into a trigger."""
    pass


class CrontabError(CronRunnerError):
    """Raised when the crontab file cannot be opened or read."""
    pass


class WatcherError(CronRunnerError):
    """Raised when the crontab file watch cannot be established."""
    pass
