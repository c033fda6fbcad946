"""
Crontab file parsing.

Each non-comment line has the form::

    <minute> <hour> <day-of-month> <month> <day-of-week> <command> [args]

Everything after the command is kept as one opaque argument string.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from cronrunner.config import RunnerConfig
from cronrunner.errors import ScheduleError
from cronrunner.jobs import Job

logger = logging.getLogger(__name__)

# minute, hour, day-of-month, month, day-of-week
SCHEDULE_FIELDS = 5
# schedule fields + command + argument string
MAX_TOKENS = 7

_WHITESPACE = re.compile(r"[ \t]+")


@dataclass(frozen=True)
class CrontabEntry:
    """One parsed crontab line."""
    schedule_fields: Tuple[str, ...]
    command: str
    args: str = ""

    @property
    def schedule(self) -> str:
        """Six-field schedule with a leading seconds field of 0."""
        return "0 " + " ".join(self.schedule_fields)


def parse_line(line: str) -> Optional[CrontabEntry]:
    """
    Parse a single crontab line.

    Args:
        line: Raw line from the crontab file

    Returns:
        CrontabEntry, or None for blank, comment and incomplete lines
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    line = _WHITESPACE.sub(" ", line)
    tokens = line.split(" ", MAX_TOKENS - 1)
    if len(tokens) < SCHEDULE_FIELDS:
        return None

    if len(tokens) == SCHEDULE_FIELDS:
        logger.warning(f"Ignoring crontab line without a command: {line!r}")
        return None

    return CrontabEntry(
        schedule_fields=tuple(tokens[:SCHEDULE_FIELDS]),
        command=tokens[SCHEDULE_FIELDS],
        args=tokens[SCHEDULE_FIELDS + 1] if len(tokens) == MAX_TOKENS else ""
    )


class CrontabParser:
    """Turns crontab lines into Jobs registered with a scheduler service."""

    def __init__(self, service, config: Optional[RunnerConfig] = None):
        """
        Initialize parser.

        Args:
            service: SchedulerService receiving the parsed jobs
            config: Runner configuration used to build jobs
        """
        self.service = service
        self.config = config or RunnerConfig()

    def build_job(self, entry: CrontabEntry) -> Job:
        return Job(
            command=entry.command,
            args=entry.args,
            schedule=entry.schedule,
            executer=self.config.executer,
            shell=self.config.shell,
            flush_interval=self.config.flush_interval,
            buffer_size=self.config.buffer_size
        )

    def parse(self, line: str) -> Optional[Job]:
        """
        Parse a line and register the resulting job.

        Returns:
            The registered Job, or None if the line yields no job
        """
        entry = parse_line(line)
        if entry is None:
            return None

        job = self.build_job(entry)
        try:
            self.service.add_job(job)
        except ScheduleError as e:
            job.logger.error(
                f"unable to parse schedule {job.schedule!r} for command {job.command!r} "
                f"and args {job.args!r}: {e}"
            )
            return None

        job.logger.info(f"job created (schedule={job.schedule!r}, args={job.args!r})")
        return job

    def parse_lines(self, lines: Iterable[str]) -> List[Job]:
        """Parse every line, returning the jobs that were registered."""
        jobs = []
        for line in lines:
            job = self.parse(line)
            if job is not None:
                jobs.append(job)
        return jobs
