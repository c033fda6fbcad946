"""
Command execution for scheduled jobs.

A Job is the unit the scheduler fires. Each run resolves the command,
spawns it, streams stdout into an OutputBuffer owned by the run and logs every
stderr line as it arrives. The buffer is flushed periodically while the
command runs and once more when it exits.
"""

import hashlib
import logging
import shutil
import subprocess
import threading
from typing import List

from cronrunner.buffer import OutputBuffer, LOG_BUFFER_SIZE
from cronrunner.config import DEFAULT_SHELL, DIRECT_EXECUTERS, SHELL_EXECUTER

logger = logging.getLogger(__name__)


def job_id_for(command: str) -> str:
    """Identity of a job: SHA-1 of the command text alone."""
    return hashlib.sha1(command.encode('utf-8')).hexdigest()


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the job context and attaches it as extra fields."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        return f"[{self.extra['job_id'][:8]}:{self.extra['command']}] {msg}", kwargs


class Job:
    """
    A schedulable command from one crontab line.

    Jobs are created fresh on every reload. A run that is in progress when
    its scheduler is replaced keeps going until the command exits.
    """

    def __init__(
        self,
        command: str,
        args: str,
        schedule: str,
        executer: str = SHELL_EXECUTER,
        shell: str = DEFAULT_SHELL,
        flush_interval: float = 1.0,
        buffer_size: int = LOG_BUFFER_SIZE
    ):
        """
        Initialize job.

        Args:
            command: Command to execute (first token after the schedule)
            args: Argument string, kept verbatim
            schedule: Six-field cron schedule (seconds first)
            executer: 'go' or 'direct' for argv invocation, otherwise shell invocation
            shell: Shell interpreter used with '-c'
            flush_interval: Seconds between periodic stdout flushes
            buffer_size: Output buffer capacity in bytes
        """
        self.id = job_id_for(command)
        self.command = command
        self.args = args
        self.schedule = schedule
        self.executer = executer
        self.shell = shell
        self.flush_interval = flush_interval
        self.buffer_size = buffer_size

        self.logger = JobLogAdapter(logger, {
            'job_id': self.id,
            'schedule': schedule,
            'command': command,
        })
        # Runs may overlap; each one owns its buffer
        self._active_runs = 0
        self._runs_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """True while at least one run of this job is in progress."""
        with self._runs_lock:
            return self._active_runs > 0

    def _track_run(self, delta: int):
        with self._runs_lock:
            self._active_runs += delta

    def build_invocation(self) -> List[str]:
        """
        Build the argv used to spawn the command.

        Returns:
            Argument vector for subprocess.Popen
        """
        if self.executer in DIRECT_EXECUTERS:
            return [self.command] + [a for a in self.args.split(" ") if a]
        return [self.shell, "-c", f"{self.command} {self.args}"]

    def run(self):
        """
        Execute the command once.

        Called on the thread the scheduler starts for each fire. All failures are
        logged and scoped to this run.
        """
        if shutil.which(self.command) is None:
            self.logger.error(f"executable file not found in PATH: {self.command}")
            return

        argv = self.build_invocation()
        try:
            process = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE
            )
        except OSError as e:
            self.logger.error(f"Failed to start command: {e}")
            return

        self._track_run(1)
        buffer = OutputBuffer(self._emit_output, capacity=self.buffer_size)
        done = threading.Event()
        flusher = threading.Thread(
            target=self._flush_periodically,
            args=(buffer, done),
            name=f"flush-{self.id[:8]}",
            daemon=True
        )
        stderr_reader = threading.Thread(
            target=self._read_stderr,
            args=(process.stderr,),
            name=f"stderr-{self.id[:8]}",
            daemon=True
        )

        try:
            flusher.start()
            stderr_reader.start()

            self._read_stdout(process.stdout, buffer)
            stderr_reader.join()

            returncode = process.wait()
            if returncode != 0:
                self.logger.error(f"exit status {returncode}")
        finally:
            done.set()
            flusher.join()
            buffer.flush()
            process.stdout.close()
            process.stderr.close()
            self._track_run(-1)

    def _read_stdout(self, stream, buffer: OutputBuffer):
        try:
            for line in stream:
                message = line.rstrip(b"\r\n") + b"\n"
                if not buffer.append(message):
                    self.logger.warning("message received was too large")
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed reading command std output: {e}")

    def _read_stderr(self, stream):
        try:
            for line in stream:
                text = line.decode('utf-8', errors='replace').rstrip("\r\n")
                self.logger.warning(f"command std error: {text}", extra={'output': text})
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed reading command std error: {e}")

    def _flush_periodically(self, buffer: OutputBuffer, done: threading.Event):
        while not done.wait(self.flush_interval):
            buffer.flush()

    def _emit_output(self, output: str):
        self.logger.info(f"command std output: {output}", extra={'output': output})

    def __repr__(self):
        return f"Job(id={self.id[:8]}, schedule={self.schedule!r}, command={self.command!r}, args={self.args!r})"
