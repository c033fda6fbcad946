"""
Crontab file watching with watchdog.

The parent directory is observed and events are filtered down to the
crontab path, so editors that replace the file (write to a temporary
file, then rename) are picked up too. Bursts of events are debounced into
a single reload.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from cronrunner.errors import CrontabError, WatcherError

logger = logging.getLogger(__name__)


class DebouncedHandler(FileSystemEventHandler):
    """Calls back once per burst of write events on a single path."""

    def __init__(self, path: Path, callback: Callable[[], None], debounce: float = 0.5):
        super().__init__()
        self.path = path
        self.callback = callback
        self.debounce = debounce
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def _matches(self, event) -> bool:
        if event.is_directory:
            return False
        paths = [event.src_path, getattr(event, 'dest_path', '')]
        return any(p and Path(os.fsdecode(p)).absolute() == self.path for p in paths)

    def on_modified(self, event):
        if self._matches(event):
            self._schedule(event)

    def on_created(self, event):
        if self._matches(event):
            self._schedule(event)

    def on_moved(self, event):
        if self._matches(event):
            self._schedule(event)

    def _schedule(self, event):
        logger.debug(f"{event.event_type} event for {self.path}")
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce, self.callback)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class FileWatcher:
    """
    Watches the crontab file and triggers a reload on every change.

    Errors raised by a reload are logged and watching continues, except
    for CrontabError, which is fatal: it is stored in ``fatal_error`` and
    releases ``wait()`` so the caller can terminate.
    """

    def __init__(self, path: str, on_change: Callable[[], object], debounce: float = 0.5):
        """
        Initialize file watcher.

        Args:
            path: Crontab file to watch
            on_change: Called (with no arguments) after the file changed
            debounce: Quiet period in seconds before on_change is called
        """
        self.path = Path(path).expanduser().absolute()
        self.on_change = on_change
        self.fatal_error: Optional[BaseException] = None

        self._stopped = threading.Event()
        self._handler = DebouncedHandler(self.path, self._handle_change, debounce)
        self._observer: Optional[Observer] = None

    def start(self):
        """
        Start watching.

        Raises:
            WatcherError: If the watch cannot be established
        """
        observer = Observer()
        try:
            observer.schedule(self._handler, str(self.path.parent), recursive=False)
            observer.start()
        except OSError as e:
            raise WatcherError(f"Cannot watch {self.path}: {e}") from e

        self._observer = observer
        logger.info(f"Watching {self.path} for changes")

    def _handle_change(self):
        logger.info(f"crontab updated: {self.path}")
        try:
            self.on_change()
        except CrontabError as e:
            logger.error(f"Reload failed: {e}")
            self.fatal_error = e
            self._stopped.set()
        except Exception as e:
            logger.error(f"Error while handling change of {self.path}: {e}", exc_info=True)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the watcher is stopped or a fatal error occurs.

        Returns:
            True if stopped, False on timeout
        """
        return self._stopped.wait(timeout)

    def stop(self):
        """Stop watching and drop any pending reload."""
        self._handler.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._stopped.set()
        logger.info(f"Stopped watching {self.path}")
