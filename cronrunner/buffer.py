"""
Fixed-capacity output buffer for job stdout.

Lines read from a running command are accumulated here and emitted as a
single log record when the buffer is flushed, either periodically, right
before an append that would overflow, or when the command exits.
"""

import threading
from typing import Callable

# 512 KiB
LOG_BUFFER_SIZE = 1024 * 512


class OutputBuffer:
    """
    Byte accumulator with a write cursor and a flush callback.

    The cursor never exceeds the capacity and a message is either stored
    whole or not at all. All access goes through a lock so the thread
    reading the command output and the periodic flusher can share it.
    """

    def __init__(self, emit: Callable[[str], None], capacity: int = LOG_BUFFER_SIZE):
        """
        Initialize output buffer.

        Args:
            emit: Called with the trimmed buffer content on every flush
            capacity: Buffer size in bytes (default: 512 KiB)
        """
        if capacity <= 0:
            raise ValueError(f"Buffer capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._emit = emit
        self._buffer = bytearray(capacity)
        self._pos = 0
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of bytes currently buffered."""
        with self._lock:
            return self._pos

    def append(self, message: bytes) -> bool:
        """
        Append a message, flushing first if it would not fit.

        Args:
            message: Raw bytes to store (usually one line of output)

        Returns:
            True if the message was stored, False if it alone exceeds
            the buffer capacity and was dropped
        """
        length = len(message)
        if length > self.capacity:
            return False

        with self._lock:
            if self._pos + length > self.capacity:
                self._flush_locked()
            self._buffer[self._pos:self._pos + length] = message
            self._pos += length
        return True

    def flush(self):
        """Emit the buffered content and reset the cursor."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self):
        if self._pos == 0:
            return

        content = bytes(self._buffer[:self._pos]).decode('utf-8', errors='replace').strip()
        self._pos = 0
        self._emit(content)

    def __repr__(self):
        return f"OutputBuffer(size={self._pos}, capacity={self.capacity})"
