"""
Tests for the fixed-capacity job output buffer.
"""

import threading

import pytest

from cronrunner.buffer import OutputBuffer, LOG_BUFFER_SIZE


class TestOutputBuffer:
    """Unit tests for OutputBuffer."""

    def setup_method(self):
        self.emitted = []
        self.buffer = OutputBuffer(self.emitted.append, capacity=16)

    def test_default_capacity_is_512_kib(self):
        buffer = OutputBuffer(lambda text: None)
        assert buffer.capacity == LOG_BUFFER_SIZE == 524288

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            OutputBuffer(lambda text: None, capacity=0)

    def test_append_accumulates_until_flush(self):
        assert self.buffer.append(b"one\n")
        assert self.buffer.append(b"two\n")
        assert self.buffer.size == 8
        assert self.emitted == []

        self.buffer.flush()
        assert self.emitted == ["one\ntwo"]
        assert self.buffer.size == 0

    def test_flush_on_empty_buffer_is_noop(self):
        self.buffer.flush()
        assert self.emitted == []

    def test_flush_trims_surrounding_whitespace(self):
        self.buffer.append(b"  padded  \n")
        self.buffer.flush()
        assert self.emitted == ["padded"]

    def test_oversized_message_is_dropped(self):
        assert not self.buffer.append(b"x" * 17)
        assert self.buffer.size == 0
        self.buffer.flush()
        assert self.emitted == []

    def test_oversized_message_keeps_existing_content(self):
        self.buffer.append(b"keep\n")
        assert not self.buffer.append(b"y" * 100)
        self.buffer.flush()
        assert self.emitted == ["keep"]

    def test_message_of_exact_capacity_fits(self):
        assert self.buffer.append(b"z" * 16)
        assert self.buffer.size == 16

    def test_overflow_flushes_previous_content_first(self):
        self.buffer.append(b"first line\n")  # 11 bytes
        self.buffer.append(b"second\n")  # would make 18 > 16

        assert self.emitted == ["first line"]
        assert self.buffer.size == 7

        self.buffer.flush()
        assert self.emitted == ["first line", "second"]

    def test_cursor_never_exceeds_capacity(self):
        for i in range(50):
            self.buffer.append(f"line {i}\n".encode())
            assert self.buffer.size <= self.buffer.capacity

    def test_invalid_utf8_is_replaced(self):
        self.buffer.append(b"bad \xff byte\n")
        self.buffer.flush()
        assert self.emitted == ["bad \ufffd byte"]

    def test_concurrent_append_and_flush_lose_nothing(self):
        emitted = []
        buffer = OutputBuffer(emitted.append, capacity=64)
        stop = threading.Event()

        def flush_loop():
            while not stop.is_set():
                buffer.flush()

        flusher = threading.Thread(target=flush_loop)
        flusher.start()
        try:
            for i in range(2000):
                buffer.append(f"{i}\n".encode())
        finally:
            stop.set()
            flusher.join()
        buffer.flush()

        lines = [line for chunk in emitted for line in chunk.split("\n")]
        assert lines == [str(i) for i in range(2000)]
