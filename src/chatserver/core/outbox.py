"""
=============================================================================
OUTBOUND QUEUE + SINK WRITER
=============================================================================

Every session owns one outbound queue and one writer thread draining it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       Who writes to a socket?                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Reader thread A ──┐                                                │
    │   Reader thread B ──┼──► session.deliver(line) ──► queue.put(line)   │
    │   Shutdown        ──┘            (never blocks)                      │
    │                                                                      │
    │                        SinkWriter thread (exactly one)               │
    │                              │                                       │
    │                              └──► queue.get() ──► write_line()       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Why a queue instead of a lock around the socket?
- A broadcaster holding the membership lock must never wait on a slow
  peer's TCP window.
- Lines from one sender land in each recipient's queue in the order the
  sender published them, and a FIFO queue keeps that order on the wire.

Stopping uses the classic "poison pill": None in the queue means
"everything before me is written, now exit".

=============================================================================
"""

import queue
import logging
import threading
from enum import Enum
from typing import Optional

from .codec import LineWriter


logger = logging.getLogger(__name__)


class WriterState(Enum):
    """Writer thread states, for logging and tests."""
    IDLE = "idle"        # Waiting for a line
    BUSY = "busy"        # Writing a line
    FAILED = "failed"    # Socket write failed, thread exited
    STOPPED = "stopped"  # Poison pill received, thread exited


class SinkWriter(threading.Thread):
    """
    Writer thread that drains a session's outbound queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Writer Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for a line from the queue (blocking)                      │
    │   2. None? → poison pill, exit (STOPPED)                            │
    │   3. write_line() + flush                                           │
    │          └── OSError → mark FAILED, exit                            │
    │   4. Go back to step 1                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    The writer never tears the session down itself. A failed sink (a
    write error, or a full queue because the peer stopped reading) is
    reported through `failed`; deliver() then returns False and the
    broadcaster schedules the disconnect.
    """

    def __init__(self, writer: LineWriter, name: str, max_pending: int = 0):
        super().__init__(name=name, daemon=True)

        self._writer = writer
        # maxsize=0 means unbounded
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=max_pending)

        self.state = WriterState.IDLE
        self.lines_written = 0
        self.error: Optional[BaseException] = None

        # Set when a line was refused because the queue was full
        self.overflowed = False

    @property
    def failed(self) -> bool:
        return self.overflowed or self.state is WriterState.FAILED

    def put(self, line: str) -> bool:
        """
        Queue a line for writing. Never blocks.

        Returns:
            False if the queue is full. The writer then counts as failed:
            its peer has stopped reading.
        """
        try:
            self._queue.put_nowait(line)
            return True
        except queue.Full:
            if not self.overflowed:
                logger.warning(f"{self.name} outbound queue full ({self._queue.maxsize} lines)")
            self.overflowed = True
            return False

    def stop(self):
        """Queue the poison pill: flush what is queued, then exit."""
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except queue.Full:
                # Make room by dropping the oldest unsent line
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def run(self):
        logger.debug(f"{self.name} started")

        try:
            while True:
                line = self._queue.get()
                if line is None:
                    self.state = WriterState.STOPPED
                    break

                self.state = WriterState.BUSY
                try:
                    self._writer.write_line(line)
                except OSError as e:
                    self.error = e
                    self.state = WriterState.FAILED
                    logger.warning(f"{self.name} send failed: {e}")
                    break

                self.lines_written += 1
                self.state = WriterState.IDLE
        finally:
            self._writer.close()
            logger.debug(f"{self.name} exited after {self.lines_written} lines")
