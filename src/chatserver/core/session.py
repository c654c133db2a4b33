"""
=============================================================================
SESSION
=============================================================================

One Session per accepted connection. It owns the client socket and the
two threads that use it:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           Session "Client-3"                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   socket ──┬──► LineReader ──► reader thread (_read_loop)            │
    │            │                        │                                │
    │            │                        ├── "/..."  → CommandInterpreter │
    │            │                        │               └─► deliver()    │
    │            │                        └── chat    → Broadcaster        │
    │            │                                                         │
    │            └──◄ LineWriter ◄── SinkWriter thread ◄── outbound queue  │
    │                                                          ▲           │
    │                                          deliver(line) ──┘           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    NEW ──start()──► ACTIVE ──disconnect()──► CLOSING ──► CLOSED

    start()        queue the greeting, start writer + reader threads
    disconnect()   runs at most once, from whichever thread gets there
                   first (reader on EOF, broadcaster on sink failure,
                   shutdown supervisor):

                   1. alive = False, no more lines accepted
                   2. remove from the registry
                   3. poison pill → writer flushes what is queued
                   4. shutdown + close the socket (unblocks the reader)
                   5. on_gone(session) → server logs + departure notice

=============================================================================
READER LOOP
=============================================================================

    for each line:
        blank                          → ignored
        longer than the limit          → private "Message too long"
        "<name> joined the chat"       → remember name (still relayed)
        starts with "/"                → private command reply
        anything else                  → "Client: <line>" to the others

=============================================================================
"""

import socket
import logging
import threading
from enum import Enum
from typing import Callable, Optional, TYPE_CHECKING

from ..chat import protocol
from ..config import DEFAULT_MAX_MESSAGE_LENGTH, DEFAULT_MAX_PENDING_LINES
from .codec import LineReader, LineWriter
from .outbox import SinkWriter
from .socket_server import close_socket

if TYPE_CHECKING:
    from ..chat.broadcaster import Broadcaster
    from ..chat.commands import CommandInterpreter
    from ..chat.registry import Registry


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    NEW = "new"          # Constructed, threads not started
    ACTIVE = "active"    # Greeting queued, reader running
    CLOSING = "closing"  # disconnect() in progress
    CLOSED = "closed"    # Socket closed, deregistered


class Session:
    """
    Server-side state and threads for one client connection.

    Attributes:
        id: "Client-<N>", assigned by the registry.
        address: Peer (ip, port), for logs only.
        display_name: Name announced by the client, or None.
        state: Current lifecycle state.
        messages_received: Non-blank lines read from the client.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: tuple[str, int],
        session_id: str,
        registry: "Registry",
        broadcaster: "Broadcaster",
        commands: "CommandInterpreter",
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        encoding: str = "utf-8",
        drain_timeout: float = 5.0,
        max_pending_lines: int = DEFAULT_MAX_PENDING_LINES,
        on_gone: Optional[Callable[["Session"], None]] = None,
    ):
        self.socket = sock
        self.address = address
        self.id = session_id

        self.display_name: Optional[str] = None
        self.state = SessionState.NEW
        self.messages_received = 0

        self._registry = registry
        self._broadcaster = broadcaster
        self._commands = commands
        self._max_message_length = max_message_length
        self._drain_timeout = drain_timeout
        self._on_gone = on_gone

        self._alive = True
        self._lock = threading.Lock()

        self._reader = LineReader(sock, encoding)
        self._line_writer = LineWriter(sock, encoding)
        self._writer = SinkWriter(
            self._line_writer,
            name=f"Writer-{session_id}",
            max_pending=max_pending_lines,
        )
        self._thread = threading.Thread(
            target=self._read_loop,
            name=f"Session-{session_id}",
            daemon=True,
        )

    def __repr__(self) -> str:
        return f"<Session {self.id} {self.state.value} {self.client_ip}:{self.client_port}>"

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    # ─────────────────────────────────────────────────────────────────────
    # PUBLIC CONTRACT
    # ─────────────────────────────────────────────────────────────────────

    def start(self):
        """
        Queue the greeting and start the writer and reader threads.

        Admission calls this while holding the registry lock, right
        after insert(), so the greeting is always the first thing in the
        outbound queue.
        """
        for line in protocol.greeting(self.id, self._registry.active_count):
            self.deliver(line)

        self.state = SessionState.ACTIVE
        self._writer.start()
        self._thread.start()

    def deliver(self, line: str) -> bool:
        """
        Queue a line for this client.

        Returns:
            True if queued, False if the session is gone, its socket has
            failed, or its outbound queue is full.
        """
        with self._lock:
            if not self._alive or self._writer.failed:
                return False
            return self._writer.put(line)

    def disconnect(self):
        """
        Tear the session down. Safe to call any number of times from any
        thread; only the first call does anything.
        """
        with self._lock:
            if not self._alive:
                return
            self._alive = False
            self.state = SessionState.CLOSING
            self._writer.stop()

        self._registry.remove(self.id)

        current = threading.current_thread()

        # Let the writer flush lines accepted while we were alive
        if self._writer.is_alive() and current is not self._writer:
            self._writer.join(self._drain_timeout)
        if not self._writer.is_alive():
            self._line_writer.close()

        close_socket(self.socket)

        if not self._thread.is_alive():
            self._reader.close()

        self.state = SessionState.CLOSED

        if self._on_gone is not None:
            self._on_gone(self)

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the reader thread to exit.

        Returns:
            True if the reader has exited (or never started).
        """
        if self._thread.is_alive():
            self._thread.join(timeout)
        return not self._thread.is_alive()

    # ─────────────────────────────────────────────────────────────────────
    # READER
    # ─────────────────────────────────────────────────────────────────────

    def _read_loop(self):
        try:
            self._broadcaster.publish(protocol.joined(self.id), origin=self)

            while self._alive:
                line = self._reader.read_line()
                if line is None:
                    break
                self.handle_line(line)

        except OSError as e:
            if self._alive:
                logger.warning(f"Client {self.id} connection error: {e}")

        except Exception as e:
            logger.exception(f"Client {self.id} handler error: {e}")

        finally:
            self.disconnect()
            self._reader.close()

    def handle_line(self, line: str):
        """
        Route one line read from the client.

        Args:
            line: The line without its terminator, whitespace untouched.
        """
        if not line.strip():
            return

        self.messages_received += 1

        # Raw length: surrounding whitespace counts
        if len(line) > self._max_message_length:
            self.deliver(protocol.message_too_long(self._max_message_length))
            return

        if self.display_name is None:
            name = protocol.parse_join_announcement(line)
            if name:
                self.display_name = name
                logger.info(f"{self.id} identified as: {name}")

        if protocol.is_command(line):
            for reply in self._commands.execute(line):
                self.deliver(reply)
            return

        logger.debug(f"[{self.id}] {line}")
        self._broadcaster.publish(protocol.chat_line(line), origin=self)
