"""
=============================================================================
CHAT SERVER
=============================================================================

The orchestrator that ties the components together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CHAT SERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │   Registry   │    │   Commands   │        │
    │    │  (accept)    │    │ (membership) │    │  (/help ...) │        │
    │    └──────┬───────┘    └──────┬───────┘    └──────────────┘        │
    │           │                   │                                     │
    │           ▼                   ▼                                     │
    │    ┌──────────────┐    ┌──────────────┐                            │
    │    │   Session    │───►│ Broadcaster  │                            │
    │    │ (per client) │    │  (fan-out)   │                            │
    │    └──────────────┘    └──────────────┘                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── SocketServer accepts, calls _handle_connection()

    2. ADMISSION
       ├── registry.reserve()  → CapacityExhausted? reject line + close
       └── Session(...)        → insert + start under the registry lock

    3. CHATTING (session reader thread)
       └── lines → commands (private) or broadcast (everyone else)

    4. DEPARTURE
       └── session.disconnect() → _on_session_gone() → "left the chat"

=============================================================================
SHUTDOWN: RUNNING → DRAINING → STOPPED
=============================================================================

    SIGTERM / SIGINT / shutdown()
       │
       ├── accept loop exits (within one accept timeout)
       ├── DRAINING: no admissions, no departure notices
       ├── broadcast "SERVER: Server is shutting down..."
       ├── disconnect every session (each flushes the farewell first)
       ├── wait for reader threads
       └── STOPPED: "Server stopped."

Without the DRAINING state, every session closing during shutdown
would broadcast its departure to peers that are closing too.

=============================================================================
"""

import sys
import time
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Optional

from .config import ServerConfig
from .errors import CapacityExhausted
from .core import SocketServer, Session, close_socket, encode_line
from .chat import Registry, Broadcaster, CommandInterpreter, protocol


logger = logging.getLogger(__name__)


# Half-close grace period for rejected connections
REJECT_LINGER = 0.2


class ServerState(Enum):
    """Server lifecycle states."""
    NEW = "new"            # Constructed, not yet accepting
    RUNNING = "running"    # Accepting and relaying
    DRAINING = "draining"  # Shutdown in progress
    STOPPED = "stopped"    # All sessions closed


class ChatServer:
    """
    Multi-user line chat server.

    =========================================================================
    USAGE
    =========================================================================

        server = ChatServer(ServerConfig(port=1234, max_clients=50))
        server.run()    # Blocks until SIGTERM/SIGINT or shutdown()

    From another thread (tests):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(5.0)
        ...
        server.shutdown()
        thread.join()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self.start_time = datetime.now()

        self._registry = Registry(self.config.max_clients)
        self._broadcaster = Broadcaster(self._registry)
        self._commands = CommandInterpreter(self._registry, started_at=self.start_time)

        self._socket_server = SocketServer(self.config)

        self._state = ServerState.NEW
        self._stopped = threading.Event()
        self._listened = False

        self.connections_rejected = 0

    # ─────────────────────────────────────────────────────────────────────
    # PROPERTIES
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is ServerState.RUNNING

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def broadcaster(self) -> Broadcaster:
        return self._broadcaster

    @property
    def commands(self) -> CommandInterpreter:
        return self._commands

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); useful when the configured port is 0."""
        return self._socket_server.address

    @property
    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "active": self._registry.active_count,
            "accepted": self._socket_server.connections_accepted,
            "rejected": self.connections_rejected,
            "uptime": self._commands.uptime(),
        }

    # ─────────────────────────────────────────────────────────────────────
    # RUN / STOP
    # ─────────────────────────────────────────────────────────────────────

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            OSError: If the listening address cannot be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()

        self._state = ServerState.RUNNING

        try:
            self._socket_server.start(self._handle_connection, on_listening=self._on_listening)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            if self._listened:
                self._shutdown()
            else:
                # Never bound: no sessions to drain
                self._state = ServerState.STOPPED
                self._stopped.set()

    def shutdown(self):
        """Ask the server to stop. Returns immediately; run() does the work."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting connections."""
        return self._socket_server.wait_until_listening(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown has finished."""
        return self._stopped.wait(timeout)

    def _setup_logging(self):
        """
        Configure logging based on config.

        Operator events (INFO and below) go to stdout, problems (WARNING
        and above) to stderr. If the host application already configured
        the root logger, only our package level is set.
        """
        level = self.config.log_level_value

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=[stdout_handler, stderr_handler],
        )

        logging.getLogger("chatserver").setLevel(level)

    def _on_listening(self):
        self._listened = True
        self._print_startup_banner()

    def _print_startup_banner(self):
        started = self.start_time.strftime(protocol.TIME_FORMAT)
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print("║  Chat server starting                                        ║")
        print(f"║  Port: {self.address[1]:<54}║")
        print(f"║  Max clients allowed: {self.config.max_clients:<39}║")
        print(f"║  Start time: {started:<48}║")
        print("║  Press Ctrl+C to stop                                        ║")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    def _shutdown(self):
        """
        Graceful shutdown.

        1. Stop accepting (the accept loop has already returned)
        2. DRAINING: broadcast the farewell
        3. Disconnect every session
        4. Wait for reader threads (bounded by drain_timeout)
        5. STOPPED
        """
        if self._state is ServerState.STOPPED:
            return

        logger.info("Server shutting down gracefully...")
        self._state = ServerState.DRAINING
        self._socket_server.shutdown()

        self._broadcaster.announce(protocol.SHUTDOWN_NOTICE)

        sessions = self._registry.snapshot()
        for session in sessions:
            session.disconnect()

        deadline = time.monotonic() + self.config.drain_timeout
        for session in sessions:
            remaining = max(0.0, deadline - time.monotonic())
            if not session.join(remaining):
                logger.warning(f"Client {session.id} reader did not exit in time")

        self._state = ServerState.STOPPED
        self._stopped.set()
        logger.info("Server stopped.")

    # ─────────────────────────────────────────────────────────────────────
    # ADMISSION
    # ─────────────────────────────────────────────────────────────────────

    def _handle_connection(self, sock, address: tuple[str, int]):
        """
        Admit or reject one accepted connection (accept thread).

        Args:
            sock: The client socket.
            address: Peer (ip, port).
        """
        if self._state is not ServerState.RUNNING:
            close_socket(sock)
            return

        try:
            session_id = self._registry.reserve()
        except CapacityExhausted:
            self.connections_rejected += 1
            logger.warning(
                f"Client limit reached. Rejecting connection from: {address[0]}:{address[1]} "
                f"({self.connections_rejected} rejected so far)"
            )
            # The rejection lingers; keep it off the accept thread
            threading.Thread(
                target=self._reject,
                args=(sock,),
                name=f"Reject-{address[1]}",
                daemon=True,
            ).start()
            return

        try:
            session = Session(
                sock,
                address,
                session_id,
                registry=self._registry,
                broadcaster=self._broadcaster,
                commands=self._commands,
                max_message_length=self.config.max_message_length,
                encoding=self.config.encoding,
                drain_timeout=self.config.drain_timeout,
                max_pending_lines=self.config.max_pending_lines,
                on_gone=self._on_session_gone,
            )
        except Exception:
            self._registry.release(session_id)
            raise

        # Insert + greeting atomically: no broadcast can overtake the greeting
        with self._registry.lock:
            total = self._registry.insert(session_id, session)
            try:
                session.start()
            except Exception:
                session.disconnect()
                raise

        logger.info(f"New client connected: {address[0]}:{address[1]} [ID: {session_id}]")
        logger.info(f"Total clients: {total}")

    def _reject(self, sock):
        try:
            sock.sendall(encode_line(protocol.capacity_rejected(), self.config.encoding))
        except OSError as e:
            logger.warning(f"Could not send rejection: {e}")
        close_socket(sock, linger=REJECT_LINGER)

    def _on_session_gone(self, session: Session):
        """Called once per session after it has been deregistered and closed."""
        logger.info(
            f"Client {session.id} disconnected. "
            f"Total clients: {self._registry.active_count}"
        )

        # No departure storm while everyone is being closed
        if self._state is ServerState.RUNNING:
            self._broadcaster.publish(protocol.departed(session.id, session.display_name))


def create_server(config: Optional[ServerConfig] = None) -> ChatServer:
    """
    Create a chat server.

    Example:
        server = create_server(ServerConfig(port=4000))
        server.run()
    """
    return ChatServer(config)
