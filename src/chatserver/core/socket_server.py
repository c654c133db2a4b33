"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket: create, bind, listen, accept,
and the signal handling that ends the accept loop. Everything chat
specific happens in the connection handler it is given.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a socket file descriptor
    2. bind()      Associate the socket with an IP:PORT
    3. listen()    Mark socket as a "listening" socket
    4. accept()    Wait for and accept an incoming connection
                   └─ Returns a NEW socket just for that client
    5. close()     Release the socket resources

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:
─────────────
Lets a restarted server bind immediately instead of waiting out
TIME_WAIT. It does NOT let two live servers share a port, so a second
instance still fails to bind, which is what we want.

TCP_NODELAY:
────────────
Disables Nagle's algorithm. Chat lines are tiny and should leave as
soon as they are flushed.

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (2):   Sent when user presses Ctrl+C
SIGTERM (15): Sent by docker stop, systemd stop, kill command

The handler only flips the running flag. The accept loop notices within
one accept timeout and returns, and the chat server does the actual
teardown on the thread that called start().

Python only allows installing signal handlers from the main thread.
When the server runs in a background thread (tests, embedding), the
handlers are skipped and shutdown() must be called directly.

=============================================================================
"""

import time
import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[socket.socket, Tuple[str, int]], None]


def close_socket(sock: socket.socket, linger: float = 0.0):
    """
    Close a client socket, ignoring errors from an already dead peer.

    Args:
        sock: The socket to close.
        linger: If > 0, half-close first and drain for at most this many
                seconds in total, so the peer reads our last line before the FIN
                instead of a reset.
    """
    if linger > 0:
        deadline = time.monotonic() + linger
        try:
            sock.shutdown(socket.SHUT_WR)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                sock.settimeout(remaining)
                if not sock.recv(1024):
                    break
        except OSError:
            pass  # Timeout or peer already gone

    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # Already disconnected

    try:
        sock.close()
    except OSError:
        pass


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)                                                    │
    │        ├──► _create_socket()   socket + options + accept timeout    │
    │        ├──► bind()             OSError → logged, re-raised          │
    │        ├──► listen()                                                 │
    │        ├──► _setup_signals()   SIGTERM/SIGINT (main thread only)    │
    │        └──► _accept_loop()     BLOCKS until shutdown()              │
    │                 └──► handler(client_socket, address)                │
    │                                                                      │
    │    shutdown()        _running = False (idempotent, signal-safe)     │
    │    _cleanup()        restore signal handlers, close listener       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle(sock, address):
            ...

        server = SocketServer(config)
        server.start(handle)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False

        # Set once listen() succeeded; tests wait on it
        self._listening = threading.Event()

        # Set when shutdown() is called
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

        self.connections_accepted = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (IP, port); the configured one before binding."""
        return self._bound_address or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() returns at least this often so the loop can re-check
        # the running flag
        sock.settimeout(self.config.accept_timeout)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that trigger shutdown()."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        connection_handler: ConnectionHandler,
        on_listening: Optional[Callable[[], None]] = None,
    ):
        """
        Bind, listen and accept connections until shutdown().

        Args:
            connection_handler: Called with (client_socket, address) for
                                each accepted connection, on the accept
                                thread. It must not block for long.
            on_listening: Called once on the accept thread after listen(),
                          before the first accept.

        Raises:
            OSError: If the address cannot be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()

        self._setup_signals()

        logger.info(f"Server listening on {self.address[0]}:{self.address[1]}")

        try:
            if on_listening:
                on_listening()
            self._listening.set()
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: ConnectionHandler):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                # Normal: gives us a chance to re-check self._running
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                continue

            self.connections_accepted += 1
            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            # Client sockets block; the session threads own them
            client_socket.settimeout(None)

            try:
                connection_handler(client_socket, client_address)
            except Exception as e:
                logger.exception(f"Connection handler failed for {client_address[0]}: {e}")
                close_socket(client_socket)

    def shutdown(self):
        """
        Stop the accept loop.

        Safe to call from a signal handler, another thread, or more than
        once.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._listening.clear()
        logger.info("Socket server stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._listening.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() is called. Returns False on timeout."""
        return self._shutdown_event.wait(timeout)
