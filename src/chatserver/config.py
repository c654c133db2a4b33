"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the chat server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m chatserver --port 4000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CHAT_PORT=4000 python -m chatserver                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The defaults reproduce the classic deployment of the chat service:
port 1234, at most 50 simultaneous clients, 500 characters per message.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError


DEFAULT_PORT = 1234
DEFAULT_MAX_CLIENTS = 50
DEFAULT_MAX_MESSAGE_LENGTH = 500
DEFAULT_MAX_PENDING_LINES = 1000

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    """
    Configuration for the chat server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, accept_timeout

    CHAT SETTINGS
    - max_clients, max_message_length, encoding, max_pending_lines

    SHUTDOWN
    - drain_timeout

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces (chat clients live elsewhere)
    - "127.0.0.1" - Localhost only (tests, development)
    """

    port: int = DEFAULT_PORT
    """
    The port number to listen on. 0 lets the OS pick a free port,
    which is what the test suite does.
    """

    backlog: int = 128
    """
    Maximum number of queued connections waiting for accept().
    """

    accept_timeout: float = 1.0
    """
    How long accept() blocks before the loop re-checks the running flag.
    Bounds how long shutdown waits for the listener to notice.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CHAT SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_clients: int = DEFAULT_MAX_CLIENTS
    """
    Maximum number of simultaneously registered sessions.
    Connection number max_clients + 1 gets the rejection line and is closed.
    """

    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    """
    Longest accepted line, measured on the raw line (terminator removed,
    surrounding whitespace kept). Longer lines get a private error reply.
    """

    encoding: str = "utf-8"
    """Text encoding of the line protocol."""

    max_pending_lines: int = DEFAULT_MAX_PENDING_LINES
    """
    Most lines that may wait in one client's outbound queue. A client
    that stops reading fills its queue and is disconnected instead of
    growing server memory without limit.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    drain_timeout: float = 5.0
    """
    Upper bound for flushing a session's pending lines on disconnect, and
    for waiting on reader threads during shutdown.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    DEBUG additionally logs every chat line relayed.
    """

    @property
    def log_level_value(self) -> int:
        """Numeric logging level for the configured name."""
        return getattr(logging, self.log_level.upper(), logging.INFO)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CHAT_HOST                 Server host (default: 0.0.0.0)
        CHAT_PORT                 Server port (default: 1234)
        CHAT_MAX_CLIENTS          Capacity (default: 50)
        CHAT_MAX_MESSAGE_LENGTH   Longest accepted line (default: 500)
        CHAT_LOG_LEVEL            Logging level (default: INFO)

        =====================================================================

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: If a numeric variable is not a number.
        """
        env = os.environ if environ is None else environ

        try:
            return cls(
                host=env.get("CHAT_HOST", "0.0.0.0"),
                port=int(env.get("CHAT_PORT", str(DEFAULT_PORT))),
                max_clients=int(env.get("CHAT_MAX_CLIENTS", str(DEFAULT_MAX_CLIENTS))),
                max_message_length=int(
                    env.get("CHAT_MAX_MESSAGE_LENGTH", str(DEFAULT_MAX_MESSAGE_LENGTH))
                ),
                log_level=env.get("CHAT_LOG_LEVEL", "INFO"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

    def validate(self) -> None:
        """
        Validate configuration values.

        We validate at startup, not at first use, so a bad value stops
        the process before it binds a port.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.max_clients < 1:
            raise ConfigError("max_clients must be >= 1")

        if self.max_message_length < 1:
            raise ConfigError("max_message_length must be >= 1")

        if self.max_pending_lines < 1:
            raise ConfigError("max_pending_lines must be >= 1")

        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.accept_timeout <= 0:
            raise ConfigError("accept_timeout must be > 0")

        if self.drain_timeout <= 0:
            raise ConfigError("drain_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level: {self.log_level}. "
                f"Must be one of {', '.join(LOG_LEVELS)}."
            )
