"""
Exceptions raised by the chat server.

Per-connection problems (peer gone, failed sink, bad input) never leave
the session that hit them; they are logged and turned into a teardown or
a private reply. Only the errors below cross module boundaries.
"""


class ChatServerError(Exception):
    """Base class for chat server errors."""


class CapacityExhausted(ChatServerError):
    """
    Raised by the registry when no session slot is free.

    Admission answers it with the rejection line and closes the socket.
    """

    def __init__(self, max_clients: int):
        super().__init__(f"Maximum client limit reached ({max_clients})")
        self.max_clients = max_clients


class ConfigError(ChatServerError, ValueError):
    """Raised when the server configuration is invalid."""
