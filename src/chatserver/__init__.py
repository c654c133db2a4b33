"""
=============================================================================
CHATSERVER - Line-Oriented Multi-User Chat Server
=============================================================================

A TCP chat service built on raw Python sockets and threads. Every line a
client sends is relayed to every other connected client; lines starting
with "/" are answered privately by the server.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    chatserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m chatserver)
    ├── server.py            # ChatServer: admission + shutdown
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── core/                # Networking plumbing
    │   ├── socket_server.py # Listening socket, accept loop, signals
    │   ├── codec.py         # Newline framing
    │   ├── outbox.py        # Per-session writer thread
    │   └── session.py       # One client connection
    └── chat/                # Chat semantics
        ├── registry.py      # Membership + id counter
        ├── broadcaster.py   # Fan-out
        ├── commands.py      # /help /users /time /stats
        └── protocol.py      # Exact server lines

=============================================================================
QUICK START
=============================================================================

    from chatserver import ChatServer, ServerConfig

    server = ChatServer(ServerConfig(port=1234, max_clients=50))
    server.run()

Then, from two terminals:

    $ nc localhost 1234
    SERVER: Welcome to the chat! You are connected as Client-1
    ...

=============================================================================
"""

__version__ = "1.0.0"

from .server import ChatServer, ServerState, create_server
from .config import ServerConfig
from .errors import ChatServerError, CapacityExhausted, ConfigError

__all__ = [
    "ChatServer",
    "ServerState",
    "ServerConfig",
    "create_server",
    "ChatServerError",
    "CapacityExhausted",
    "ConfigError",
    "__version__",
]
