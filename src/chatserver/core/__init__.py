"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the chat logic.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Creates the listening socket, runs the accept() loop             │
    │  • Handles graceful shutdown via signals (SIGTERM, SIGINT)         │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ (client_socket, address)
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                            SESSION                                   │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • One per client: reader thread + writer thread                    │
    │  • Lifecycle NEW → ACTIVE → CLOSING → CLOSED                        │
    └─────────────────────────────────────────────────────────────────────┘
                │                                       │
                ▼                                       ▼
    ┌───────────────────────────┐         ┌───────────────────────────┐
    │        LINE CODEC          │         │     OUTBOX / SINK WRITER   │
    │  newline framing, UTF-8    │         │  FIFO queue, one writer    │
    └───────────────────────────┘         └───────────────────────────┘

THREAD-PER-CONNECTION MODEL
───────────────────────────
Each session gets its own reader thread, which is simple and a good fit
for a chat server where clients sit idle most of the time. Writes go
through a per-session queue so a slow client never stalls a broadcast.

=============================================================================
"""

from .socket_server import SocketServer, close_socket
from .codec import LineReader, LineWriter, encode_line, decode_line
from .outbox import SinkWriter, WriterState
from .session import Session, SessionState


__all__ = [
    "SocketServer",   # Listening socket + accept loop
    "close_socket",   # Quiet close for client sockets
    "LineReader",     # Newline framing (read side)
    "LineWriter",     # Newline framing (write side)
    "encode_line",
    "decode_line",
    "SinkWriter",     # Per-session writer thread
    "WriterState",
    "Session",        # One client connection
    "SessionState",
]
