"""
=============================================================================
LINE CODEC
=============================================================================

The chat protocol has exactly one framing rule: a message is a line of
UTF-8 text terminated by a single newline.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("hello\n")
        send("world\n")

    Server might receive:
        recv() → "hello\nwor"
        recv() → "ld\n"

We never look at recv() chunks directly. socket.makefile() gives us a
buffered file object, and readline() does the accumulation for us:

    ┌─────────────────────────────────────────────────────────────────┐
    │                      LineReader.read_line()                      │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   b"hello\r\n"  ──►  readline()  ──►  decode  ──►  "hello"      │
    │                                                                  │
    │   b""           ──►  end of stream            ──►  None         │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Writing is the mirror image: append "\n", write, flush. Every message is
flushed on its own so peers see it immediately.

Length limits are NOT enforced here. The session decides what an
over-length line means.

=============================================================================
"""

import socket
from typing import Optional


NEWLINE = b"\n"


def encode_line(text: str, encoding: str = "utf-8") -> bytes:
    """Encode one message as a complete frame."""
    return text.encode(encoding) + NEWLINE


def decode_line(raw: bytes, encoding: str = "utf-8") -> str:
    """
    Decode one frame and strip its terminator.

    A trailing "\\r" before the newline is removed as well, so telnet and
    Windows clients work. Undecodable bytes are replaced, not fatal.
    """
    if raw.endswith(NEWLINE):
        raw = raw[:-1]
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode(encoding, errors="replace")


class LineReader:
    """
    Reads newline-delimited frames from a socket.

    Owned by exactly one thread (the session's reader).
    """

    def __init__(self, sock: socket.socket, encoding: str = "utf-8"):
        self._file = sock.makefile("rb")
        self.encoding = encoding

    def read_line(self) -> Optional[str]:
        """
        Read the next line.

        Returns:
            The line without its terminator, or None if the peer closed
            the connection.

        Raises:
            OSError: On socket errors other than a reset by the peer.
        """
        try:
            raw = self._file.readline()
        except (ConnectionResetError, BrokenPipeError):
            return None

        if not raw:
            return None

        return decode_line(raw, self.encoding)

    def close(self):
        try:
            self._file.close()
        except OSError:
            pass


class LineWriter:
    """
    Writes newline-delimited frames to a socket.

    Owned by exactly one thread (the session's writer), so writes to
    one socket never interleave.
    """

    def __init__(self, sock: socket.socket, encoding: str = "utf-8"):
        self._file = sock.makefile("wb")
        self.encoding = encoding

    def write_line(self, text: str):
        """
        Write one message and flush it.

        Raises:
            OSError: If the peer is gone (BrokenPipeError, ConnectionResetError, ...).
        """
        self._file.write(encode_line(text, self.encoding))
        self._file.flush()

    def close(self):
        try:
            self._file.close()
        except OSError:
            pass  # Unflushed bytes on a dead socket
