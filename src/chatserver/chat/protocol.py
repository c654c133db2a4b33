"""
=============================================================================
CHAT PROTOCOL VOCABULARY
=============================================================================

Every line the server originates, in one place. Clients match some of
these byte for byte, so the wording is part of the wire contract.

    Server → Client                                   When
    ───────────────────────────────────────────────   ─────────────────────
    SERVER: Welcome to the chat! You are ...          greeting, line 1
    SERVER: Type your messages and press Enter ...    greeting, line 2
    SERVER: Current users online: <n>                 greeting, line 3
    SERVER: <id> joined the chat                      to others on admission
    SERVER: <name> left the chat                      to others on departure
    SERVER: <id> disconnected                         ... when no name known
    Client: <line>                                    relayed chat
    SERVER: Maximum client limit reached. ...         rejection, then close
    SERVER: Message too long. Maximum <n> ...         private, over-length
    SERVER: Server is shutting down...                farewell

Client → Server: any line. A line starting with "/" is a command.

=============================================================================
"""

from typing import Optional


SERVER_PREFIX = "SERVER: "
CHAT_PREFIX = "Client: "
COMMAND_PREFIX = "/"

JOIN_SUFFIX = " joined the chat"

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

CLIENT_ID_PREFIX = "Client-"

SHUTDOWN_NOTICE = "Server is shutting down..."


def server_line(text: str) -> str:
    """Prefix a system notice."""
    return f"{SERVER_PREFIX}{text}"


def chat_line(text: str) -> str:
    """Prefix a relayed chat message."""
    return f"{CHAT_PREFIX}{text}"


def client_id(number: int) -> str:
    return f"{CLIENT_ID_PREFIX}{number}"


def client_number(session_id: str) -> int:
    """Inverse of client_id(); used to order ids numerically."""
    return int(session_id[len(CLIENT_ID_PREFIX):])


def greeting(session_id: str, online: int) -> list[str]:
    return [
        server_line(f"Welcome to the chat! You are connected as {session_id}"),
        server_line("Type your messages and press Enter to send."),
        server_line(f"Current users online: {online}"),
    ]


def joined(session_id: str) -> str:
    return server_line(f"{session_id}{JOIN_SUFFIX}")


def departed(session_id: str, display_name: Optional[str]) -> str:
    if display_name:
        return server_line(f"{display_name} left the chat")
    return server_line(f"{session_id} disconnected")


def capacity_rejected() -> str:
    return server_line("Maximum client limit reached. Please try again later.")


def message_too_long(limit: int) -> str:
    return server_line(f"Message too long. Maximum {limit} characters allowed.")


def is_command(line: str) -> bool:
    return line.startswith(COMMAND_PREFIX)


def parse_join_announcement(line: str) -> Optional[str]:
    """
    Extract the display name from a "<name> joined the chat" line.

    Returns:
        The name, or None if the line does not have that shape or the
        name part is empty.
    """
    text = line.strip()
    if not text.endswith(JOIN_SUFFIX):
        return None

    name = text[:-len(JOIN_SUFFIX)].strip()
    return name or None
