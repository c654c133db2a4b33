"""
In-band commands.

A line starting with "/" is answered privately and never broadcast:

    /help    list the commands
    /users   list connected client ids
    /time    server wall-clock time
    /stats   uptime, user count, start time

The command token is matched case-insensitively. Anything after it is
split off into `Command.args`; no current command reads it.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from . import protocol
from .registry import Registry


UNKNOWN_COMMAND = protocol.server_line("Unknown command. Type /help for available commands.")


@dataclass
class Command:
    """A parsed command line."""
    name: str                      # lowercased, including the leading "/"
    args: list[str] = field(default_factory=list)
    raw: str = ""


def parse_command(line: str) -> Optional[Command]:
    """
    Parse a command line.

    Returns:
        A Command, or None if the line is not a command.
    """
    text = line.strip()
    if not protocol.is_command(text):
        return None

    parts = text.split()
    return Command(name=parts[0].lower(), args=parts[1:], raw=line)


@dataclass
class CommandEntry:
    handler: Callable[[Command], list[str]]
    description: str


class CommandInterpreter:
    """
    Produces the private reply for a command line.

    Usage:
        interpreter = CommandInterpreter(registry)
        for reply in interpreter.execute("/users"):
            session.deliver(reply)
    """

    def __init__(
        self,
        registry: Registry,
        started_at: Optional[datetime] = None,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._clock = clock
        self._monotonic = monotonic

        self.started_at = started_at or clock()
        self._started_monotonic = monotonic()

        self._commands: Dict[str, CommandEntry] = {}
        self.register("/help", self._help, "Show this help message")
        self.register("/users", self._users, "List online users")
        self.register("/time", self._time, "Show server time")
        self.register("/stats", self._stats, "Show server statistics")

    def register(self, name: str, handler: Callable[[Command], list[str]], description: str):
        """Add (or replace) a command. Names are stored lowercased."""
        self._commands[name.lower()] = CommandEntry(handler, description)

    @property
    def names(self) -> list[str]:
        return list(self._commands)

    def uptime(self) -> int:
        """Whole seconds since the server started."""
        return int(self._monotonic() - self._started_monotonic)

    def execute(self, line: str) -> list[str]:
        """
        Run a command line.

        Returns:
            Reply lines for the issuing session only. Unknown commands
            (and non-command lines) get the unknown-command reply.
        """
        command = parse_command(line)
        if command is None:
            return [UNKNOWN_COMMAND]

        entry = self._commands.get(command.name)
        if entry is None:
            return [UNKNOWN_COMMAND]

        return entry.handler(command)

    # ─────────────────────────────────────────────────────────────────────
    # HANDLERS
    # ─────────────────────────────────────────────────────────────────────

    def _help(self, command: Command) -> list[str]:
        replies = [protocol.server_line("Available commands:")]
        for name, entry in self._commands.items():
            replies.append(protocol.server_line(f"{name} - {entry.description}"))
        return replies

    def _users(self, command: Command) -> list[str]:
        ids = self._registry.snapshot_ids()
        replies = [protocol.server_line(f"Online users ({len(ids)}):")]
        replies.extend(protocol.server_line(f"- {session_id}") for session_id in ids)
        return replies

    def _time(self, command: Command) -> list[str]:
        now = self._clock().strftime(protocol.TIME_FORMAT)
        return [protocol.server_line(f"Server time: {now}")]

    def _stats(self, command: Command) -> list[str]:
        started = self.started_at.strftime(protocol.TIME_FORMAT)
        return [
            protocol.server_line("Server Statistics:"),
            protocol.server_line(f"- Uptime: {self.uptime()} seconds"),
            protocol.server_line(f"- Current users: {self._registry.active_count}"),
            protocol.server_line(f"- Start time: {started}"),
        ]
