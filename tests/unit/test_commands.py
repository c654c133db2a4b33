"""
Unit tests for the command interpreter.
"""

from datetime import datetime

import pytest

from chatserver.chat.commands import CommandInterpreter, parse_command, UNKNOWN_COMMAND
from chatserver.chat.registry import Registry


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 9, 14, 5, 7)
        self.seconds = 1000.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.seconds


@pytest.fixture
def registry() -> Registry:
    registry = Registry(max_clients=10)
    for _ in range(2):
        session_id = registry.reserve()
        registry.insert(session_id, object())
    return registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def interpreter(registry, clock) -> CommandInterpreter:
    return CommandInterpreter(registry, clock=clock, monotonic=clock.monotonic)


class TestParseCommand:
    """Tests for parse_command()."""

    def test_lowercases_name(self):
        command = parse_command("/USERS")
        assert command.name == "/users"

    def test_splits_args(self):
        command = parse_command("/time  now please")
        assert command.name == "/time"
        assert command.args == ["now", "please"]

    def test_not_a_command(self):
        assert parse_command("hello /help") is None


class TestCommands:
    """Tests for each command's private reply."""

    def test_help(self, interpreter):
        assert interpreter.execute("/help") == [
            "SERVER: Available commands:",
            "SERVER: /help - Show this help message",
            "SERVER: /users - List online users",
            "SERVER: /time - Show server time",
            "SERVER: /stats - Show server statistics",
        ]

    def test_case_insensitive(self, interpreter):
        assert interpreter.execute("/HeLp") == interpreter.execute("/help")

    def test_users(self, interpreter):
        assert interpreter.execute("/users") == [
            "SERVER: Online users (2):",
            "SERVER: - Client-1",
            "SERVER: - Client-2",
        ]

    def test_users_reflects_removal(self, interpreter, registry):
        registry.remove("Client-1")
        assert interpreter.execute("/users") == [
            "SERVER: Online users (1):",
            "SERVER: - Client-2",
        ]

    def test_time(self, interpreter):
        assert interpreter.execute("/time") == ["SERVER: Server time: 2024-03-09 14:05:07"]

    def test_stats(self, interpreter, clock):
        clock.seconds += 42.9
        assert interpreter.execute("/stats") == [
            "SERVER: Server Statistics:",
            "SERVER: - Uptime: 42 seconds",
            "SERVER: - Current users: 2",
            "SERVER: - Start time: 2024-03-09 14:05:07",
        ]

    def test_arguments_are_ignored(self, interpreter):
        assert interpreter.execute("/users extra args") == interpreter.execute("/users")

    @pytest.mark.parametrize("line", ["/nope", "/", "/helpme", "not a command"])
    def test_unknown(self, interpreter, line):
        assert interpreter.execute(line) == [UNKNOWN_COMMAND]
        assert UNKNOWN_COMMAND == "SERVER: Unknown command. Type /help for available commands."

    def test_commands_do_not_mutate_registry(self, interpreter, registry):
        before = registry.snapshot_ids()
        for name in interpreter.names:
            interpreter.execute(name)
        assert registry.snapshot_ids() == before

    def test_register_custom_command(self, interpreter):
        interpreter.register("/PING", lambda command: ["SERVER: pong"], "Reply with pong")

        assert interpreter.execute("/ping") == ["SERVER: pong"]
        assert "SERVER: /ping - Reply with pong" in interpreter.execute("/help")
