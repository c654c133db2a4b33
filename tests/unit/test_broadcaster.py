"""
Unit tests for the broadcaster.
"""

import threading

import pytest

from chatserver.chat.broadcaster import Broadcaster
from chatserver.chat.registry import Registry


class FakeSession:
    """Records delivered lines; can simulate a failed sink."""

    def __init__(self, session_id: str, fail: bool = False):
        self.id = session_id
        self.fail = fail
        self.alive = True
        self.lines = []
        self.disconnected = threading.Event()
        self.disconnect_calls = 0

    def deliver(self, line: str) -> bool:
        if self.fail or not self.alive:
            return False
        self.lines.append(line)
        return True

    def disconnect(self):
        self.disconnect_calls += 1
        self.disconnected.set()


@pytest.fixture
def registry() -> Registry:
    return Registry(max_clients=10)


def add(registry: Registry, fail: bool = False) -> FakeSession:
    session = FakeSession(registry.reserve(), fail=fail)
    registry.insert(session.id, session)
    return session


class TestPublish:
    """Tests for Broadcaster.publish()."""

    def test_excludes_origin(self, registry):
        a, b, c = add(registry), add(registry), add(registry)

        delivered = Broadcaster(registry).publish("Client: hello", origin=a)

        assert delivered == 2
        assert a.lines == []
        assert b.lines == ["Client: hello"]
        assert c.lines == ["Client: hello"]

    def test_system_notice_reaches_everyone(self, registry):
        a, b = add(registry), add(registry)

        Broadcaster(registry).announce("Server is shutting down...")

        assert a.lines == ["SERVER: Server is shutting down..."]
        assert b.lines == ["SERVER: Server is shutting down..."]

    @pytest.mark.parametrize("line", ["", "   ", "\t"])
    def test_blank_line_is_noop(self, registry, line):
        a = add(registry)

        assert Broadcaster(registry).publish(line) == 0
        assert a.lines == []

    def test_empty_registry(self, registry):
        assert Broadcaster(registry).publish("Client: anyone?") == 0

    def test_sender_order_preserved(self, registry):
        sender, receiver = add(registry), add(registry)
        broadcaster = Broadcaster(registry)

        for i in range(20):
            broadcaster.publish(f"Client: {i}", origin=sender)

        assert receiver.lines == [f"Client: {i}" for i in range(20)]


class TestSinkFailure:
    """A failed sink only takes down its own session."""

    def test_failed_sink_is_disconnected(self, registry):
        good = add(registry)
        bad = add(registry, fail=True)

        delivered = Broadcaster(registry).publish("Client: hi")

        assert delivered == 1
        assert good.lines == ["Client: hi"]
        assert bad.disconnected.wait(2.0)
        assert good.disconnect_calls == 0

    def test_session_already_closing_is_skipped(self, registry):
        """deliver() fails because the session is tearing itself down."""
        closing = add(registry)
        closing.alive = False

        Broadcaster(registry).publish("Client: hi")

        assert not closing.disconnected.wait(0.2)

    def test_one_disconnect_per_failed_sink(self, registry):
        bad = add(registry, fail=True)
        release = threading.Event()
        original = bad.disconnect

        def slow_disconnect():
            release.wait(2.0)
            original()

        bad.disconnect = slow_disconnect
        broadcaster = Broadcaster(registry)

        for i in range(5):
            broadcaster.publish(f"Client: {i}")
        release.set()

        assert bad.disconnected.wait(2.0)
        assert bad.disconnect_calls == 1
