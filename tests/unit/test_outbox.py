"""
Unit tests for the outbound queue writer.
"""

from chatserver.core.codec import LineWriter
from chatserver.core.outbox import SinkWriter, WriterState


class TestSinkWriter:
    def test_writes_in_order(self, socket_pair):
        server_sock, client = socket_pair
        writer = SinkWriter(LineWriter(server_sock), name="Writer-test")
        writer.start()

        for i in range(5):
            assert writer.put(f"line {i}")
        writer.stop()
        writer.join(2.0)

        assert client.read_lines(5) == [f"line {i}" for i in range(5)]
        assert writer.state is WriterState.STOPPED
        assert writer.lines_written == 5
        assert not writer.failed

    def test_full_queue_marks_failed(self, socket_pair):
        server_sock, _ = socket_pair
        writer = SinkWriter(LineWriter(server_sock), name="Writer-test", max_pending=2)

        assert writer.put("a")
        assert writer.put("b")
        assert writer.put("c") is False

        assert writer.overflowed
        assert writer.failed

    def test_stop_on_full_queue_does_not_block(self, socket_pair):
        server_sock, client = socket_pair
        writer = SinkWriter(LineWriter(server_sock), name="Writer-test", max_pending=2)
        writer.put("a")
        writer.put("b")

        writer.stop()  # Drops "a" to make room for the pill
        writer.start()
        writer.join(2.0)

        assert not writer.is_alive()
        assert client.read_line() == "b"

    def test_write_error_marks_failed(self, socket_pair):
        server_sock, client = socket_pair
        writer = SinkWriter(LineWriter(server_sock), name="Writer-test")
        client.close()
        writer.start()

        # The first write may still land in the kernel buffer
        for _ in range(50):
            writer.put("x" * 1000)
        writer.join(2.0)

        assert writer.state is WriterState.FAILED
        assert isinstance(writer.error, OSError)
