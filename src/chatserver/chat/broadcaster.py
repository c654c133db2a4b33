"""
=============================================================================
BROADCASTER
=============================================================================

Fan-out of one line to every registered session, optionally skipping
the session that sent it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     publish("Client: hi", origin=A)                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   registry lock held                                                 │
    │   ┌───────────────────────────────────────────────────────┐          │
    │   │  A  → skipped (origin)                                │          │
    │   │  B  → deliver() → queued            ✓                 │          │
    │   │  C  → deliver() → sink failed       ✗ → failed list   │          │
    │   └───────────────────────────────────────────────────────┘          │
    │   registry lock released                                             │
    │                                                                      │
    │   for each failed session:                                           │
    │       Thread(target=session.disconnect).start()                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Disconnecting inside the loop would mutate the registry we are
iterating and re-enter publish() through the departure notice, so
failed sessions are torn down afterwards, off the caller's thread.

Ordering: a sender's reader thread calls publish() one line at a time
and every recipient queue is FIFO, so messages from one sender arrive
in order. Nothing orders messages from different senders.

=============================================================================
"""

import logging
import threading
from typing import Optional, TYPE_CHECKING

from . import protocol
from .registry import Registry

if TYPE_CHECKING:
    from ..core.session import Session


logger = logging.getLogger(__name__)


class Broadcaster:
    """Publishes lines to the sessions in a registry."""

    def __init__(self, registry: Registry):
        self._registry = registry

        # Ids with a disconnect thread already scheduled
        self._disconnecting: set[str] = set()
        self._lock = threading.Lock()

    def publish(self, line: str, origin: Optional["Session"] = None) -> int:
        """
        Deliver a line to every session except origin.

        Args:
            line: The complete line to send (prefix included).
            origin: Session to skip, or None for system notices.

        Returns:
            Number of sessions the line was queued for.
        """
        if not line or not line.strip():
            return 0

        delivered = 0
        failed: list["Session"] = []

        def visit(session: "Session"):
            nonlocal delivered
            if session is origin:
                return
            if session.deliver(line):
                delivered += 1
            elif session.alive:
                # Not already tearing down, so the sink itself failed
                failed.append(session)

        self._registry.for_each_sink(visit)

        for session in failed:
            self._schedule_disconnect(session)

        return delivered

    def announce(self, text: str, origin: Optional["Session"] = None) -> int:
        """Publish a system notice ("SERVER: <text>")."""
        return self.publish(protocol.server_line(text), origin)

    def _schedule_disconnect(self, session: "Session"):
        with self._lock:
            if session.id in self._disconnecting:
                return
            self._disconnecting.add(session.id)

        logger.info(f"Removing {session.id}: sink failed during broadcast")
        threading.Thread(
            target=self._disconnect,
            args=(session,),
            name=f"Disconnect-{session.id}",
            daemon=True,
        ).start()

    def _disconnect(self, session: "Session"):
        try:
            session.disconnect()
        finally:
            with self._lock:
                self._disconnecting.discard(session.id)
