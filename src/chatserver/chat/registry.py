"""
=============================================================================
MEMBERSHIP REGISTRY
=============================================================================

The registry is the only shared mutable state in the server: who is
connected right now, and which id the next client gets.

=============================================================================
THE CAPACITY RACE
=============================================================================

A naive capacity check reads the size, then inserts:

    Thread 1                      Thread 2
    ────────                      ────────
    len(sessions) == 49  ✓
                                  len(sessions) == 49  ✓
    insert Client-50
                                  insert Client-51     ← 51 > 50!

reserve() closes the gap by doing "check capacity" and "take the next
id" as ONE step under the lock. A reservation counts against capacity
until it is inserted (or released), so a slot can never be handed out
twice.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Registry operations                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   reserve()        capacity check + next id      (atomic)            │
    │        │                                                             │
    │        ├──► insert(id, session)   reservation → member               │
    │        └──► release(id)           reservation dropped                │
    │                                                                      │
    │   remove(id)       member gone (idempotent)                          │
    │                                                                      │
    │   snapshot_ids()   point-in-time copy for /users                     │
    │   for_each_sink()  visit members under the lock (broadcast)          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY AN RLOCK?
=============================================================================

Admission inserts a session and queues its greeting while holding the
lock, so no broadcast can slip in between. The insert itself takes the
lock again, which only works with a re-entrant lock.

=============================================================================
INTERVIEW QUESTIONS ABOUT SHARED STATE
=============================================================================

Q: "Why not use the map size as the id counter?"
A: "Sizes go down when clients leave. Two clients could end up with the
   same id. The counter only ever increases."

Q: "Why hold the lock while broadcasting?"
A: "We only hold it while ENQUEUING, which never blocks. Socket writes
   happen later on each session's writer thread, outside the lock."

=============================================================================
"""

import itertools
import logging
import threading
from typing import Callable, Dict, Optional, Set, TYPE_CHECKING

from ..errors import CapacityExhausted
from . import protocol

if TYPE_CHECKING:
    from ..core.session import Session


logger = logging.getLogger(__name__)


class Registry:
    """
    Thread-safe mapping from client id to session.

    Invariants:
    - active_count == number of registered sessions
    - active_count + outstanding reservations <= max_clients
    - ids are never reused within one registry's lifetime
    """

    def __init__(self, max_clients: int):
        self.max_clients = max_clients

        self._sessions: Dict[str, "Session"] = {}
        self._reserved: Set[str] = set()
        self._counter = itertools.count(1)
        self._last_id = 0

        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """The registry lock. Hold it to make several operations atomic."""
        return self._lock

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def last_issued(self) -> int:
        """Number of the most recently issued id (0 before the first)."""
        with self._lock:
            return self._last_id

    def __len__(self) -> int:
        return self.active_count

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get(self, session_id: str) -> Optional["Session"]:
        with self._lock:
            return self._sessions.get(session_id)

    # ─────────────────────────────────────────────────────────────────────
    # MUTATIONS
    # ─────────────────────────────────────────────────────────────────────

    def reserve(self) -> str:
        """
        Claim a slot and the next id.

        Returns:
            The new id, e.g. "Client-7".

        Raises:
            CapacityExhausted: If max_clients slots are taken or reserved.
        """
        with self._lock:
            if len(self._sessions) + len(self._reserved) >= self.max_clients:
                raise CapacityExhausted(self.max_clients)

            self._last_id = next(self._counter)
            session_id = protocol.client_id(self._last_id)
            self._reserved.add(session_id)
            return session_id

    def release(self, session_id: str):
        """Drop a reservation that will never be inserted."""
        with self._lock:
            self._reserved.discard(session_id)

    def insert(self, session_id: str, session: "Session") -> int:
        """
        Turn a reservation into a registered session.

        Returns:
            The new active count.

        Raises:
            KeyError: If session_id was not reserved.
        """
        with self._lock:
            if session_id not in self._reserved:
                raise KeyError(f"{session_id} was not reserved")

            self._reserved.remove(session_id)
            self._sessions[session_id] = session
            return len(self._sessions)

    def remove(self, session_id: str) -> bool:
        """
        Remove a session. Idempotent.

        Returns:
            True if the session was registered, False if already gone.
        """
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    # ─────────────────────────────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────────────────────────────

    def snapshot_ids(self) -> list[str]:
        """Ids registered right now, in admission order."""
        with self._lock:
            return sorted(self._sessions, key=protocol.client_number)

    def snapshot(self) -> list["Session"]:
        """Sessions registered right now, in admission order."""
        with self._lock:
            return [self._sessions[i] for i in sorted(self._sessions, key=protocol.client_number)]

    def for_each_sink(self, visitor: Callable[["Session"], None]):
        """
        Call visitor(session) for every registered session.

        Runs under the lock over a copy of the membership, so a visitor
        may trigger removals without breaking the iteration. Visitors
        must not block.
        """
        with self._lock:
            for session in list(self._sessions.values()):
                visitor(session)
