"""Storage for a Raft peer's persistent state and its service snapshot."""

from __future__ import annotations

import threading


class Persister:
    """Holds Raft state and a snapshot, saved together as one atomic action."""

    def __init__(self, raftstate: bytes | None = None, snapshot: bytes | None = None) -> None:
        self._lock = threading.Lock()
        self._raftstate = bytes(raftstate or b"")
        self._snapshot = bytes(snapshot or b"")

    def copy(self) -> "Persister":
        """Return a fresh persister holding the same state and snapshot."""
        with self._lock:
            return Persister(self._raftstate, self._snapshot)

    def read_raft_state(self) -> bytes:
        with self._lock:
            return self._raftstate

    def raft_state_size(self) -> int:
        with self._lock:
            return len(self._raftstate)

    def save(self, raftstate: bytes | None, snapshot: bytes | None) -> None:
        """Replace both the Raft state and the snapshot at once."""
        with self._lock:
            self._raftstate = bytes(raftstate or b"")
            self._snapshot = bytes(snapshot or b"")

    def read_snapshot(self) -> bytes:
        with self._lock:
            return self._snapshot

    def snapshot_size(self) -> int:
        with self._lock:
            return len(self._snapshot)