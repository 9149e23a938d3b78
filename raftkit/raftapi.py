"""The interface a Raft peer offers to its service, and the messages it applies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ApplyMsg:
    """A committed command or an installed snapshot, delivered to the service.

    Exactly one of ``command_valid`` and ``snapshot_valid`` is set on a
    message that carries something.
    """

    command_valid: bool = False
    command: Any = None
    command_index: int = 0

    snapshot_valid: bool = False
    snapshot: bytes = b""
    snapshot_term: int = 0
    snapshot_index: int = 0


class Raft(ABC):
    """What a Raft peer exposes to the service built on top of it."""

    @abstractmethod
    def start(self, command: Any) -> tuple[int, int, bool]:
        """Begin agreement on a command; return (index, term, is_leader)."""

    @abstractmethod
    def get_state(self) -> tuple[int, bool]:
        """Return (current term, whether this peer believes it is leader)."""

    @abstractmethod
    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Tell the peer the service has a snapshot covering the log through index."""

    @abstractmethod
    def persist_bytes(self) -> int:
        """Return the size of the peer's persisted Raft state."""

    @abstractmethod
    def kill(self) -> None:
        """Stop the peer's long-running work."""


class PeerEnd(ABC):
    """One peer's handle for sending RPCs to another peer."""

    @abstractmethod
    def call(self, method: str, args: Any) -> Any | None:
        """Invoke a named method on the remote peer.

        Return the reply, or None if the request or reply was lost.
        """