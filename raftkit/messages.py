"""Log entries and the RPC arguments and replies exchanged between Raft peers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Entry:
    """One log entry: its position, the term it was created in, and the command."""

    index: int
    term: int
    command: Any = None


@dataclass
class RequestVoteArgs:
    term: int
    candidate_id: int
    last_log_index: int
    last_log_term: int


@dataclass
class RequestVoteReply:
    term: int = 0
    vote_granted: bool = False


@dataclass
class AppendEntriesArgs:
    """Entries to append after prev_log_index; empty entries make a heartbeat."""

    term: int
    leader_id: int
    prev_log_index: int
    prev_log_term: int
    entries: list[Entry] = field(default_factory=list)
    leader_commit: int = 0


@dataclass
class AppendEntriesReply:
    """Result of AppendEntries.

    On a mismatch the follower reports the conflicting term (x_term) and the
    first index it holds for that term (x_index), or, when its log is too
    short, its last index (x_len). Unused hints stay at -1.
    """

    term: int = 0
    success: bool = False
    x_index: int = -1
    x_term: int = -1
    x_len: int = -1


@dataclass
class InstallSnapshotArgs:
    """A whole snapshot sent in one piece: offset is always 0 and done True."""

    term: int
    leader_id: int
    last_included_index: int
    last_included_term: int
    data: bytes = b""
    offset: int = 0
    done: bool = True


@dataclass
class InstallSnapshotReply:
    term: int = 0
    success: bool = False