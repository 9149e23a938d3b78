"""A single Raft peer: leader election, log replication and snapshots."""

from __future__ import annotations

import logging
import pickle
import queue
import random
import threading
import time
from enum import Enum
from typing import Any, Sequence

from raftkit.messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    Entry,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    RequestVoteArgs,
    RequestVoteReply,
)
from raftkit.persister import Persister
from raftkit.raftapi import ApplyMsg, PeerEnd, Raft

log = logging.getLogger(__name__)

RPC_REQUEST_VOTE = "Raft.RequestVote"
RPC_APPEND_ENTRIES = "Raft.AppendEntries"
RPC_INSTALL_SNAPSHOT = "Raft.InstallSnapshot"

HEARTBEAT_INTERVAL_MS = 110
ELECTION_TIMEOUT_BASE_MS = 350
ELECTION_TIMEOUT_SPREAD_MS = 200
_TICK_SECONDS = 0.01
_WAIT_SECONDS = 0.1


class Role(str, Enum):
    FOLLOWER = "follower"
    CANDIDATE = "candidate"
    LEADER = "leader"


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


def _golist(items: Sequence[object]) -> str:
    return "[" + " ".join(str(x) for x in items) + "]"


class RaftNode(Raft):
    """One Raft peer. Call launch() (or use make()) to start its background work."""

    def __init__(
        self,
        peers: Sequence[PeerEnd | None],
        me: int,
        persister: Persister,
        apply_queue: "queue.Queue[ApplyMsg]",
    ) -> None:
        self._peers = list(peers)
        self._me = me
        self._persister = persister
        self._apply_queue = apply_queue

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._peer_conds = [threading.Condition(self._lock) for _ in self._peers]
        self._dead = threading.Event()

        self._current_term = 0
        self._voted_for = -1
        self._log: list[Entry] = [Entry(0, 0, None)]
        self._commit_index = 0
        self._last_applied = 0
        self._next_index = [0] * len(self._peers)
        self._match_index = [0] * len(self._peers)
        self._leader_id = -1
        self._role = Role.FOLLOWER
        self._heartbeat_interval = HEARTBEAT_INTERVAL_MS
        self._heartbeat_time = _now_ms()
        self._election_interval = 0
        self._pending_snapshot: ApplyMsg | None = None
        self.reset_election_timeout()

        self._read_persist(persister.read_raft_state())

    # Read-only views of the peer's state.

    @property
    def current_term(self) -> int:
        with self._lock:
            return self._current_term

    @property
    def voted_for(self) -> int:
        with self._lock:
            return self._voted_for

    @property
    def role(self) -> Role:
        with self._lock:
            return self._role

    @property
    def log(self) -> list[Entry]:
        with self._lock:
            return list(self._log)

    @property
    def commit_index(self) -> int:
        with self._lock:
            return self._commit_index

    @property
    def last_applied(self) -> int:
        with self._lock:
            return self._last_applied

    # Public interface.

    def get_state(self) -> tuple[int, bool]:
        with self._lock:
            return self._current_term, self._role is Role.LEADER

    def persist_bytes(self) -> int:
        return self._persister.raft_state_size()

    def snapshot(self, index: int, snapshot: bytes) -> None:
        """Discard the log through index; the service's snapshot now covers it."""
        with self._lock:
            offset = index - self._log[0].index
            if offset < 0 or offset >= len(self._log):
                raise ValueError(
                    f"snapshot index {index} outside log "
                    f"[{self._log[0].index}, {self._log[-1].index}]"
                )
            base = self._log[offset]
            self._log = [Entry(base.index, base.term, None)] + self._log[offset + 1:]
            log.debug("[term %d] [server %d] snapshot at index %d",
                      self._current_term, self._me, index)
            self._persister.save(self._encode_state(), snapshot)

    def start(self, command: Any) -> tuple[int, int, bool]:
        with self._lock:
            term, index = self._current_term, self._log[-1].index + 1
            if self._role is not Role.LEADER:
                return index, term, False
            self._log.append(Entry(index, term, command))
            self._match_index[self._me] = index
            self._next_index[self._me] = index + 1
            for peer, cond in enumerate(self._peer_conds):
                if peer != self._me:
                    cond.notify()
            return index, term, True

    def kill(self) -> None:
        self._dead.set()
        with self._lock:
            self._cond.notify_all()
            for cond in self._peer_conds:
                cond.notify_all()

    def killed(self) -> bool:
        return self._dead.is_set()

    def reset_election_timeout(self) -> None:
        self._election_interval = ELECTION_TIMEOUT_BASE_MS + random.randrange(
            ELECTION_TIMEOUT_SPREAD_MS
        )

    def launch(self) -> None:
        """Start the election, heartbeat, apply and per-peer replication threads."""
        self._spawn(self._election_loop)
        self._spawn(self._heartbeat_loop)
        self._spawn(self._apply_loop)
        for peer in range(len(self._peers)):
            if peer != self._me:
                self._spawn(self._replicate_loop, peer)

    # Persistence.

    def _encode_state(self) -> bytes:
        return pickle.dumps((self._current_term, self._voted_for, list(self._log)))

    def _persist(self) -> None:
        self._persister.save(self._encode_state(), self._persister.read_snapshot())

    def _read_persist(self, data: bytes | None) -> None:
        if not data:
            return
        try:
            term, voted_for, entries = pickle.loads(data)
            entries = list(entries)
            if not entries:
                raise ValueError("empty log")
        except Exception as exc:
            raise RuntimeError("read persistence error") from exc
        self._current_term, self._voted_for, self._log = term, voted_for, entries
        self._role = Role.FOLLOWER
        self._last_applied = self._commit_index = self._log[0].index

    # Helpers.

    @staticmethod
    def _spawn(target, *args) -> None:
        threading.Thread(target=target, args=args, daemon=True).start()

    def _step_down(self, term: int) -> None:
        self._current_term, self._role, self._voted_for = term, Role.FOLLOWER, -1
        self._heartbeat_time = _now_ms()
        self.reset_election_timeout()

    # Elections.

    def request_vote(self, args: RequestVoteArgs) -> RequestVoteReply:
        with self._lock:
            try:
                reply = RequestVoteReply(term=self._current_term, vote_granted=False)
                if self._current_term > args.term:
                    return reply
                if args.term > self._current_term:
                    self._step_down(args.term)
                reply.term = self._current_term
                last = self._log[-1]
                up_to_date = args.last_log_term > last.term or (
                    args.last_log_term == last.term
                    and args.last_log_index >= last.index
                )
                if self._voted_for in (-1, args.candidate_id) and up_to_date:
                    reply.vote_granted = True
                    self._voted_for = args.candidate_id
                    self._role = Role.FOLLOWER
                    self._heartbeat_time = _now_ms()
                    log.debug("[term %d] [server %d] vote for %d",
                              self._current_term, self._me, args.candidate_id)
                return reply
            finally:
                self._persist()

    def _send_request_vote(self, peer: int, args: RequestVoteArgs, votes: list[int]) -> None:
        end = self._peers[peer]
        reply = end.call(RPC_REQUEST_VOTE, args) if end is not None else None
        if reply is None:
            return
        with self._lock:
            try:
                if reply.term > self._current_term:
                    self._step_down(reply.term)
                    return
                if not reply.vote_granted:
                    return
                if self._role is not Role.CANDIDATE or self._current_term != args.term:
                    return
                votes[0] += 1
                if votes[0] <= len(self._peers) // 2:
                    return
                log.debug("[term %d] [server %d] become leader", self._current_term, self._me)
                self._role, self._voted_for = Role.LEADER, -1
                next_index = self._log[-1].index + 1
                for p in range(len(self._peers)):
                    self._next_index[p] = next_index
                    self._match_index[p] = next_index - 1 if p == self._me else 0
                self._cond.notify_all()
            finally:
                self._persist()

    def _election_loop(self) -> None:
        while not self.killed():
            with self._lock:
                elapsed = _now_ms() - self._heartbeat_time
                if elapsed >= self._election_interval and self._role is not Role.LEADER:
                    self._role, self._voted_for = Role.CANDIDATE, self._me
                    self._current_term += 1
                    self._heartbeat_time = _now_ms()
                    self.reset_election_timeout()
                    self._persist()
                    args = RequestVoteArgs(
                        term=self._current_term,
                        candidate_id=self._me,
                        last_log_index=self._log[-1].index,
                        last_log_term=self._log[-1].term,
                    )
                    votes = [1]
                    for peer in range(len(self._peers)):
                        if peer != self._me:
                            self._spawn(self._send_request_vote, peer, args, votes)
            time.sleep(_TICK_SECONDS)

    # Replication.

    def _heartbeat_loop(self) -> None:
        while not self.killed():
            with self._lock:
                while self._role is not Role.LEADER:
                    if self.killed():
                        return
                    self._cond.wait(_WAIT_SECONDS)
            for peer in range(len(self._peers)):
                if peer != self._me:
                    self._spawn(self._send_log, peer)
            time.sleep(self._heartbeat_interval / 1000)

    def _replicate_loop(self, peer: int) -> None:
        cond = self._peer_conds[peer]
        while not self.killed():
            with self._lock:
                while not (
                    self._role is Role.LEADER
                    and self._log[-1].index >= self._next_index[peer]
                ):
                    if self.killed():
                        return
                    cond.wait(_WAIT_SECONDS)
            self._send_log(peer)

    def _send_log(self, peer: int) -> None:
        with self._lock:
            if self._role is not Role.LEADER:
                return
            if self._next_index[peer] > self._log[0].index:
                append_args = self._append_entries_args(peer)
                snapshot_args = None
            else:
                append_args = None
                snapshot_args = self._install_snapshot_args()
        if append_args is not None:
            self._send_append_entries(peer, append_args)
        else:
            self._send_install_snapshot(peer, snapshot_args)

    def _append_entries_args(self, peer: int) -> AppendEntriesArgs:
        prev_index = self._next_index[peer] - 1
        offset = prev_index - self._log[0].index
        return AppendEntriesArgs(
            term=self._current_term,
            leader_id=self._me,
            prev_log_index=prev_index,
            prev_log_term=self._log[offset].term,
            entries=list(self._log[offset + 1:]),
            leader_commit=self._commit_index,
        )

    def _send_append_entries(self, peer: int, args: AppendEntriesArgs) -> None:
        with self._lock:
            if self._role is not Role.LEADER:
                return
        end = self._peers[peer]
        reply = end.call(RPC_APPEND_ENTRIES, args) if end is not None else None
        if reply is None:
            return
        with self._lock:
            try:
                self._handle_append_reply(peer, args, reply)
            finally:
                self._persist()

    def _handle_append_reply(
        self, peer: int, args: AppendEntriesArgs, reply: AppendEntriesReply
    ) -> None:
        if reply.term > self._current_term:
            self._step_down(reply.term)
            return
        if reply.term != self._current_term or self._role is not Role.LEADER:
            return
        cond = self._peer_conds[peer]
        base = self._log[0].index

        if not reply.success:
            if reply.x_len != -1:
                self._next_index[peer] = reply.x_len
            else:
                offset = args.prev_log_index - base
                for i in range(min(offset, len(self._log) - 1), -1, -1):
                    if self._log[i].term == reply.x_term:
                        self._next_index[peer] = i + 1 + base
                        cond.notify()
                        return
                self._next_index[peer] = reply.x_index
            self._next_index[peer] = max(self._next_index[peer], 1)
            cond.notify()
            return

        if args.entries:
            self._next_index[peer] = args.entries[-1].index + 1
            self._match_index[peer] = self._next_index[peer] - 1

        n = self._log[-1].index
        majority = len(self._peers) // 2
        while n > self._commit_index:
            in_term = self._log[n - base].term == self._current_term
            count = sum(1 for m in self._match_index if m >= n and in_term)
            if count > majority:
                break
            n -= 1
        self._commit_index = n
        self._cond.notify_all()
        if self._role is Role.LEADER and self._log[-1].index >= self._next_index[peer]:
            cond.notify()

    def append_entries(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        with self._lock:
            try:
                return self._append_entries_locked(args)
            finally:
                self._persist()

    def _append_entries_locked(self, args: AppendEntriesArgs) -> AppendEntriesReply:
        reply = AppendEntriesReply(term=self._current_term)
        if args.term < self._current_term:
            return reply

        reply.term = args.term
        if args.term > self._current_term:
            self._voted_for = -1
        self._current_term, self._role = args.term, Role.FOLLOWER
        self._heartbeat_time = _now_ms()

        base = self._log[0].index
        offset = args.prev_log_index - base
        if offset < 0:
            return reply
        if offset >= len(self._log):
            reply.x_len = self._log[-1].index
            return reply

        if self._log[offset].term != args.prev_log_term:
            reply.x_term = self._log[offset].term
            for i, entry in enumerate(self._log[: offset + 1]):
                if entry.term == reply.x_term:
                    reply.x_index = i + base
                    break
            return reply

        matched = 0
        for entry in args.entries:
            pos = entry.index - base
            if pos >= len(self._log):
                break
            if entry.term == self._log[pos].term:
                matched += 1
                continue
            del self._log[pos:]
            break
        self._log.extend(args.entries[matched:])

        if args.leader_commit > self._commit_index:
            self._commit_index = min(args.leader_commit, self._log[-1].index)
        self._cond.notify_all()
        reply.success = True
        return reply

    # Snapshots.

    def _install_snapshot_args(self) -> InstallSnapshotArgs:
        return InstallSnapshotArgs(
            term=self._current_term,
            leader_id=self._me,
            last_included_index=self._log[0].index,
            last_included_term=self._log[0].term,
            data=self._persister.read_snapshot(),
        )

    def _send_install_snapshot(self, peer: int, args: InstallSnapshotArgs) -> None:
        with self._lock:
            if self._role is not Role.LEADER:
                return
        end = self._peers[peer]
        reply = end.call(RPC_INSTALL_SNAPSHOT, args) if end is not None else None
        if reply is None:
            return
        with self._lock:
            if self._role is not Role.LEADER:
                return
            if reply.term > self._current_term:
                self._step_down(reply.term)
                return
            if args.last_included_index != self._log[0].index:
                return
            self._next_index[peer] = args.last_included_index + 1
            self._match_index[peer] = args.last_included_index

    def install_snapshot(self, args: InstallSnapshotArgs) -> InstallSnapshotReply:
        with self._lock:
            if self._current_term > args.term or self._commit_index >= args.last_included_index:
                return InstallSnapshotReply(term=self._current_term, success=False)
            self._heartbeat_time = _now_ms()
            if args.term > self._current_term:
                self._voted_for = -1
            self._role, self._current_term = Role.FOLLOWER, args.term

            if not args.done:
                raise RuntimeError("incomplete snapshot chunk")

            keep = -1
            for i, entry in enumerate(self._log):
                if (entry.index == args.last_included_index
                        and entry.term == args.last_included_term):
                    keep = i
            head = Entry(args.last_included_index, args.last_included_term, None)
            self._log = [head] + (self._log[keep + 1:] if keep != -1 else [])
            self._commit_index = self._last_applied = args.last_included_index
            self._persister.save(self._encode_state(), args.data)
            self._pending_snapshot = ApplyMsg(
                snapshot_valid=True,
                snapshot=bytes(args.data),
                snapshot_term=args.last_included_term,
                snapshot_index=args.last_included_index,
            )
            self._cond.notify_all()
            return InstallSnapshotReply(term=self._current_term, success=True)

    # Applying committed entries.

    def _apply_loop(self) -> None:
        while not self.killed():
            with self._lock:
                while self._last_applied >= self._commit_index and self._pending_snapshot is None:
                    if self.killed():
                        return
                    self._cond.wait(_WAIT_SECONDS)
                pending, self._pending_snapshot = self._pending_snapshot, None
            if pending is not None:
                self._apply_queue.put(pending)
            while True:
                with self._lock:
                    if self._commit_index <= self._last_applied:
                        break
                    self._last_applied += 1
                    entry = self._log[self._last_applied - self._log[0].index]
                    msg = ApplyMsg(
                        command_valid=True, command=entry.command, command_index=entry.index
                    )
                if self.killed():
                    return
                self._apply_queue.put(msg)

    def __str__(self) -> str:
        with self._lock:
            role = self._role.value
            lines = [
                f"[Raft {self._me} | {role[:1].upper() + role[1:]} | LeaderId {self._leader_id}]",
                f"├─ CurrentTerm: {self._current_term} | VotedFor: {self._voted_for}",
                "├─ Log Entries:",
            ]
            for i, entry in enumerate(self._log):
                cmd = "<nil>" if entry.command is None else entry.command
                lines.append(f"│   {i:4d}: {{Term: {entry.term}, Cmd: {cmd}}}")
            lines.append(
                f"├─ CommitIndex: {self._commit_index} | LastApplied: {self._last_applied}"
            )
            text = "\n".join(lines) + "\n"
            if self._role is Role.LEADER:
                text += f"├─ NextIndex: {_golist(self._next_index)}\n"
                text += f"└─ MatchIndex: {_golist(self._match_index)}"
            return text


def make(
    peers: Sequence[PeerEnd | None],
    me: int,
    persister: Persister,
    apply_queue: "queue.Queue[ApplyMsg]",
) -> RaftNode:
    """Create a peer, restore its persisted state and start its background work."""
    node = RaftNode(peers, me, persister, apply_queue)
    node.launch()
    return node