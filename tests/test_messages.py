import dataclasses

import pytest

from raftkit.messages import (
    AppendEntriesArgs,
    AppendEntriesReply,
    Entry,
    InstallSnapshotArgs,
    InstallSnapshotReply,
    RequestVoteArgs,
    RequestVoteReply,
)


def test_entry_holds_fields_and_defaults_command_to_none():
    e = Entry(index=4, term=2)
    assert (e.index, e.term, e.command) is not None
    assert e.index == 4 and e.term == 2
    assert e.command is None


def test_entry_is_immutable_and_replace_gives_new_entry():
    e = Entry(3, 1, "cmd")
    with pytest.raises(dataclasses.FrozenInstanceError):
        e.command = None
    cleared = dataclasses.replace(e, command=None)
    assert cleared == Entry(3, 1, None)
    assert e.command == "cmd"


def test_entries_compare_by_value():
    assert Entry(1, 1, "x") == Entry(1, 1, "x")
    assert Entry(1, 1, "x") != Entry(1, 2, "x")


def test_request_vote_round_trip():
    args = RequestVoteArgs(term=5, candidate_id=2, last_log_index=10, last_log_term=4)
    assert dataclasses.astuple(args) == (5, 2, 10, 4)
    reply = RequestVoteReply()
    assert reply.term == 0 and reply.vote_granted is False


def test_append_entries_defaults_to_heartbeat():
    args = AppendEntriesArgs(term=1, leader_id=0, prev_log_index=0, prev_log_term=0)
    assert args.entries == []
    assert args.leader_commit == 0


def test_append_entries_default_lists_are_not_shared():
    a = AppendEntriesArgs(1, 0, 0, 0)
    b = AppendEntriesArgs(1, 0, 0, 0)
    a.entries.append(Entry(1, 1, "x"))
    assert b.entries == []
    assert len(a.entries) == 1


def test_append_entries_carries_entries_in_order():
    entries = [Entry(i, 2, i * 10) for i in range(3, 6)]
    args = AppendEntriesArgs(2, 1, 2, 1, entries, leader_commit=2)
    assert [e.index for e in args.entries] == [3, 4, 5]
    assert args.entries[-1].command == 50


def test_append_entries_reply_hints_start_unset():
    reply = AppendEntriesReply()
    assert reply.success is False
    assert (reply.x_index, reply.x_term, reply.x_len) == (-1, -1, -1)


def test_install_snapshot_is_sent_whole():
    args = InstallSnapshotArgs(term=3, leader_id=1, last_included_index=20,
                               last_included_term=2, data=b"snap")
    assert args.offset == 0
    assert args.done is True
    assert args.data == b"snap"
    reply = InstallSnapshotReply()
    assert reply.term == 0 and reply.success is False


def test_replies_are_mutable_for_handlers():
    reply = AppendEntriesReply()
    reply.term, reply.success = 7, True
    assert reply == AppendEntriesReply(term=7, success=True)