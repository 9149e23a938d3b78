import dataclasses

import pytest

from raftkit.raftapi import ApplyMsg, PeerEnd, Raft


class _FixedRaft(Raft):
    def __init__(self):
        self.log = []
        self.dead = False
        self.snap = None

    def start(self, command):
        self.log.append(command)
        return len(self.log), 1, True

    def get_state(self):
        return 1, not self.dead

    def snapshot(self, index, snapshot):
        self.snap = (index, snapshot)

    def persist_bytes(self):
        return sum(len(str(c)) for c in self.log)

    def kill(self):
        self.dead = True


class _EchoEnd(PeerEnd):
    def __init__(self, reachable):
        self.reachable = reachable

    def call(self, method, args):
        if not self.reachable:
            return None
        return (method, args)


class _IncompleteEnd(PeerEnd):
    pass


def test_apply_msg_defaults_are_empty():
    msg = ApplyMsg()
    assert msg.command_valid is False
    assert msg.snapshot_valid is False
    assert msg.command is None
    assert msg.command_index == 0
    assert msg.snapshot == b""
    assert (msg.snapshot_term, msg.snapshot_index) == (0, 0)


def test_apply_msg_command_fields_round_trip():
    msg = ApplyMsg(command_valid=True, command="put x", command_index=7)
    assert msg.command_valid
    assert msg.command == "put x"
    assert msg.command_index == 7
    assert msg == ApplyMsg(command_valid=True, command="put x", command_index=7)


def test_apply_msg_snapshot_fields_round_trip():
    msg = ApplyMsg(snapshot_valid=True, snapshot=b"state", snapshot_term=3, snapshot_index=9)
    assert msg.snapshot_valid and not msg.command_valid
    assert msg.snapshot == b"state"
    assert (msg.snapshot_term, msg.snapshot_index) == (3, 9)


def test_apply_msg_is_immutable():
    msg = ApplyMsg(command_valid=True, command=1, command_index=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        msg.command_index = 2
    assert msg.command_index == 1
    changed = dataclasses.replace(msg, command_index=2)
    assert changed.command_index == 2
    assert msg.command_index == 1


def test_raft_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Raft()
    for name in ("start", "get_state", "snapshot", "persist_bytes", "kill"):
        assert name in Raft.__abstractmethods__


def test_complete_raft_implementation_feeds_apply_messages():
    rf: Raft = _FixedRaft()
    index, term, ok = rf.start("a")
    msg = ApplyMsg(command_valid=ok, command="a", command_index=index)
    assert msg == ApplyMsg(command_valid=True, command="a", command_index=1)
    assert term == 1
    assert rf.start("b") == (2, 1, True)
    rf.snapshot(2, b"snap")
    snap_msg = ApplyMsg(snapshot_valid=True, snapshot=rf.snap[1], snapshot_index=rf.snap[0])
    assert (snap_msg.snapshot, snap_msg.snapshot_index) == (b"snap", 2)
    rf.kill()
    assert rf.get_state() == (1, False)


def test_peer_end_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        PeerEnd()
    with pytest.raises(TypeError):
        _IncompleteEnd()
    assert "call" in PeerEnd.__abstractmethods__


def test_peer_end_lost_call_yields_no_valid_command():
    lost = _EchoEnd(False).call("Raft.RequestVote", 1)
    got = _EchoEnd(True).call("Raft.RequestVote", 1)
    assert lost is None
    assert got == ("Raft.RequestVote", 1)
    lost_msg = ApplyMsg(command_valid=lost is not None, command=lost, command_index=1)
    got_msg = ApplyMsg(command_valid=got is not None, command=got, command_index=1)
    assert lost_msg == ApplyMsg(command_index=1)
    assert got_msg.command_valid is True
    assert got_msg.command == ("Raft.RequestVote", 1)