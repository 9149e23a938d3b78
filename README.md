# raftkit

Building blocks for replicated services built on the Raft consensus protocol.

## Modules

- `raftkit.node`: `RaftNode`, a Raft peer with leader election, log
  replication, persistence and snapshots, and `make(peers, me, persister,
  apply_queue)`, which creates a peer, restores its persisted state and starts
  its background threads. Committed entries and installed snapshots are put on
  `apply_queue` as `ApplyMsg` values. `Role` names the peer's role
  (`FOLLOWER`, `CANDIDATE`, `LEADER`).
- `raftkit.raftapi`: the abstract `Raft` interface (`start`, `get_state`,
  `snapshot`, `persist_bytes`, `kill`), the `ApplyMsg` record and the abstract
  `PeerEnd`, whose `call(method, args)` returns the reply or `None` when the
  request or reply was lost.
- `raftkit.messages`: the log `Entry` and the RPC records
  `RequestVoteArgs`/`RequestVoteReply`, `AppendEntriesArgs`/`AppendEntriesReply`
  and `InstallSnapshotArgs`/`InstallSnapshotReply`.
- `raftkit.persister`: `Persister`, an in-memory store that saves Raft state
  and a service snapshot together in one step.
- `raftkit.shardcfg`: `ShardConfig`, an assignment of `NSHARDS` (12) shards to
  replica groups with `join`, `leave`, `rebalance`, `join_balance`,
  `leave_balance`, `gid_servers`, `is_member` and `check_config`;
  `key2shard(key)` maps a key to its shard with 32-bit FNV-1a; `to_string()`
  and `from_string(s)` convert to and from JSON. Invalid operations raise
  `ConfigError`.
- `raftkit.annotation`: `Annotator`, which records `Annotation` points and
  intervals on a test timeline: checker results, network partitions and
  crashed servers.

## Installation

```
pip install .
```

## Example: shard configuration

```python
from raftkit.shardcfg import ShardConfig, from_string, key2shard

cfg = ShardConfig()
cfg.join_balance({1: ["a", "b", "c"]})
cfg.join_balance({2: ["d", "e", "f"]})
cfg.check_config([1, 2])          # raises ConfigError if unbalanced

gid, servers = cfg.gid_servers(key2shard("some-key"))
restored = from_string(cfg.to_string())
assert restored == cfg
```

## Example: a Raft peer

A peer reaches the others through `PeerEnd` objects that you supply. A
`PeerEnd.call` receives the method names `"Raft.RequestVote"`,
`"Raft.AppendEntries"` and `"Raft.InstallSnapshot"`; it should deliver the
arguments to the remote peer's `request_vote`, `append_entries` or
`install_snapshot` and return that method's reply, or `None` to model a lost
message. The entry for the peer itself may be `None`.

```python
import queue
from raftkit.node import make
from raftkit.persister import Persister

apply_queue = queue.Queue()
node = make(peers, 0, Persister(), apply_queue)   # peers: list of PeerEnd
index, term, is_leader = node.start("command")
term, is_leader = node.get_state()
msg = apply_queue.get()                           # ApplyMsg once committed
node.kill()
```

Persistent state (term, vote and log) is stored in the `Persister` with
`pickle`; a restarted peer built on the same persister resumes from it.

## What the package does not do

- There is no network or RPC transport: delivering messages between peers,
  and losing or delaying them, is up to your `PeerEnd` implementations.
- There is no key/value service, shard controller or client on top of the
  Raft peer; `ShardConfig` only computes and checks configurations.
- `Annotator` collects annotations in memory and returns them from
  `finalize()`/`finalize_with_end(end)`; it writes no visualisation files.
- There is no command-line program.

## Tests

```
pip install .[test]
pytest
```