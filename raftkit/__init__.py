"""Raft consensus peer, shard configurations and test-run annotations."""

__version__ = "0.1.0"
__all__ = ["annotation", "messages", "node", "persister", "raftapi", "shardcfg"]