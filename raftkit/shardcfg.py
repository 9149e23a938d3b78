"""Shard configurations: which replica group serves each shard."""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

NSHARDS = 12
NUM_FIRST = 1
GID1 = 1


class ConfigError(Exception):
    """Raised when a configuration is malformed or an operation on it is invalid."""


def key2shard(key: str) -> int:
    """Return the shard a key belongs to (32-bit FNV-1a hash modulo NSHARDS)."""
    h = 0x811C9DC5
    for b in key.encode("utf-8"):
        h ^= b
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h % NSHARDS


def _default_shards() -> list[int]:
    return [0] * NSHARDS


@dataclass
class ShardConfig:
    """An assignment of shards to groups, with the servers of each group."""

    num: int = 0
    shards: list[int] = field(default_factory=_default_shards)
    groups: dict[int, list[str]] = field(default_factory=dict)

    def to_string(self) -> str:
        """Serialise to JSON."""
        doc = {
            "Num": self.num,
            "Shards": list(self.shards),
            "Groups": {str(gid): list(self.groups[gid]) for gid in sorted(self.groups)},
        }
        return json.dumps(doc, separators=(",", ":"))

    def __str__(self) -> str:
        return self.to_string()

    def copy(self) -> "ShardConfig":
        return ShardConfig(
            num=self.num,
            shards=list(self.shards),
            groups={gid: list(srvs) for gid, srvs in self.groups.items()},
        )

    def _analyze(self) -> tuple[int, int, int, int]:
        """Return (most-loaded gid, its count, least-loaded gid, its count)."""
        counts = Counter(self.shards)
        mn, mg = -1, -1
        ln, lg = 257, -1
        for g in sorted(self.groups):
            if counts[g] < ln:
                ln, lg = counts[g], g
            if counts[g] > mn:
                mn, mg = counts[g], g
        return mg, mn, lg, ln

    def rebalance(self) -> None:
        """Balance the assignment of shards to groups in place."""
        if not self.groups:
            self.shards = _default_shards()
            return
        for s, g in enumerate(self.shards):
            if g not in self.groups:
                self.shards[s] = self._analyze()[2]
        while True:
            mg, mn, lg, ln = self._analyze()
            if mn < ln + 2:
                break
            self.shards[self.shards.index(mg)] = lg

    def join(self, servers: Mapping[int, Iterable[str]]) -> bool:
        """Add groups; return False if one of them is already present."""
        changed = False
        for gid, srvs in servers.items():
            srvs = list(srvs)
            if gid in self.groups:
                log.info("re-Join %s", gid)
                return False
            for xgid, xservers in self.groups.items():
                for s1 in xservers:
                    if s1 in srvs:
                        raise ConfigError(
                            f"Join({gid}) puts server {s1} in groups {xgid} and {gid}"
                        )
            self.groups[gid] = srvs
            changed = True
        if not changed:
            raise ConfigError("Join but no change")
        self.num += 1
        return True

    def leave(self, gids: Iterable[int]) -> bool:
        """Remove groups; return False if one of them is not present."""
        changed = False
        for gid in gids:
            if gid not in self.groups:
                log.info("Leave(%s) but not in config", gid)
                return False
            del self.groups[gid]
            changed = True
        if not changed:
            raise ConfigError("Leave but no change")
        self.num += 1
        return True

    def join_balance(self, servers: Mapping[int, Iterable[str]]) -> bool:
        if not self.join(servers):
            return False
        self.rebalance()
        return True

    def leave_balance(self, gids: Iterable[int]) -> bool:
        if not self.leave(gids):
            return False
        self.rebalance()
        return True

    def gid_servers(self, shard: int) -> tuple[int, list[str] | None]:
        """Return the shard's group and that group's servers (None if unknown)."""
        gid = self.shards[shard]
        return gid, self.groups.get(gid)

    def is_member(self, gid: int) -> bool:
        """True if some shard is assigned to gid."""
        return gid in self.shards

    def check_config(self, groups: Iterable[int]) -> None:
        """Raise ConfigError unless exactly these groups exist and shards are balanced."""
        groups = list(groups)
        if len(self.groups) != len(groups):
            raise ConfigError(f"wanted {len(groups)} groups, got {len(self.groups)}")
        for g in groups:
            if g not in self.groups:
                raise ConfigError(f"missing group {g}")
        if groups:
            for s, g in enumerate(self.shards):
                if g not in self.groups:
                    raise ConfigError(f"shard {s} -> invalid group {g}")
        counts = Counter(self.shards)
        lo, hi = 257, 0
        for g in self.groups:
            hi = max(hi, counts[g])
            lo = min(lo, counts[g])
        if hi > lo + 1:
            raise ConfigError(f"max {hi} too much larger than min {lo}")


def from_string(s: str) -> ShardConfig:
    """Parse a configuration produced by ShardConfig.to_string."""
    try:
        doc = json.loads(s)
        num = int(doc.get("Num") or 0)
        shards = [int(g) for g in (doc.get("Shards") or [])][:NSHARDS]
        shards += [0] * (NSHARDS - len(shards))
        groups = {
            int(gid): list(srvs or []) for gid, srvs in (doc.get("Groups") or {}).items()
        }
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConfigError(f"Unmarshall err {exc}") from exc
    return ShardConfig(num=num, shards=shards, groups=groups)