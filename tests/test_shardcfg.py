import pytest

from raftkit.shardcfg import (
    GID1,
    NSHARDS,
    ConfigError,
    ShardConfig,
    from_string,
    key2shard,
)


def check_same_config(c1, c2):
    assert c1.num == c2.num
    assert c1.shards == c2.shards
    assert len(c1.groups) == len(c2.groups)
    for gid, sa in c1.groups.items():
        assert gid in c2.groups
        assert c2.groups[gid] == sa


def test_basic():
    gid1, gid2 = 1, 2
    cfg = ShardConfig()
    cfg.check_config([])

    cfg.join_balance({gid1: ["x", "y", "z"]})
    cfg.check_config([gid1])

    cfg.join_balance({gid2: ["a", "b", "c"]})
    cfg.check_config([gid1, gid2])

    assert cfg.groups[gid1] == ["x", "y", "z"]
    assert cfg.groups[gid2] == ["a", "b", "c"]

    cfg.leave_balance([gid1])
    cfg.check_config([gid2])

    cfg.leave_balance([gid2])
    cfg.check_config([])


def test_first_join_assigns_all_shards():
    cfg = ShardConfig()
    assert cfg.join_balance({GID1: ["xxx"]})
    assert cfg.num == 1
    assert cfg.shards == [GID1] * NSHARDS
    cfg.check_config([GID1])


def test_string_round_trip():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x", "y"]})
    cfg.join_balance({2: ["a"]})
    check_same_config(cfg, from_string(cfg.to_string()))
    check_same_config(cfg, from_string(str(cfg)))


def test_from_string_rejects_garbage():
    with pytest.raises(ConfigError):
        from_string("not json")


def test_copy_is_deep():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    cp = cfg.copy()
    check_same_config(cfg, cp)
    cp.groups[1].append("y")
    cp.shards[0] = 7
    assert cfg.groups[1] == ["x"]
    assert cfg.shards[0] == 1


def test_rejoin_returns_false():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    assert cfg.join_balance({1: ["q"]}) is False
    assert cfg.num == 1


def test_leave_missing_returns_false():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    assert cfg.leave_balance([5]) is False
    assert cfg.num == 1


def test_join_shared_server_raises():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    with pytest.raises(ConfigError):
        cfg.join({2: ["x"]})


def test_empty_join_and_leave_raise():
    cfg = ShardConfig()
    with pytest.raises(ConfigError):
        cfg.join({})
    with pytest.raises(ConfigError):
        cfg.leave([])


def test_key2shard_range_and_empty_key():
    assert key2shard("") == 1
    for k in ["a", "b", "key", "hello world", "0"]:
        assert 0 <= key2shard(k) < NSHARDS
        assert key2shard(k) == key2shard(k)


def test_gid_servers_and_membership():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    cfg.join_balance({2: ["a", "b"]})
    for s in range(NSHARDS):
        gid, srvs = cfg.gid_servers(s)
        assert srvs == cfg.groups[gid]
    assert cfg.is_member(1)
    assert cfg.is_member(2)
    assert not cfg.is_member(3)
    empty = ShardConfig()
    assert empty.gid_servers(0) == (0, None)


def test_many_groups_balanced():
    cfg = ShardConfig()
    gids = list(range(1, 9))
    for g in gids:
        cfg.join_balance({g: [f"s{g}"]})
        cfg.check_config(gids[: g])
    assert cfg.num == len(gids)
    for g in gids[:4]:
        cfg.leave_balance([g])
    cfg.check_config(gids[4:])
    assert all(cfg.is_member(g) for g in gids[4:])


def test_check_config_detects_problems():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    with pytest.raises(ConfigError):
        cfg.check_config([1, 2])
    with pytest.raises(ConfigError):
        cfg.check_config([2])
    cfg.join({2: ["a"]})  # no rebalance: group 2 has no shards
    with pytest.raises(ConfigError):
        cfg.check_config([1, 2])