# [TESTER] v1

from __future__ import annotations

import pytest

from feeamm.state.pools import (
    PoolConfig,
    PoolState,
    derive_identity,
    pool_config_from_dict,
    pool_config_to_dict,
    pool_state_from_dict,
    pool_state_to_dict,
)


def _config(**kw) -> PoolConfig:
    args = dict(seed=7, asset_x="X", asset_y="Y", trade_fee_bps=30, creator="alice")
    args.update(kw)
    return PoolConfig.derive(**args)


def test_derive_identity_is_deterministic_and_role_separated() -> None:
    assert derive_identity("pool", "abc") == derive_identity("pool", "abc")
    assert derive_identity("pool", "abc") != derive_identity("lp_mint", "abc")
    assert derive_identity("pool", "abc").startswith("0x")
    with pytest.raises(ValueError):
        derive_identity("", "abc")


def test_same_seed_derives_same_identities() -> None:
    a = _config()
    b = _config()
    assert a == b
    assert len({a.pool_id, a.lp_asset, a.authority, a.vault_x, a.vault_y}) == 5


def test_different_seed_derives_different_pool() -> None:
    assert _config(seed=7).pool_id != _config(seed=8).pool_id
    assert _config(seed="7").pool_id != _config(seed=7).pool_id


def test_seed_validation() -> None:
    with pytest.raises(TypeError):
        _config(seed=True)
    with pytest.raises(ValueError):
        _config(seed=-1)
    with pytest.raises(ValueError):
        _config(seed=2**64)
    with pytest.raises(ValueError):
        _config(seed="")


def test_config_rejects_bad_parameters() -> None:
    with pytest.raises(ValueError):
        _config(asset_y="X")
    with pytest.raises(ValueError):
        _config(trade_fee_bps=1_001)
    with pytest.raises(ValueError):
        _config(allowlist=frozenset(f"p{i}" for i in range(11)))


def test_permits_depositor() -> None:
    assert _config().permits_depositor("anyone")
    restricted = _config(allowlist={"alice"})
    assert isinstance(restricted.allowlist, frozenset)
    assert restricted.permits_depositor("alice")
    assert not restricted.permits_depositor("bob")


def test_accounts_mirror_config() -> None:
    cfg = _config()
    acc = cfg.accounts()
    assert acc.pool_id == cfg.pool_id
    assert (acc.vault_x, acc.vault_y) == (cfg.vault_x, cfg.vault_y)
    assert acc.authority == cfg.authority


def test_pool_state_rejects_negative_and_non_int() -> None:
    with pytest.raises(ValueError):
        PoolState(reserve_x=-1)
    with pytest.raises(TypeError):
        PoolState(lp_supply=1.5)
    s = PoolState(reserve_x=10, reserve_y=20, lp_supply=14)
    assert s.is_seeded
    assert s.get_constant_product() == 200
    assert "reserves=(10, 20)" in repr(s)


def test_snapshot_dicts() -> None:
    cfg = _config(allowlist={"zed", "alice"})
    d = pool_config_to_dict(cfg)
    assert d["allowlist"] == ["alice", "zed"]
    assert pool_config_from_dict(d) == cfg

    s = PoolState(reserve_x=1, reserve_y=2, lp_supply=1, locked=True)
    assert pool_state_from_dict(pool_state_to_dict(s)) == s
    with pytest.raises(TypeError):
        pool_state_from_dict({"reserve_x": 0, "reserve_y": 0, "lp_supply": 0, "locked": 1})
    with pytest.raises(KeyError):
        pool_state_from_dict({"reserve_x": 0})
