"""Tests for PoolEngine.withdraw."""

from __future__ import annotations

import pytest

from feeamm.core.engine import PoolEngine
from feeamm.core.errors import (
    InsufficientLiquidity,
    PoolLocked,
    SlippageExceeded,
    TransferError,
    ZeroAmount,
)
from feeamm.integration.ledger import InMemoryLedger
from feeamm.state.assets import AssetDescriptor, plain_asset, transfer_fee_asset
from feeamm.state.pools import PoolConfig, PoolState

ALICE = "alice"
BOB = "bob"
FUNDS = 100_000_000


def _seeded(
    x: AssetDescriptor = plain_asset("X"),
    y: AssetDescriptor = plain_asset("Y"),
) -> tuple[PoolEngine, InMemoryLedger, PoolConfig, int]:
    ledger = InMemoryLedger()
    for desc in (x, y):
        ledger.register_asset(desc)
        for who in (ALICE, BOB):
            ledger.mint(desc.identity, who, FUNDS)
    engine = PoolEngine(ledger)
    cfg = engine.initialize_pool("seed", x, y, 30, creator=ALICE)
    r = engine.deposit(cfg.accounts(), owner=ALICE, amount_x=1_000_000, amount_y=4_000_000, min_lp_out=0)
    return engine, ledger, cfg, r.lp_minted


def test_partial_withdraw() -> None:
    engine, ledger, cfg, _ = _seeded()
    r = engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=500_000, min_amount_x=250_000, min_amount_y=1_000_000)
    assert (r.amount_x_sent, r.amount_y_sent) == (250_000, 1_000_000)
    assert (r.amount_x_delivered, r.amount_y_delivered) == (250_000, 1_000_000)
    assert r.lp_burned == 500_000
    assert engine.pool_state(cfg.pool_id) == PoolState(reserve_x=750_000, reserve_y=3_000_000, lp_supply=1_500_000)
    assert ledger.balance_of(cfg.lp_asset, ALICE) == 1_500_000
    assert ledger.supply_of(cfg.lp_asset) == 1_500_000
    assert ledger.balance_of("X", ALICE) == FUNDS - 750_000


def test_full_withdraw_empties_pool_and_allows_reseeding() -> None:
    engine, ledger, cfg, lp = _seeded()
    engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=lp, min_amount_x=0, min_amount_y=0)
    assert engine.pool_state(cfg.pool_id) == PoolState()
    assert ledger.balance_of("X", cfg.vault_x) == 0

    r = engine.deposit(cfg.accounts(), owner=BOB, amount_x=9, amount_y=16, min_lp_out=12)
    assert r.lp_minted == 12


def test_outbound_transfer_fee_is_borne_by_recipient() -> None:
    engine, ledger, cfg, lp = _seeded(x=transfer_fee_asset("X", 100))
    before = engine.pool_state(cfg.pool_id)
    r = engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=lp // 2, min_amount_x=0, min_amount_y=0)
    assert r.amount_x_sent == (lp // 2) * before.reserve_x // before.lp_supply
    assert r.amount_x_delivered == r.amount_x_sent - r.amount_x_sent * 100 // 10_000
    assert engine.pool_state(cfg.pool_id).reserve_x == before.reserve_x - r.amount_x_sent
    assert ledger.balance_of("X", cfg.vault_x) == engine.pool_state(cfg.pool_id).reserve_x


def test_zero_and_excess_amounts() -> None:
    engine, _, cfg, lp = _seeded()
    with pytest.raises(ZeroAmount):
        engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=0, min_amount_x=0, min_amount_y=0)
    with pytest.raises(InsufficientLiquidity):
        engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=lp + 1, min_amount_x=0, min_amount_y=0)


def test_slippage_checked_before_burn() -> None:
    engine, ledger, cfg, lp = _seeded()
    before = engine.pool_state(cfg.pool_id)
    with pytest.raises(SlippageExceeded) as exc:
        engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=500_000, min_amount_x=0, min_amount_y=1_000_001)
    assert exc.value.what == "amount_y"
    assert engine.pool_state(cfg.pool_id) == before
    assert ledger.balance_of(cfg.lp_asset, ALICE) == lp


def test_withdraw_without_shares_fails_in_ledger() -> None:
    engine, ledger, cfg, _ = _seeded()
    before = engine.pool_state(cfg.pool_id)
    with pytest.raises(TransferError):
        engine.withdraw(cfg.accounts(), owner=BOB, lp_amount=1_000, min_amount_x=0, min_amount_y=0)
    assert engine.pool_state(cfg.pool_id) == before
    assert ledger.balance_of("X", BOB) == FUNDS


def test_locked_pool_rejects_withdraw() -> None:
    engine, _, cfg, lp = _seeded()
    engine.lock_pool(cfg.pool_id, authority=ALICE)
    with pytest.raises(PoolLocked):
        engine.withdraw(cfg.accounts(), owner=ALICE, lp_amount=lp, min_amount_x=0, min_amount_y=0)
