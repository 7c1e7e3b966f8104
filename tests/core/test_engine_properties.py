"""Property tests for the pool engine and its math kernels.

Uses Hypothesis to drive random operation sequences and check that reserves,
LP supply and vault balances stay consistent after every step.
"""

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given, settings

from feeamm.core.cpmm import compute_lp_burn, swap_exact_in
from feeamm.core.engine import PoolEngine, SwapDirection
from feeamm.core.errors import AmmError
from feeamm.core.fees import transfer_fee_excluded_amount, transfer_fee_included_amount
from feeamm.core.invariants import check_all
from feeamm.integration.ledger import InMemoryLedger
from feeamm.state.assets import plain_asset, transfer_fee_asset

USERS = ("alice", "bob", "carol")
FUNDS = 10**15

reserve = st.integers(min_value=1, max_value=10**12)
fee_bps = st.integers(min_value=0, max_value=1_000)


def _engine(x_bps: int, y_bps: int, trade_fee: int):
    ledger = InMemoryLedger()
    x = transfer_fee_asset("X", x_bps) if x_bps else plain_asset("X")
    y = transfer_fee_asset("Y", y_bps, 1_000) if y_bps else plain_asset("Y")
    for desc in (x, y):
        ledger.register_asset(desc)
        for who in USERS:
            ledger.mint(desc.identity, who, FUNDS)
    engine = PoolEngine(ledger)
    cfg = engine.initialize_pool("prop", x, y, trade_fee, creator="alice")
    return engine, ledger, cfg


op = st.one_of(
    st.tuples(st.just("deposit"), st.sampled_from(USERS), st.integers(0, 10**9), st.integers(0, 10**9)),
    st.tuples(st.just("withdraw"), st.sampled_from(USERS), st.integers(0, 10**6), st.just(0)),
    st.tuples(st.just("swap_xy"), st.sampled_from(USERS), st.integers(0, 10**9), st.just(0)),
    st.tuples(st.just("swap_yx"), st.sampled_from(USERS), st.integers(0, 10**9), st.just(0)),
)


@settings(max_examples=60, deadline=None)
@given(
    x_bps=st.sampled_from([0, 30, 100, 2_500]),
    y_bps=st.sampled_from([0, 50, 9_999]),
    trade_fee=fee_bps,
    ops=st.lists(op, min_size=1, max_size=25),
)
def test_random_operations_keep_pool_consistent(x_bps, y_bps, trade_fee, ops) -> None:
    engine, ledger, cfg = _engine(x_bps, y_bps, trade_fee)
    accounts = cfg.accounts()
    for kind, who, a, b in ops:
        before = engine.pool_state(cfg.pool_id)
        try:
            if kind == "deposit":
                engine.deposit(accounts, owner=who, amount_x=a, amount_y=b, min_lp_out=0)
            elif kind == "withdraw":
                held = ledger.balance_of(cfg.lp_asset, who)
                engine.withdraw(accounts, owner=who, lp_amount=min(a, held), min_amount_x=0, min_amount_y=0)
            else:
                direction = SwapDirection.X_TO_Y if kind == "swap_xy" else SwapDirection.Y_TO_X
                engine.swap(accounts, trader=who, direction=direction, amount_in=a, min_amount_out=0)
        except AmmError:
            assert engine.pool_state(cfg.pool_id) == before
        state = engine.pool_state(cfg.pool_id)
        assert check_all(state) == []
        assert ledger.balance_of("X", cfg.vault_x) == state.reserve_x
        assert ledger.balance_of("Y", cfg.vault_y) == state.reserve_y
        assert ledger.supply_of(cfg.lp_asset) == state.lp_supply
        if kind.startswith("swap") and before.lp_supply:
            assert state.get_constant_product() >= before.get_constant_product()
        for asset in ("X", "Y", cfg.lp_asset):
            assert ledger.verify_conservation(asset)


@settings(max_examples=200, deadline=None)
@given(
    rx=reserve,
    ry=reserve,
    ax=st.integers(min_value=1, max_value=10**12),
    ay=st.integers(min_value=1, max_value=10**12),
)
def test_deposit_then_withdraw_never_profits(rx, ry, ax, ay) -> None:
    engine, ledger, cfg = _engine(0, 0, 30)
    engine.deposit(cfg.accounts(), owner="alice", amount_x=rx, amount_y=ry, min_lp_out=0)
    try:
        dep = engine.deposit(cfg.accounts(), owner="bob", amount_x=ax, amount_y=ay, min_lp_out=0)
    except AmmError:
        return
    wd = engine.withdraw(cfg.accounts(), owner="bob", lp_amount=dep.lp_minted, min_amount_x=0, min_amount_y=0)
    assert wd.amount_x_sent <= dep.amount_x_received
    assert wd.amount_y_sent <= dep.amount_y_received


@settings(max_examples=300, deadline=None)
@given(
    rin=reserve,
    rout=reserve,
    a1=st.integers(min_value=1, max_value=10**13),
    a2=st.integers(min_value=1, max_value=10**13),
    fee=fee_bps,
)
def test_swap_output_monotone_in_amount(rin, rout, a1, a2, fee) -> None:
    lo, hi = sorted((a1, a2))
    assert swap_exact_in(rin, rout, lo, fee).amount_out <= swap_exact_in(rin, rout, hi, fee).amount_out


@settings(max_examples=300, deadline=None)
@given(rin=reserve, rout=reserve, amount=st.integers(min_value=1, max_value=10**13), f1=fee_bps, f2=fee_bps)
def test_swap_output_non_increasing_in_fee(rin, rout, amount, f1, f2) -> None:
    lo, hi = sorted((f1, f2))
    assert swap_exact_in(rin, rout, amount, lo).amount_out >= swap_exact_in(rin, rout, amount, hi).amount_out


@settings(max_examples=300, deadline=None)
@given(rin=reserve, rout=reserve, amount=st.integers(min_value=1, max_value=10**30), fee=fee_bps)
def test_swap_never_drains_reserve(rin, rout, amount, fee) -> None:
    r = swap_exact_in(rin, rout, amount, fee)
    assert r.amount_out < rout
    assert r.k_after >= r.k_before


@settings(max_examples=300, deadline=None)
@given(
    rx=reserve,
    ry=reserve,
    supply=st.integers(min_value=1, max_value=10**12),
    data=st.data(),
)
def test_withdraw_is_proportional(rx, ry, supply, data) -> None:
    lp = data.draw(st.integers(min_value=1, max_value=supply))
    out_x, out_y = compute_lp_burn(lp, rx, ry, supply)
    assert out_x * supply <= lp * rx
    assert out_y * supply <= lp * ry
    assert (rx - out_x) * supply >= rx * (supply - lp)


@settings(max_examples=300, deadline=None)
@given(
    bps=st.integers(min_value=0, max_value=9_999),
    cap=st.one_of(st.none(), st.integers(min_value=0, max_value=10**9)),
    net=st.integers(min_value=1, max_value=10**12),
)
def test_included_transfer_amount_is_exact_and_minimal(bps, cap, net) -> None:
    asset = transfer_fee_asset("F", bps, cap)
    gross, fee = transfer_fee_included_amount(asset, net, epoch=0)
    assert gross - fee == net
    assert transfer_fee_excluded_amount(asset, gross, epoch=0) == (net, fee)
    assert transfer_fee_excluded_amount(asset, gross - 1, epoch=0)[0] < net
