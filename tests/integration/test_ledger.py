from __future__ import annotations

import pytest

from feeamm.core.errors import TransferError
from feeamm.integration.ledger import InMemoryLedger
from feeamm.state.assets import AssetDescriptor, Extension, TransferFee, TransferFeeConfig, plain_asset, transfer_fee_asset


def _ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.register_asset(plain_asset("P"))
    ledger.register_asset(transfer_fee_asset("F", 100, 50))
    ledger.mint("P", "alice", 1_000_000)
    ledger.mint("F", "alice", 1_000_000)
    return ledger


def test_plain_transfer() -> None:
    ledger = _ledger()
    assert ledger.transfer("P", "alice", "bob", 400, "alice") == 400
    assert ledger.balance_of("P", "alice") == 999_600
    assert ledger.balance_of("P", "bob") == 400
    assert ledger.verify_conservation("P")


def test_fee_transfer_withholds_fee() -> None:
    ledger = _ledger()
    assert ledger.transfer("F", "alice", "bob", 1_000, "alice") == 990
    assert ledger.transfer("F", "alice", "bob", 100_000, "alice") == 99_950
    assert ledger.withheld_fees("F") == 60
    assert ledger.balance_of("F", "alice") == 1_000_000 - 101_000
    assert ledger.verify_conservation("F")


def test_epoch_schedule_applies_after_set_epoch() -> None:
    ledger = InMemoryLedger()
    ledger.register_asset(
        AssetDescriptor(
            identity="S",
            extensions={Extension.TRANSFER_FEE_CONFIG},
            transfer_fee=TransferFeeConfig(
                older=TransferFee(epoch=0, basis_points=0),
                newer=TransferFee(epoch=3, basis_points=1_000),
            ),
        )
    )
    ledger.mint("S", "alice", 10_000)
    assert ledger.transfer("S", "alice", "bob", 1_000, "alice") == 1_000
    ledger.set_epoch(3)
    assert ledger.current_epoch() == 3
    assert ledger.transfer("S", "alice", "bob", 1_000, "alice") == 900
    with pytest.raises(ValueError):
        ledger.set_epoch(2)


def test_transfer_failures() -> None:
    ledger = _ledger()
    with pytest.raises(TransferError):
        ledger.transfer("P", "alice", "bob", 10, "mallory")
    with pytest.raises(TransferError):
        ledger.transfer("P", "alice", "bob", 2_000_000, "alice")
    with pytest.raises(TransferError):
        ledger.transfer("P", "alice", "alice", 1, "alice")
    with pytest.raises(TransferError):
        ledger.transfer("NOPE", "alice", "bob", 1, "alice")
    with pytest.raises(TransferError):
        ledger.transfer("P", "alice", "bob", -1, "alice")
    assert ledger.balance_of("P", "alice") == 1_000_000


def test_account_ownership() -> None:
    ledger = _ledger()
    ledger.open_account("vault", "pool-authority")
    ledger.transfer("P", "alice", "vault", 500, "alice")
    with pytest.raises(TransferError):
        ledger.transfer("P", "vault", "alice", 100, "vault")
    assert ledger.transfer("P", "vault", "alice", 100, "pool-authority") == 100
    ledger.open_account("vault", "pool-authority")
    with pytest.raises(TransferError):
        ledger.open_account("vault", "someone-else")


def test_lp_asset_lifecycle() -> None:
    ledger = _ledger()
    with pytest.raises(TransferError):
        ledger.create_lp_asset(transfer_fee_asset("LPF", 10), mint_authority="auth")
    ledger.create_lp_asset(plain_asset("LP"), mint_authority="auth")
    with pytest.raises(TransferError):
        ledger.create_lp_asset(plain_asset("LP"), mint_authority="auth")
    with pytest.raises(TransferError):
        ledger.mint_lp_shares("LP", "alice", 10, "mallory")
    ledger.mint_lp_shares("LP", "alice", 10, "auth")
    assert ledger.supply_of("LP") == 10
    ledger.burn_lp_shares("LP", "alice", 4)
    assert (ledger.balance_of("LP", "alice"), ledger.supply_of("LP")) == (6, 6)
    with pytest.raises(TransferError):
        ledger.burn_lp_shares("LP", "alice", 7)


def test_atomic_rolls_back_on_error() -> None:
    ledger = _ledger()
    with pytest.raises(RuntimeError):
        with ledger.atomic():
            ledger.transfer("F", "alice", "bob", 10_000, "alice")
            ledger.open_account("vault", "auth")
            raise RuntimeError("boom")
    assert ledger.balance_of("F", "alice") == 1_000_000
    assert ledger.balance_of("F", "bob") == 0
    assert ledger.withheld_fees("F") == 0
    assert ledger.controller_of("vault") == "vault"


def test_atomic_commits_on_success() -> None:
    ledger = _ledger()
    with ledger.atomic():
        ledger.transfer("P", "alice", "bob", 10, "alice")
    assert ledger.balance_of("P", "bob") == 10
