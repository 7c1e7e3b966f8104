"""
Fee kernels (deterministic, integer-only).

Two independent fee layers live here and are never mixed:

- the **trading fee** the pool charges on swap input. It stays in the input
  reserve, so it grows k for every LP;
- the **transfer fee** an asset's own transfer mechanism skims in flight. The
  pool does not collect it; it only changes how much actually arrives.
"""

from __future__ import annotations

from typing import Optional, Tuple

from ..state.assets import AssetDescriptor, BPS_DENOM, TransferFee
from .errors import TransferFeeCalculationError


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def _require_amount(name: str, value: int) -> None:
    _require_int(name, value)
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")


def trade_fee(amount_in: int, fee_bps: int) -> int:
    """
    Pool trading fee on a swap input:

        fee = floor(amount_in * fee_bps / 10_000)
    """
    _require_amount("amount_in", amount_in)
    _require_int("fee_bps", fee_bps)
    if not (0 <= fee_bps <= BPS_DENOM):
        raise ValueError(f"fee_bps must be in [0, {BPS_DENOM}]: {fee_bps}")
    return (amount_in * fee_bps) // BPS_DENOM


def apply_trade_fee(amount_in: int, fee_bps: int) -> Tuple[int, int]:
    """Return (fee_amount, net_in)."""
    fee = trade_fee(amount_in, fee_bps)
    return fee, amount_in - fee


def transfer_fee(amount: int, basis_points: int, maximum_fee: Optional[int] = None) -> int:
    """
    Fee an asset deducts when moving `amount`:

        fee = min(floor(amount * basis_points / 10_000), maximum_fee)

    A missing `maximum_fee` means the fee is uncapped.
    """
    _require_amount("amount", amount)
    _require_int("basis_points", basis_points)
    if not (0 <= basis_points < BPS_DENOM):
        raise ValueError(f"basis_points must be in [0, {BPS_DENOM}): {basis_points}")
    fee = (amount * basis_points) // BPS_DENOM
    if maximum_fee is not None:
        _require_amount("maximum_fee", maximum_fee)
        fee = min(fee, maximum_fee)
    return fee


def epoch_transfer_fee(asset: AssetDescriptor, amount: int, epoch: int) -> int:
    """Transfer fee `asset` deducts on `amount` during `epoch` (0 for plain assets)."""
    rate = asset.epoch_fee(epoch)
    if rate is None:
        _require_amount("amount", amount)
        return 0
    return transfer_fee(amount, rate.basis_points, rate.maximum_fee)


def transfer_fee_excluded_amount(asset: AssetDescriptor, amount: int, epoch: int) -> Tuple[int, int]:
    """
    Amount that arrives when `amount` is sent.

    Returns (amount_after_fee, fee).
    """
    fee = epoch_transfer_fee(asset, amount, epoch)
    return amount - fee, fee


def _inverse_fee_gross(net: int, rate: TransferFee) -> int:
    # delivered(g) = g - min(floor(g*b/D), M) = max(ceil(g*(D-b)/D), g - M)
    # The smallest g with delivered(g) >= net is min(g_uncapped, net + M), and
    # delivered is exactly `net` there because each +1 of g adds at most 1.
    b = rate.basis_points
    g_uncapped = ((net - 1) * BPS_DENOM) // (BPS_DENOM - b) + 1
    if rate.maximum_fee is None:
        return g_uncapped
    return min(g_uncapped, net + rate.maximum_fee)


def transfer_fee_included_amount(asset: AssetDescriptor, net: int, epoch: int) -> Tuple[int, int]:
    """
    Smallest amount to send so that exactly `net` arrives.

    Returns (gross_amount, fee). The result is verified by recomputing the
    forward fee; a mismatch raises TransferFeeCalculationError.
    """
    _require_amount("net", net)
    if net == 0:
        return 0, 0
    rate = asset.epoch_fee(epoch)
    if rate is None:
        return net, 0

    gross = _inverse_fee_gross(net, rate)
    fee = gross - net
    check = transfer_fee(gross, rate.basis_points, rate.maximum_fee)
    if check != fee:
        raise TransferFeeCalculationError(
            f"inverse transfer fee mismatch for {asset.identity}: {check} != {fee}"
        )
    return gross, fee
