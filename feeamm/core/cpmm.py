"""
Constant Product Market Maker (CPMM) math.

This module implements the curve operations with deterministic rounding rules.
All rounding favours the pool: outputs round down, required inputs round up.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Deterministic Rounding
- Time Complexity: O(1) per operation
- Invariant: After each swap, x' * y' >= x * y (the trading fee stays in the pool)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from ..state.assets import BPS_DENOM
from ..state.balances import Amount
from .fees import apply_trade_fee


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


@dataclass(frozen=True)
class SwapExactInResult:
    amount_out: int
    fee_amount: int
    net_in: int
    new_reserve_in: int
    new_reserve_out: int
    k_before: int
    k_after: int


@dataclass(frozen=True)
class SwapExactOutResult:
    amount_in: int
    amount_out: int
    fee_amount: int
    net_in: int
    new_reserve_in: int
    new_reserve_out: int
    k_before: int
    k_after: int


def _validate_swap_inputs(reserve_in: int, reserve_out: int, fee_bps: int) -> None:
    for name, v in (("reserve_in", reserve_in), ("reserve_out", reserve_out), ("fee_bps", fee_bps)):
        _require_int(name, v)
    if reserve_in < 0 or reserve_out < 0:
        raise ValueError(f"Reserves must be non-negative: ({reserve_in}, {reserve_out})")
    if reserve_in == 0 or reserve_out == 0:
        raise ValueError("cannot swap against an empty reserve")
    if not (0 <= fee_bps < BPS_DENOM):
        raise ValueError(f"fee_bps must be in [0, {BPS_DENOM}): {fee_bps}")


def swap_exact_in(
    reserve_in: Amount,
    reserve_out: Amount,
    amount_in: Amount,
    fee_bps: int,
) -> SwapExactInResult:
    """
    Quote an exact-in swap.

    This implements the CPMM formula:
        fee = floor(amount_in * fee_bps / 10_000)
        net_in = amount_in - fee
        amount_out = floor(reserve_out * net_in / (reserve_in + net_in))

    Post-swap reserves:
        new_reserve_in = reserve_in + amount_in  (fee stays in pool)
        new_reserve_out = reserve_out - amount_out

    `amount_out` may be zero for dust inputs; the caller decides whether that
    is acceptable.

    Raises:
        ValueError: If inputs are invalid or the invariant would decrease
    """
    _validate_swap_inputs(reserve_in, reserve_out, fee_bps)
    _require_int("amount_in", amount_in)
    if amount_in <= 0:
        raise ValueError(f"amount_in must be positive: {amount_in}")

    k_before = reserve_in * reserve_out
    fee_amount, net_in = apply_trade_fee(amount_in, fee_bps)
    amount_out = (reserve_out * net_in) // (reserve_in + net_in)

    new_reserve_in = reserve_in + amount_in
    new_reserve_out = reserve_out - amount_out
    k_after = new_reserve_in * new_reserve_out
    if k_after < k_before:
        raise ValueError(f"Invariant violation: new_k ({k_after}) < old_k ({k_before})")

    return SwapExactInResult(
        amount_out=amount_out,
        fee_amount=fee_amount,
        net_in=net_in,
        new_reserve_in=new_reserve_in,
        new_reserve_out=new_reserve_out,
        k_before=k_before,
        k_after=k_after,
    )


def swap_exact_out(
    reserve_in: Amount,
    reserve_out: Amount,
    amount_out: Amount,
    fee_bps: int,
) -> SwapExactOutResult:
    """
    Minimal input that yields at least `amount_out` under `swap_exact_in`.

        net_in = ceil(reserve_in * amount_out / (reserve_out - amount_out))
        amount_in = smallest g with g - floor(g * fee_bps / 10_000) >= net_in

    Reserves are updated for the requested `amount_out`.

    Raises:
        ValueError: If inputs are invalid or `amount_out` would drain the reserve
    """
    _validate_swap_inputs(reserve_in, reserve_out, fee_bps)
    _require_int("amount_out", amount_out)
    if amount_out <= 0:
        raise ValueError(f"amount_out must be positive: {amount_out}")
    if amount_out >= reserve_out:
        raise ValueError(
            f"Cannot drain full reserve: amount_out ({amount_out}) >= reserve_out ({reserve_out})"
        )

    remaining = reserve_out - amount_out
    net_in = (reserve_in * amount_out + remaining - 1) // remaining
    amount_in = ((net_in - 1) * BPS_DENOM) // (BPS_DENOM - fee_bps) + 1
    fee_amount, net_check = apply_trade_fee(amount_in, fee_bps)
    if net_check < net_in:
        raise ValueError("exact-out inverse under-charged the input")

    k_before = reserve_in * reserve_out
    new_reserve_in = reserve_in + amount_in
    new_reserve_out = remaining
    k_after = new_reserve_in * new_reserve_out
    if k_after < k_before:
        raise ValueError(f"Invariant violation: new_k ({k_after}) < old_k ({k_before})")

    return SwapExactOutResult(
        amount_in=amount_in,
        amount_out=amount_out,
        fee_amount=fee_amount,
        net_in=net_check,
        new_reserve_in=new_reserve_in,
        new_reserve_out=new_reserve_out,
        k_before=k_before,
        k_after=k_after,
    )


def compute_initial_lp(amount_x: Amount, amount_y: Amount) -> Amount:
    """
    LP shares for the first deposit: floor(sqrt(amount_x * amount_y)).

    The geometric mean keeps the initial share price independent of which asset
    is quoted in which. Uses integer isqrt; float sqrt loses precision past 2**53.
    """
    _require_int("amount_x", amount_x)
    _require_int("amount_y", amount_y)
    if amount_x < 0 or amount_y < 0:
        raise ValueError(f"Deposit amounts must be non-negative: ({amount_x}, {amount_y})")
    return math.isqrt(amount_x * amount_y)


def compute_lp_mint(
    reserve_x: Amount,
    reserve_y: Amount,
    amount_x: Amount,
    amount_y: Amount,
    lp_supply: Amount,
) -> Amount:
    """
    LP shares for a deposit into a seeded pool (minimum-ratio rule):

        lp = min(floor(amount_x * lp_supply / reserve_x),
                 floor(amount_y * lp_supply / reserve_y))

    The less generous leg sets the credit; any excess stays in the reserves.
    Returns 0 when either leg is too small to earn a share.

    Raises:
        ValueError: If inputs are invalid or the pool is empty
    """
    for name, v in (
        ("reserve_x", reserve_x),
        ("reserve_y", reserve_y),
        ("amount_x", amount_x),
        ("amount_y", amount_y),
        ("lp_supply", lp_supply),
    ):
        _require_int(name, v)
        if v < 0:
            raise ValueError(f"{name} must be non-negative: {v}")
    if lp_supply == 0 or reserve_x == 0 or reserve_y == 0:
        raise ValueError("Cannot add proportional liquidity to an empty pool")

    lp_x = (amount_x * lp_supply) // reserve_x
    lp_y = (amount_y * lp_supply) // reserve_y
    return min(lp_x, lp_y)


def compute_lp_burn(
    lp_amount: Amount,
    reserve_x: Amount,
    reserve_y: Amount,
    lp_supply: Amount,
) -> Tuple[Amount, Amount]:
    """
    Asset amounts redeemed for burning LP shares:

        amount_x = floor(lp_amount * reserve_x / lp_supply)
        amount_y = floor(lp_amount * reserve_y / lp_supply)

    Raises:
        ValueError: If inputs are invalid
    """
    for name, v in (
        ("lp_amount", lp_amount),
        ("reserve_x", reserve_x),
        ("reserve_y", reserve_y),
        ("lp_supply", lp_supply),
    ):
        _require_int(name, v)
    if lp_amount <= 0:
        raise ValueError(f"LP amount must be positive: {lp_amount}")
    if lp_supply <= 0:
        raise ValueError(f"LP supply must be positive: {lp_supply}")
    if lp_amount > lp_supply:
        raise ValueError(f"Cannot burn more LP than supply: {lp_amount} > {lp_supply}")
    if reserve_x < 0 or reserve_y < 0:
        raise ValueError(f"Reserves must be non-negative: ({reserve_x}, {reserve_y})")

    amount_x = (lp_amount * reserve_x) // lp_supply
    amount_y = (lp_amount * reserve_y) // lp_supply
    return amount_x, amount_y
