"""Invariant checkers for pool state.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass). The engine runs
`check_all()` on every candidate post-state before committing it.
"""

from __future__ import annotations

from typing import Callable

from ..state.balances import U64_MAX
from ..state.pools import PoolState


def inv_reserves_non_negative(s: PoolState) -> bool:
    return s.reserve_x >= 0 and s.reserve_y >= 0 and s.lp_supply >= 0


def inv_empty_iff_unseeded(s: PoolState) -> bool:
    # reserve_x == 0 <=> reserve_y == 0 <=> lp_supply == 0
    return (s.reserve_x == 0) == (s.reserve_y == 0) == (s.lp_supply == 0)


def inv_fits_u64(s: PoolState) -> bool:
    return s.reserve_x <= U64_MAX and s.reserve_y <= U64_MAX and s.lp_supply <= U64_MAX


INVARIANT_REGISTRY: dict[str, Callable[[PoolState], bool]] = {
    "inv_reserves_non_negative": inv_reserves_non_negative,
    "inv_empty_iff_unseeded": inv_empty_iff_unseeded,
    "inv_fits_u64": inv_fits_u64,
}


def check_all(s: PoolState) -> list[str]:
    """Return the IDs of every violated invariant (empty = all pass)."""
    return [name for name, fn in INVARIANT_REGISTRY.items() if not fn(s)]


def product_non_decreasing(before: PoolState, after: PoolState) -> bool:
    """k must not shrink across a deposit or swap."""
    return after.get_constant_product() >= before.get_constant_product()


def withdrawal_is_proportional(before: PoolState, after: PoolState) -> bool:
    """
    A withdrawal may only shrink reserves in proportion to the LP it burns.

    With floor rounding the pool keeps the remainder, so each remaining reserve
    must cover its pro-rata share of the remaining supply:

        reserve_after * supply_before >= reserve_before * supply_after
    """
    if after.lp_supply > before.lp_supply:
        return False
    return (
        after.reserve_x * before.lp_supply >= before.reserve_x * after.lp_supply
        and after.reserve_y * before.lp_supply >= before.reserve_y * after.lp_supply
    )
