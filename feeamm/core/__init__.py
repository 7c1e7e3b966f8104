"""
Pool math, admission policy and invariants
"""

from .cpmm import (
    swap_exact_in,
    swap_exact_out,
    compute_initial_lp,
    compute_lp_mint,
    compute_lp_burn,
)
from .extensions import Admitted, Rejected, admit
from .fees import (
    apply_trade_fee,
    trade_fee,
    transfer_fee,
    transfer_fee_excluded_amount,
    transfer_fee_included_amount,
)
from .invariants import INVARIANT_REGISTRY, check_all

__all__ = [
    "swap_exact_in",
    "swap_exact_out",
    "compute_initial_lp",
    "compute_lp_mint",
    "compute_lp_burn",
    "Admitted",
    "Rejected",
    "admit",
    "apply_trade_fee",
    "trade_fee",
    "transfer_fee",
    "transfer_fee_excluded_amount",
    "transfer_fee_included_amount",
    "INVARIANT_REGISTRY",
    "check_all",
]
