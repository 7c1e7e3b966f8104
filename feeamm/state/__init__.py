"""
State records for the fee-aware pool engine
"""

from .assets import AssetDescriptor, Extension, TransferFee, TransferFeeConfig
from .balances import BalanceTable
from .pools import PoolAccounts, PoolConfig, PoolState, derive_identity

__all__ = [
    "AssetDescriptor",
    "Extension",
    "TransferFee",
    "TransferFeeConfig",
    "BalanceTable",
    "PoolAccounts",
    "PoolConfig",
    "PoolState",
    "derive_identity",
]
