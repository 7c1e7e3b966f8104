"""
Fee-aware constant-product liquidity pools
"""

from .config import AmmSettings, load_assets, load_settings
from .core.engine import (
    DepositReceipt,
    PoolEngine,
    SwapDirection,
    SwapQuote,
    SwapReceipt,
    WithdrawQuote,
    WithdrawReceipt,
)
from .integration.ledger import InMemoryLedger, TransferAgent

__all__ = [
    "AmmSettings",
    "load_assets",
    "load_settings",
    "DepositReceipt",
    "PoolEngine",
    "SwapDirection",
    "SwapQuote",
    "SwapReceipt",
    "WithdrawQuote",
    "WithdrawReceipt",
    "InMemoryLedger",
    "TransferAgent",
]
