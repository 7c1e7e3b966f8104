"""Exception types for the pool engine.

Every rejection raised by ``PoolEngine`` derives from ``AmmError``. The engine
raises before committing anything, so catching an ``AmmError`` never leaves a
half-applied operation behind.
"""

from __future__ import annotations

from typing import Optional


class AmmError(Exception):
    """Base class for all engine rejections."""


# -- configuration ------------------------------------------------------------

class ConfigError(AmmError):
    """Raised when pool parameters are invalid; the operation never starts."""


class InvalidFeeConfig(ConfigError):
    """Raised when the trading fee is outside the allowed range."""


class DuplicateAssets(ConfigError):
    """Raised when both sides of a pair are the same asset."""


class AssetRejected(ConfigError):
    """Raised when an asset fails extension admission."""

    def __init__(self, which: str, reason: str) -> None:
        self.which = which
        self.reason = reason
        super().__init__(f"asset {which} rejected: {reason}")


class InvalidAllowlist(ConfigError):
    """Raised when the depositor allowlist is too large."""


class DuplicatePool(ConfigError):
    """Raised when a pool already exists for the derived identities."""


# -- access -------------------------------------------------------------------

class AccessError(AmmError):
    """Raised when the caller or the supplied accounts may not act on the pool."""


class AccountMismatch(AccessError):
    """Raised when supplied identities do not match the pool configuration."""


class PoolLocked(AccessError):
    """Raised when operating on a locked pool."""


class NotAllowlisted(AccessError):
    """Raised when a depositor is not on the pool allowlist."""


# -- slippage -----------------------------------------------------------------

class SlippageExceeded(AmmError):
    """Raised when an output falls below the caller's minimum."""

    def __init__(self, what: str, actual: int, minimum: int) -> None:
        self.what = what
        self.actual = actual
        self.minimum = minimum
        super().__init__(f"slippage exceeded for {what}: {actual} < {minimum}")


# -- liquidity ----------------------------------------------------------------

class LiquidityError(AmmError):
    """Raised when the pool cannot serve the requested amounts."""


class ZeroAmount(LiquidityError):
    """Raised when an amount that must be positive is zero."""


class InsufficientLiquidity(LiquidityError):
    """Raised when the pool is empty or an output would drain a reserve."""


class InsufficientInitialLiquidity(LiquidityError):
    """Raised when the first deposit would mint zero LP shares."""


class InsufficientOutputAmount(LiquidityError):
    """Raised when a swap rounds down to zero output."""


class AmountOverflow(LiquidityError):
    """Raised when a reserve or supply would exceed u64."""


# -- transfers ----------------------------------------------------------------

class TransferError(AmmError):
    """Raised by the transfer collaborator, or on an unverifiable delivery."""


class TransferFeeCalculationError(AmmError):
    """Raised when a transfer-fee inverse cannot be computed or verified."""


# -- consistency --------------------------------------------------------------

class ConsistencyFault(AmmError):
    """Raised when a post-state violates one or more invariants.

    This indicates a bug or a misbehaving collaborator, never a user error.
    """

    def __init__(self, violations: list[str], detail: Optional[str] = None) -> None:
        self.violations = violations
        msg = f"invariant violations: {', '.join(violations)}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
