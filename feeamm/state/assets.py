"""
Asset descriptors.

An AssetDescriptor describes one side of a pair: its identity, decimal scale, the
set of extensions it carries, and (for transfer-fee assets) the epoch-scheduled
transfer fee its own transfer mechanism deducts.

Units/conventions:
- `*_bps` rates are basis points (1/10_000).
- `maximum_fee` is in the asset's own base units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import FrozenSet, Optional

from .balances import AssetId, Identity


BPS_DENOM = 10_000
MAX_DECIMALS = 255


@unique
class Extension(Enum):
    """Closed set of asset extension tags. Admission is decided per member."""
    TRANSFER_FEE_CONFIG = "transfer_fee_config"
    INTEREST_BEARING_CONFIG = "interest_bearing_config"
    TOKEN_METADATA = "token_metadata"
    METADATA_POINTER = "metadata_pointer"
    GROUP_POINTER = "group_pointer"
    TOKEN_GROUP = "token_group"
    GROUP_MEMBER_POINTER = "group_member_pointer"
    TOKEN_GROUP_MEMBER = "token_group_member"
    IMMUTABLE_OWNER = "immutable_owner"
    CPI_GUARD = "cpi_guard"
    CONFIDENTIAL_TRANSFER_MINT = "confidential_transfer_mint"
    CONFIDENTIAL_TRANSFER_FEE_CONFIG = "confidential_transfer_fee_config"
    NON_TRANSFERABLE = "non_transferable"
    TRANSFER_HOOK = "transfer_hook"
    PERMANENT_DELEGATE = "permanent_delegate"
    MINT_CLOSE_AUTHORITY = "mint_close_authority"
    DEFAULT_ACCOUNT_STATE = "default_account_state"
    PAUSABLE = "pausable"


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


@dataclass(frozen=True)
class TransferFee:
    """One transfer-fee rate, effective from `epoch` onwards."""

    epoch: int
    basis_points: int
    maximum_fee: Optional[int] = None

    def __post_init__(self) -> None:
        _require_int("epoch", self.epoch)
        _require_int("basis_points", self.basis_points)
        if self.epoch < 0:
            raise ValueError(f"epoch must be non-negative: {self.epoch}")
        if not (0 <= self.basis_points < BPS_DENOM):
            raise ValueError(f"basis_points must be in [0, {BPS_DENOM}): {self.basis_points}")
        if self.maximum_fee is not None:
            _require_int("maximum_fee", self.maximum_fee)
            if self.maximum_fee < 0:
                raise ValueError(f"maximum_fee must be non-negative: {self.maximum_fee}")


@dataclass(frozen=True)
class TransferFeeConfig:
    """
    Two-slot fee schedule.

    A rate change is staged in `newer` with a future epoch; until then `older`
    applies. This lets an asset issuer change the fee without surprising
    in-flight quotes.
    """

    older: TransferFee
    newer: TransferFee

    def __post_init__(self) -> None:
        if self.newer.epoch < self.older.epoch:
            raise ValueError("newer transfer fee must not take effect before older")

    @classmethod
    def flat(cls, basis_points: int, maximum_fee: Optional[int] = None) -> "TransferFeeConfig":
        fee = TransferFee(epoch=0, basis_points=basis_points, maximum_fee=maximum_fee)
        return cls(older=fee, newer=fee)

    def get_epoch_fee(self, epoch: int) -> TransferFee:
        _require_int("epoch", epoch)
        if epoch >= self.newer.epoch:
            return self.newer
        return self.older


@dataclass(frozen=True)
class AssetDescriptor:
    """
    Attributes:
        identity: Asset identifier
        decimals: Display scale; never used in pool math
        extensions: Extension tags the asset carries
        transfer_fee: Fee schedule; present iff TRANSFER_FEE_CONFIG is in extensions
        freeze_authority: Principal able to freeze holder accounts, if any
        is_native: True for the wrapped native asset
    """

    identity: AssetId
    decimals: int = 0
    extensions: FrozenSet[Extension] = field(default_factory=frozenset)
    transfer_fee: Optional[TransferFeeConfig] = None
    freeze_authority: Optional[Identity] = None
    is_native: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.identity, str) or not self.identity:
            raise ValueError("identity must be a non-empty string")
        _require_int("decimals", self.decimals)
        if not (0 <= self.decimals <= MAX_DECIMALS):
            raise ValueError(f"decimals must be in [0, {MAX_DECIMALS}]: {self.decimals}")
        # Accept any iterable of tags but store a frozenset.
        exts = frozenset(self.extensions)
        for ext in exts:
            if not isinstance(ext, Extension):
                raise TypeError(f"unknown extension tag: {ext!r}")
        object.__setattr__(self, "extensions", exts)

        flagged = Extension.TRANSFER_FEE_CONFIG in exts
        if flagged != (self.transfer_fee is not None):
            raise ValueError(
                "transfer_fee must be present exactly when TRANSFER_FEE_CONFIG is flagged"
            )

    @property
    def has_transfer_fee(self) -> bool:
        return self.transfer_fee is not None

    @property
    def transfer_fee_bps(self) -> Optional[int]:
        """Newest scheduled transfer-fee rate, or None for plain assets."""
        if self.transfer_fee is None:
            return None
        return self.transfer_fee.newer.basis_points

    @property
    def max_transfer_fee(self) -> Optional[int]:
        if self.transfer_fee is None:
            return None
        return self.transfer_fee.newer.maximum_fee

    def epoch_fee(self, epoch: int) -> Optional[TransferFee]:
        if self.transfer_fee is None:
            return None
        return self.transfer_fee.get_epoch_fee(epoch)


def plain_asset(identity: AssetId, decimals: int = 0) -> AssetDescriptor:
    """Descriptor for an asset with no extensions."""
    return AssetDescriptor(identity=identity, decimals=decimals)


def transfer_fee_asset(
    identity: AssetId,
    basis_points: int,
    maximum_fee: Optional[int] = None,
    *,
    decimals: int = 0,
    extensions: FrozenSet[Extension] = frozenset(),
) -> AssetDescriptor:
    """Descriptor for a transfer-fee asset with a single flat rate."""
    return AssetDescriptor(
        identity=identity,
        decimals=decimals,
        extensions=frozenset(extensions) | {Extension.TRANSFER_FEE_CONFIG},
        transfer_fee=TransferFeeConfig.flat(basis_points, maximum_fee),
    )
