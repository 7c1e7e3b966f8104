"""
Pool configuration and state records.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, FrozenSet, Mapping, Optional, Union

from .balances import AssetId, Amount, Identity, U64_MAX
from .canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex


MAX_TRADE_FEE_BPS = 1000  # 10%
MAX_ALLOWLIST = 10

ROLE_CONFIG = "config"
ROLE_POOL = "pool"
ROLE_LP_ASSET = "lp_mint"
ROLE_AUTHORITY = "auth"
ROLE_VAULT = "vault"

Seed = Union[int, str]


def derive_identity(role: str, *parts: Any) -> Identity:
    """
    Deterministically derive an identity for a (role, parts) pair.

        identity = H(domain_sep("identity") || canonical_json([role, *parts]))

    Distinct roles never collide for the same parts, so one seed yields one
    config, one pool, one LP asset and one authority.
    """
    if not isinstance(role, str) or not role:
        raise ValueError("role must be a non-empty string")
    payload = canonical_json_bytes([role, *parts])
    return sha256_hex(domain_sep_bytes("identity") + payload)


def _validate_seed(seed: Seed) -> None:
    if isinstance(seed, bool) or not isinstance(seed, (int, str)):
        raise TypeError("seed must be an int or str")
    if isinstance(seed, int) and not (0 <= seed <= U64_MAX):
        raise ValueError(f"seed must fit in u64: {seed}")
    if isinstance(seed, str) and not seed:
        raise ValueError("seed must be a non-empty string")


@dataclass(frozen=True)
class PoolAccounts:
    """
    The account set a caller presents with every pool operation.

    The engine checks each field against the stored PoolConfig before it touches
    pool state.
    """

    pool_id: Identity
    asset_x: AssetId
    asset_y: AssetId
    vault_x: Identity
    vault_y: Identity
    lp_asset: AssetId
    authority: Identity


@dataclass(frozen=True)
class PoolConfig:
    """
    Immutable configuration of one pool.

    Attributes:
        seed: Uniqueness scope for identity derivation
        pool_id: Derived pool identifier
        asset_x: First asset of the pair
        asset_y: Second asset of the pair
        trade_fee_bps: Swap fee in basis points (0-1000)
        lp_asset: Derived identifier of the LP share asset
        authority: Derived pool signer that controls the vaults and LP minting
        vault_x: Derived vault account holding asset_x
        vault_y: Derived vault account holding asset_y
        creator: Principal that initialized the pool (may lock/unlock it)
        allowlist: Principals permitted to deposit; None means open to all
    """

    seed: Seed
    pool_id: Identity
    asset_x: AssetId
    asset_y: AssetId
    trade_fee_bps: int
    lp_asset: AssetId
    authority: Identity
    vault_x: Identity
    vault_y: Identity
    creator: Identity
    allowlist: Optional[FrozenSet[Identity]] = None

    def __post_init__(self) -> None:
        _validate_seed(self.seed)
        if self.asset_x == self.asset_y:
            raise ValueError(f"pool assets must be distinct: {self.asset_x}")
        if not isinstance(self.trade_fee_bps, int) or isinstance(self.trade_fee_bps, bool):
            raise TypeError("trade_fee_bps must be an int")
        if not (0 <= self.trade_fee_bps <= MAX_TRADE_FEE_BPS):
            raise ValueError(f"trade_fee_bps must be in [0, {MAX_TRADE_FEE_BPS}]: {self.trade_fee_bps}")
        if self.allowlist is not None:
            object.__setattr__(self, "allowlist", frozenset(self.allowlist))
            if len(self.allowlist) > MAX_ALLOWLIST:
                raise ValueError(f"allowlist holds at most {MAX_ALLOWLIST} principals")

    @classmethod
    def derive(
        cls,
        *,
        seed: Seed,
        asset_x: AssetId,
        asset_y: AssetId,
        trade_fee_bps: int,
        creator: Identity,
        allowlist: Optional[FrozenSet[Identity]] = None,
    ) -> "PoolConfig":
        """Build a config with every derived identity filled in from `seed`."""
        _validate_seed(seed)
        config_id = derive_identity(ROLE_CONFIG, seed)
        authority = derive_identity(ROLE_AUTHORITY, config_id)
        return cls(
            seed=seed,
            pool_id=derive_identity(ROLE_POOL, config_id),
            asset_x=asset_x,
            asset_y=asset_y,
            trade_fee_bps=trade_fee_bps,
            lp_asset=derive_identity(ROLE_LP_ASSET, config_id),
            authority=authority,
            vault_x=derive_identity(ROLE_VAULT, authority, asset_x),
            vault_y=derive_identity(ROLE_VAULT, authority, asset_y),
            creator=creator,
            allowlist=allowlist,
        )

    def accounts(self) -> PoolAccounts:
        return PoolAccounts(
            pool_id=self.pool_id,
            asset_x=self.asset_x,
            asset_y=self.asset_y,
            vault_x=self.vault_x,
            vault_y=self.vault_y,
            lp_asset=self.lp_asset,
            authority=self.authority,
        )

    def permits_depositor(self, principal: Identity) -> bool:
        if self.allowlist is None:
            return True
        return principal in self.allowlist


@dataclass(frozen=True)
class PoolState:
    """
    Mutable-by-replacement state of a pool.

    Attributes:
        reserve_x: Engine-tracked vault balance of asset_x (post transfer fee)
        reserve_y: Engine-tracked vault balance of asset_y (post transfer fee)
        lp_supply: Outstanding LP shares
        locked: When True, deposit/withdraw/swap are rejected
    """

    reserve_x: Amount = 0
    reserve_y: Amount = 0
    lp_supply: Amount = 0
    locked: bool = False

    def __post_init__(self) -> None:
        for name in ("reserve_x", "reserve_y", "lp_supply"):
            v = getattr(self, name)
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")

    @property
    def is_seeded(self) -> bool:
        return self.lp_supply > 0

    def get_constant_product(self) -> int:
        return self.reserve_x * self.reserve_y

    def __repr__(self) -> str:
        return (
            f"PoolState(reserves=({self.reserve_x}, {self.reserve_y}), "
            f"lp_supply={self.lp_supply}, locked={self.locked})"
        )


def pool_state_to_dict(state: PoolState) -> dict[str, bool | int]:
    return {
        "reserve_x": state.reserve_x,
        "reserve_y": state.reserve_y,
        "lp_supply": state.lp_supply,
        "locked": state.locked,
    }


def pool_state_from_dict(d: Mapping[str, Any]) -> PoolState:
    """Raises KeyError on missing fields."""
    locked = d["locked"]
    if not isinstance(locked, bool):
        raise TypeError("locked must be a bool")
    return PoolState(
        reserve_x=d["reserve_x"],
        reserve_y=d["reserve_y"],
        lp_supply=d["lp_supply"],
        locked=locked,
    )


def pool_config_to_dict(config: PoolConfig) -> dict[str, Any]:
    return {
        "seed": config.seed,
        "pool_id": config.pool_id,
        "asset_x": config.asset_x,
        "asset_y": config.asset_y,
        "trade_fee_bps": config.trade_fee_bps,
        "lp_asset": config.lp_asset,
        "authority": config.authority,
        "vault_x": config.vault_x,
        "vault_y": config.vault_y,
        "creator": config.creator,
        # Sorted so the snapshot hashes the same regardless of set order.
        "allowlist": None if config.allowlist is None else sorted(config.allowlist),
    }


def pool_config_from_dict(d: Mapping[str, Any]) -> PoolConfig:
    allowlist = d.get("allowlist")
    return PoolConfig(
        seed=d["seed"],
        pool_id=d["pool_id"],
        asset_x=d["asset_x"],
        asset_y=d["asset_y"],
        trade_fee_bps=d["trade_fee_bps"],
        lp_asset=d["lp_asset"],
        authority=d["authority"],
        vault_x=d["vault_x"],
        vault_y=d["vault_y"],
        creator=d["creator"],
        allowlist=None if allowlist is None else frozenset(allowlist),
    )
