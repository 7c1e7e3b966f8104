"""
Pool engine: the imperative shell around the curve and fee kernels.

``PoolEngine`` owns every pool's configuration and state and drives the
transfer collaborator. Each public operation:

1. Checks the presented accounts against the stored ``PoolConfig``.
2. Runs guards (lock, allowlist, amounts) before any transfer.
3. Performs transfers inside ``ledger.atomic()`` and measures what actually
   arrived from balance deltas, never from the requested amount.
4. Computes the candidate post-state, checks invariants, and replaces the
   stored ``PoolState`` once, as the last step of the atomic block.

Any exception rolls the ledger back and leaves ``PoolState`` untouched.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from ..config import AmmSettings
from ..state.assets import AssetDescriptor
from ..state.balances import AssetId, Amount, Identity
from ..state.canonical import identities_equal
from ..state.pools import MAX_ALLOWLIST, PoolAccounts, PoolConfig, PoolState, Seed
from . import cpmm
from .errors import (
    AccountMismatch,
    AmmError,
    AmountOverflow,
    AssetRejected,
    ConsistencyFault,
    DuplicateAssets,
    DuplicatePool,
    InsufficientInitialLiquidity,
    InsufficientLiquidity,
    InsufficientOutputAmount,
    InvalidAllowlist,
    InvalidFeeConfig,
    NotAllowlisted,
    PoolLocked,
    SlippageExceeded,
    TransferError,
    ZeroAmount,
)
from .extensions import admit
from .fees import transfer_fee_excluded_amount, transfer_fee_included_amount
from .invariants import check_all, product_non_decreasing, withdrawal_is_proportional

if TYPE_CHECKING:
    from ..integration.ledger import TransferAgent

logger = logging.getLogger(__name__)


class SwapDirection(Enum):
    X_TO_Y = "x_to_y"
    Y_TO_X = "y_to_x"


@dataclass(frozen=True)
class DepositReceipt:
    lp_minted: Amount
    amount_x_received: Amount
    amount_y_received: Amount


@dataclass(frozen=True)
class WithdrawReceipt:
    lp_burned: Amount
    amount_x_sent: Amount
    amount_y_sent: Amount
    amount_x_delivered: Amount
    amount_y_delivered: Amount


@dataclass(frozen=True)
class SwapReceipt:
    direction: SwapDirection
    amount_in_received: Amount
    fee_amount: Amount
    amount_out: Amount
    amount_out_delivered: Amount


@dataclass(frozen=True)
class SwapQuote:
    """Preview of a swap at the current epoch's transfer-fee rates."""

    direction: SwapDirection
    amount_in: Amount
    amount_in_received: Amount
    fee_amount: Amount
    amount_out: Amount
    amount_out_delivered: Amount


@dataclass(frozen=True)
class WithdrawQuote:
    lp_amount: Amount
    amount_x_sent: Amount
    amount_y_sent: Amount
    amount_x_delivered: Amount
    amount_y_delivered: Amount


@dataclass(frozen=True)
class _Side:
    asset: AssetDescriptor
    vault: Identity
    reserve: Amount


def _require_amount(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")


def _require_direction(direction: SwapDirection) -> None:
    if not isinstance(direction, SwapDirection):
        raise TypeError(f"direction must be a SwapDirection: {direction!r}")


_ACCOUNT_FIELDS = ("pool_id", "asset_x", "asset_y", "vault_x", "vault_y", "lp_asset", "authority")


class PoolEngine:
    def __init__(self, ledger: "TransferAgent", *, settings: Optional[AmmSettings] = None) -> None:
        self._ledger = ledger
        self._settings = settings if settings is not None else AmmSettings()
        self._configs: Dict[Identity, PoolConfig] = {}
        self._states: Dict[Identity, PoolState] = {}
        self._assets: Dict[Identity, Tuple[AssetDescriptor, AssetDescriptor]] = {}

    # -- read access ----------------------------------------------------------

    def pool_config(self, pool_id: Identity) -> PoolConfig:
        config = self._configs.get(pool_id)
        if config is None:
            raise AccountMismatch(f"unknown pool: {pool_id}")
        return config

    def pool_state(self, pool_id: Identity) -> PoolState:
        self.pool_config(pool_id)
        return self._states[pool_id]

    def pools(self) -> List[PoolConfig]:
        return [self._configs[k] for k in sorted(self._configs)]

    # -- initialization -------------------------------------------------------

    def initialize_pool(
        self,
        seed: Seed,
        asset_x: AssetDescriptor,
        asset_y: AssetDescriptor,
        trade_fee_bps: int,
        *,
        creator: Identity,
        allowlist: Optional[frozenset] = None,
    ) -> PoolConfig:
        """
        Create a pool for (asset_x, asset_y) under `seed`.

        Rejections are checked in a fixed order (fee, duplicate assets,
        allowlist size, ledger match of X then Y, admission of X then Y,
        existing pool) so the first failing rule is the one reported.
        """
        if not isinstance(trade_fee_bps, int) or isinstance(trade_fee_bps, bool):
            raise TypeError("trade_fee_bps must be an int")
        if not (0 <= trade_fee_bps <= self._settings.max_trade_fee_bps):
            raise InvalidFeeConfig(
                f"trade_fee_bps must be in [0, {self._settings.max_trade_fee_bps}]: {trade_fee_bps}"
            )
        if asset_x.identity == asset_y.identity:
            raise DuplicateAssets(f"pool assets must be distinct: {asset_x.identity}")
        if allowlist is not None:
            allowlist = frozenset(allowlist)
            if len(allowlist) > MAX_ALLOWLIST:
                raise InvalidAllowlist(f"allowlist holds at most {MAX_ALLOWLIST} principals: {len(allowlist)}")

        # Admission and quotes use the ledger's registered descriptor.
        asset_x = self._resolve_asset("x", asset_x)
        asset_y = self._resolve_asset("y", asset_y)
        for which, desc in (("x", asset_x), ("y", asset_y)):
            verdict = admit(desc)
            if not verdict.ok:
                logger.info("pool rejected asset_%s=%s reason=%s", which, desc.identity, verdict.reason)
                raise AssetRejected(which, verdict.reason)

        config = PoolConfig.derive(
            seed=seed,
            asset_x=asset_x.identity,
            asset_y=asset_y.identity,
            trade_fee_bps=trade_fee_bps,
            creator=creator,
            allowlist=allowlist,
        )
        if config.pool_id in self._configs:
            raise DuplicatePool(f"pool already initialized for seed {seed!r}")

        with self._operation("initialize_pool", config.pool_id):
            self._ledger.create_lp_asset(
                AssetDescriptor(identity=config.lp_asset, decimals=self._settings.lp_decimals),
                mint_authority=config.authority,
            )
            if self._ledger.supply_of(config.lp_asset) != 0:
                raise ConsistencyFault(["lp_supply_starts_at_zero"], detail=config.lp_asset)
            self._ledger.open_account(config.vault_x, config.authority)
            self._ledger.open_account(config.vault_y, config.authority)
            self._configs[config.pool_id] = config
            self._states[config.pool_id] = PoolState()
            self._assets[config.pool_id] = (asset_x, asset_y)

        logger.info(
            "pool initialized pool=%s seed=%r x=%s y=%s fee_bps=%d allowlist=%s",
            config.pool_id,
            seed,
            asset_x.identity,
            asset_y.identity,
            trade_fee_bps,
            "open" if allowlist is None else len(allowlist),
        )
        return config

    # -- liquidity ------------------------------------------------------------

    def deposit(
        self,
        accounts: PoolAccounts,
        *,
        owner: Identity,
        amount_x: Amount,
        amount_y: Amount,
        min_lp_out: Amount,
    ) -> DepositReceipt:
        for name, v in (("amount_x", amount_x), ("amount_y", amount_y), ("min_lp_out", min_lp_out)):
            _require_amount(name, v)
        config = self._check_accounts(accounts)

        with self._operation("deposit", config.pool_id):
            state = self._states[config.pool_id]
            if state.locked:
                raise PoolLocked(f"pool {config.pool_id} is locked")
            if not config.permits_depositor(owner):
                raise NotAllowlisted(f"{owner} may not deposit into {config.pool_id}")
            if amount_x == 0 or amount_y == 0:
                raise ZeroAmount("deposit amounts must both be positive")

            received_x = self._pull(config.asset_x, owner, config.vault_x, amount_x)
            received_y = self._pull(config.asset_y, owner, config.vault_y, amount_y)

            if state.lp_supply == 0:
                lp = cpmm.compute_initial_lp(received_x, received_y)
                if lp == 0:
                    raise InsufficientInitialLiquidity("first deposit mints zero LP shares")
            else:
                lp = cpmm.compute_lp_mint(
                    state.reserve_x, state.reserve_y, received_x, received_y, state.lp_supply
                )
                if lp == 0:
                    raise ZeroAmount("deposit too small to mint LP shares")
            if lp < min_lp_out:
                raise SlippageExceeded("lp_out", lp, min_lp_out)

            new_state = replace(
                state,
                reserve_x=state.reserve_x + received_x,
                reserve_y=state.reserve_y + received_y,
                lp_supply=state.lp_supply + lp,
            )
            self._verify(new_state)
            if not product_non_decreasing(state, new_state):
                raise ConsistencyFault(["product_non_decreasing"], detail="deposit")

            self._ledger.mint_lp_shares(config.lp_asset, owner, lp, config.authority)
            self._states[config.pool_id] = new_state

        logger.info(
            "deposit pool=%s owner=%s received=(%d, %d) lp_minted=%d",
            config.pool_id, owner, received_x, received_y, lp,
        )
        return DepositReceipt(lp_minted=lp, amount_x_received=received_x, amount_y_received=received_y)

    def withdraw(
        self,
        accounts: PoolAccounts,
        *,
        owner: Identity,
        lp_amount: Amount,
        min_amount_x: Amount,
        min_amount_y: Amount,
    ) -> WithdrawReceipt:
        for name, v in (("lp_amount", lp_amount), ("min_amount_x", min_amount_x), ("min_amount_y", min_amount_y)):
            _require_amount(name, v)
        config = self._check_accounts(accounts)

        with self._operation("withdraw", config.pool_id):
            state = self._states[config.pool_id]
            if state.locked:
                raise PoolLocked(f"pool {config.pool_id} is locked")
            if lp_amount == 0:
                raise ZeroAmount("lp_amount must be positive")
            if lp_amount > state.lp_supply:
                raise InsufficientLiquidity(f"lp_amount {lp_amount} exceeds supply {state.lp_supply}")

            out_x, out_y = cpmm.compute_lp_burn(lp_amount, state.reserve_x, state.reserve_y, state.lp_supply)
            if out_x > state.reserve_x or out_y > state.reserve_y:
                raise InsufficientLiquidity("withdrawal exceeds reserves")
            if out_x < min_amount_x:
                raise SlippageExceeded("amount_x", out_x, min_amount_x)
            if out_y < min_amount_y:
                raise SlippageExceeded("amount_y", out_y, min_amount_y)

            new_state = replace(
                state,
                reserve_x=state.reserve_x - out_x,
                reserve_y=state.reserve_y - out_y,
                lp_supply=state.lp_supply - lp_amount,
            )
            self._verify(new_state)
            if not withdrawal_is_proportional(state, new_state):
                raise ConsistencyFault(["withdrawal_is_proportional"])

            self._ledger.burn_lp_shares(config.lp_asset, owner, lp_amount)
            delivered_x = self._push(config.asset_x, config.vault_x, owner, out_x, config.authority)
            delivered_y = self._push(config.asset_y, config.vault_y, owner, out_y, config.authority)
            self._states[config.pool_id] = new_state

        logger.info(
            "withdraw pool=%s owner=%s lp_burned=%d sent=(%d, %d) delivered=(%d, %d)",
            config.pool_id, owner, lp_amount, out_x, out_y, delivered_x, delivered_y,
        )
        return WithdrawReceipt(
            lp_burned=lp_amount,
            amount_x_sent=out_x,
            amount_y_sent=out_y,
            amount_x_delivered=delivered_x,
            amount_y_delivered=delivered_y,
        )

    # -- trading --------------------------------------------------------------

    def swap(
        self,
        accounts: PoolAccounts,
        *,
        trader: Identity,
        direction: SwapDirection,
        amount_in: Amount,
        min_amount_out: Amount,
    ) -> SwapReceipt:
        _require_direction(direction)
        _require_amount("amount_in", amount_in)
        _require_amount("min_amount_out", min_amount_out)
        config = self._check_accounts(accounts)

        with self._operation("swap", config.pool_id):
            state = self._states[config.pool_id]
            if state.locked:
                raise PoolLocked(f"pool {config.pool_id} is locked")
            side_in, side_out = self._sides(config.pool_id, state, direction)
            if side_in.reserve == 0 or side_out.reserve == 0:
                raise InsufficientLiquidity("pool has no liquidity")
            if amount_in == 0:
                raise ZeroAmount("amount_in must be positive")

            received = self._pull(side_in.asset.identity, trader, side_in.vault, amount_in)
            if received == 0:
                raise ZeroAmount("nothing arrived after transfer fees")

            result = self._quote_curve(side_in.reserve, side_out.reserve, received, config.trade_fee_bps)
            if result.amount_out < min_amount_out:
                raise SlippageExceeded("amount_out", result.amount_out, min_amount_out)
            if result.amount_out >= side_out.reserve:
                raise InsufficientLiquidity("swap would drain the output reserve")
            if result.amount_out == 0:
                raise InsufficientOutputAmount("swap output rounds down to zero")

            new_state = self._apply_swap(state, direction, result.new_reserve_in, result.new_reserve_out)
            self._verify(new_state)
            if not product_non_decreasing(state, new_state):
                raise ConsistencyFault(
                    ["product_non_decreasing"], detail=f"k {result.k_before} -> {result.k_after}"
                )

            delivered = self._push(
                side_out.asset.identity, side_out.vault, trader, result.amount_out, config.authority
            )
            self._states[config.pool_id] = new_state

        logger.info(
            "swap pool=%s trader=%s direction=%s received=%d fee=%d out=%d delivered=%d",
            config.pool_id, trader, direction.value, received, result.fee_amount, result.amount_out, delivered,
        )
        return SwapReceipt(
            direction=direction,
            amount_in_received=received,
            fee_amount=result.fee_amount,
            amount_out=result.amount_out,
            amount_out_delivered=delivered,
        )

    # -- quotes ---------------------------------------------------------------

    def quote_swap(self, pool_id: Identity, direction: SwapDirection, amount_in: Amount) -> SwapQuote:
        """Predict `swap` for `amount_in` sent, without touching the ledger."""
        _require_direction(direction)
        _require_amount("amount_in", amount_in)
        config = self.pool_config(pool_id)
        state = self._states[pool_id]
        epoch = self._ledger.current_epoch()

        side_in, side_out = self._sides(pool_id, state, direction)
        if side_in.reserve == 0 or side_out.reserve == 0:
            raise InsufficientLiquidity("pool has no liquidity")
        if amount_in == 0:
            raise ZeroAmount("amount_in must be positive")
        received, _ = transfer_fee_excluded_amount(side_in.asset, amount_in, epoch)
        if received == 0:
            raise ZeroAmount("nothing would arrive after transfer fees")

        result = self._quote_curve(side_in.reserve, side_out.reserve, received, config.trade_fee_bps)
        if result.amount_out == 0:
            raise InsufficientOutputAmount("swap output rounds down to zero")
        delivered, _ = transfer_fee_excluded_amount(side_out.asset, result.amount_out, epoch)
        return SwapQuote(
            direction=direction,
            amount_in=amount_in,
            amount_in_received=received,
            fee_amount=result.fee_amount,
            amount_out=result.amount_out,
            amount_out_delivered=delivered,
        )

    def quote_swap_exact_out(
        self, pool_id: Identity, direction: SwapDirection, amount_out_delivered: Amount
    ) -> SwapQuote:
        """
        Smallest amount to send so the trader receives at least
        `amount_out_delivered` after both assets' transfer fees.

        The returned quote is the forward quote for that input, so its
        `amount_out_delivered` can exceed the request by rounding.
        """
        _require_direction(direction)
        _require_amount("amount_out_delivered", amount_out_delivered)
        config = self.pool_config(pool_id)
        state = self._states[pool_id]
        epoch = self._ledger.current_epoch()

        side_in, side_out = self._sides(pool_id, state, direction)
        if side_in.reserve == 0 or side_out.reserve == 0:
            raise InsufficientLiquidity("pool has no liquidity")
        if amount_out_delivered == 0:
            raise ZeroAmount("amount_out_delivered must be positive")

        gross_out, _ = transfer_fee_included_amount(side_out.asset, amount_out_delivered, epoch)
        if gross_out >= side_out.reserve:
            raise InsufficientLiquidity(
                f"requested output {gross_out} would drain reserve {side_out.reserve}"
            )
        inverse = cpmm.swap_exact_out(side_in.reserve, side_out.reserve, gross_out, config.trade_fee_bps)
        amount_in, _ = transfer_fee_included_amount(side_in.asset, inverse.amount_in, epoch)
        return self.quote_swap(pool_id, direction, amount_in)

    def quote_withdraw(self, pool_id: Identity, lp_amount: Amount) -> WithdrawQuote:
        _require_amount("lp_amount", lp_amount)
        self.pool_config(pool_id)
        state = self._states[pool_id]
        if lp_amount == 0:
            raise ZeroAmount("lp_amount must be positive")
        if lp_amount > state.lp_supply:
            raise InsufficientLiquidity(f"lp_amount {lp_amount} exceeds supply {state.lp_supply}")

        epoch = self._ledger.current_epoch()
        desc_x, desc_y = self._assets[pool_id]
        out_x, out_y = cpmm.compute_lp_burn(lp_amount, state.reserve_x, state.reserve_y, state.lp_supply)
        delivered_x, _ = transfer_fee_excluded_amount(desc_x, out_x, epoch)
        delivered_y, _ = transfer_fee_excluded_amount(desc_y, out_y, epoch)
        return WithdrawQuote(
            lp_amount=lp_amount,
            amount_x_sent=out_x,
            amount_y_sent=out_y,
            amount_x_delivered=delivered_x,
            amount_y_delivered=delivered_y,
        )

    # -- administration -------------------------------------------------------

    def lock_pool(self, pool_id: Identity, *, authority: Identity) -> PoolState:
        return self._set_locked(pool_id, authority, True)

    def unlock_pool(self, pool_id: Identity, *, authority: Identity) -> PoolState:
        return self._set_locked(pool_id, authority, False)

    def _set_locked(self, pool_id: Identity, authority: Identity, locked: bool) -> PoolState:
        config = self.pool_config(pool_id)
        if not identities_equal(authority, config.creator):
            logger.info("lock change rejected pool=%s authority=%s", pool_id, authority)
            raise AccountMismatch(f"{authority} is not the creator of pool {pool_id}")
        new_state = replace(self._states[pool_id], locked=locked)
        self._states[pool_id] = new_state
        logger.info("pool %s pool=%s", "locked" if locked else "unlocked", pool_id)
        return new_state

    # -- internals ------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str, pool_id: Identity) -> Iterator[None]:
        try:
            with self._ledger.atomic():
                yield
        except AmmError as exc:
            logger.info("%s rejected pool=%s error=%s: %s", name, pool_id, type(exc).__name__, exc)
            raise

    def _resolve_asset(self, which: str, given: AssetDescriptor) -> AssetDescriptor:
        try:
            registered = self._ledger.descriptor(given.identity)
        except TransferError as exc:
            raise AccountMismatch(f"asset_{which} {given.identity} is not registered with the ledger") from exc
        if registered != given:
            logger.info("pool rejected asset_%s=%s reason=descriptor differs from ledger", which, given.identity)
            raise AccountMismatch(f"asset_{which} {given.identity} does not match the ledger's descriptor")
        return registered

    def _check_accounts(self, accounts: PoolAccounts) -> PoolConfig:
        if not isinstance(accounts, PoolAccounts):
            raise TypeError("accounts must be a PoolAccounts")
        config = self._configs.get(accounts.pool_id)
        if config is None:
            raise AccountMismatch(f"unknown pool: {accounts.pool_id}")
        expected = config.accounts()
        bad = [f for f in _ACCOUNT_FIELDS if not identities_equal(getattr(accounts, f), getattr(expected, f))]
        if bad:
            logger.info("account mismatch pool=%s fields=%s", config.pool_id, ",".join(bad))
            raise AccountMismatch(f"accounts do not match pool {config.pool_id}: {', '.join(bad)}")
        return config

    def _sides(self, pool_id: Identity, state: PoolState, direction: SwapDirection) -> Tuple[_Side, _Side]:
        config = self._configs[pool_id]
        desc_x, desc_y = self._assets[pool_id]
        x = _Side(asset=desc_x, vault=config.vault_x, reserve=state.reserve_x)
        y = _Side(asset=desc_y, vault=config.vault_y, reserve=state.reserve_y)
        if direction is SwapDirection.X_TO_Y:
            return x, y
        return y, x

    @staticmethod
    def _apply_swap(state: PoolState, direction: SwapDirection, reserve_in: Amount, reserve_out: Amount) -> PoolState:
        if direction is SwapDirection.X_TO_Y:
            return replace(state, reserve_x=reserve_in, reserve_y=reserve_out)
        return replace(state, reserve_x=reserve_out, reserve_y=reserve_in)

    @staticmethod
    def _quote_curve(reserve_in: Amount, reserve_out: Amount, amount_in: Amount, fee_bps: int) -> cpmm.SwapExactInResult:
        try:
            return cpmm.swap_exact_in(reserve_in, reserve_out, amount_in, fee_bps)
        except ValueError as exc:
            raise ConsistencyFault(["product_non_decreasing"], detail=str(exc)) from exc

    def _verify(self, state: PoolState) -> None:
        violations = check_all(state)
        if "inv_fits_u64" in violations:
            raise AmountOverflow(f"pool state exceeds u64: {state!r}")
        if violations:
            raise ConsistencyFault(violations, detail=repr(state))

    def _pull(self, asset: AssetId, owner: Identity, vault: Identity, amount: Amount) -> Amount:
        """Move `amount` from `owner` into `vault`; return what the vault observed."""
        before = self._ledger.balance_of(asset, vault)
        reported = self._ledger.transfer(asset, owner, vault, amount, owner)
        observed = self._ledger.balance_of(asset, vault) - before
        self._check_delivery(asset, amount, observed, reported)
        if observed < amount:
            logger.debug("inbound transfer fee asset=%s sent=%d received=%d", asset, amount, observed)
        return observed

    def _push(
        self, asset: AssetId, vault: Identity, recipient: Identity, amount: Amount, authority: Identity
    ) -> Amount:
        """Move `amount` out of `vault`; the vault must be debited exactly `amount`."""
        if amount == 0:
            return 0
        vault_before = self._ledger.balance_of(asset, vault)
        before = self._ledger.balance_of(asset, recipient)
        reported = self._ledger.transfer(asset, vault, recipient, amount, authority)
        debited = vault_before - self._ledger.balance_of(asset, vault)
        if debited != amount:
            raise ConsistencyFault(["vault_debited_exactly"], detail=f"{asset}: {debited} != {amount}")
        observed = self._ledger.balance_of(asset, recipient) - before
        self._check_delivery(asset, amount, observed, reported)
        if observed < amount:
            logger.debug("outbound transfer fee asset=%s sent=%d delivered=%d", asset, amount, observed)
        return observed

    @staticmethod
    def _check_delivery(asset: AssetId, amount: Amount, observed: Amount, reported: Amount) -> None:
        if observed < 0 or observed > amount:
            raise ConsistencyFault(
                ["delivery_within_sent_amount"], detail=f"{asset}: observed {observed} for {amount} sent"
            )
        if reported != observed:
            raise TransferError(f"{asset}: ledger reported {reported} delivered, observed {observed}")
