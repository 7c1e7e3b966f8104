"""
Transfer collaborator for the pool engine.

`TransferAgent` is the contract the engine depends on: it moves balances, may
skim a transfer fee in flight, mints/burns LP shares, and can run a group of
effects atomically. `InMemoryLedger` is the reference implementation used by the
tests and the offline demo; a chain adapter would implement the same protocol.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import ContextManager, Dict, Iterator, Optional, Protocol

from ..core.errors import TransferError
from ..core.fees import epoch_transfer_fee
from ..state.assets import AssetDescriptor
from ..state.balances import AssetId, Amount, BalanceTable, Identity

logger = logging.getLogger(__name__)


class TransferAgent(Protocol):
    def current_epoch(self) -> int:
        ...

    def descriptor(self, asset: AssetId) -> AssetDescriptor:
        """Registered descriptor of `asset`; raises `TransferError` when unknown."""
        ...

    def balance_of(self, asset: AssetId, account: Identity) -> Amount:
        ...

    def supply_of(self, asset: AssetId) -> Amount:
        ...

    def transfer(
        self,
        asset: AssetId,
        source: Identity,
        destination: Identity,
        amount: Amount,
        authority: Identity,
    ) -> Amount:
        """Move `amount` and return what `destination` was actually credited."""
        ...

    def create_lp_asset(self, descriptor: AssetDescriptor, mint_authority: Identity) -> None:
        ...

    def open_account(self, account: Identity, owner: Identity) -> None:
        ...

    def mint_lp_shares(self, lp_asset: AssetId, to: Identity, amount: Amount, authority: Identity) -> None:
        ...

    def burn_lp_shares(self, lp_asset: AssetId, owner: Identity, amount: Amount) -> None:
        ...

    def atomic(self) -> ContextManager[None]:
        """All effects inside the block apply, or none do."""
        ...


@dataclass(frozen=True)
class _LedgerSnapshot:
    balances: BalanceTable
    assets: Dict[AssetId, AssetDescriptor]
    mint_authority: Dict[AssetId, Optional[Identity]]
    supply: Dict[AssetId, Amount]
    withheld: Dict[AssetId, Amount]
    owners: Dict[Identity, Identity]


class InMemoryLedger:
    """
    Deterministic in-memory balances with per-asset transfer fees.

    Notes:
    - An account is controlled by itself unless `open_account` assigned an owner.
    - On a fee-bearing transfer the source is debited the full amount, the
      destination is credited the net amount, and the fee is withheld per asset.
    - `supply_of(asset) == sum(balances) + withheld_fees(asset)` for every asset.
    """

    def __init__(self, *, epoch: int = 0) -> None:
        self._balances = BalanceTable()
        self._assets: Dict[AssetId, AssetDescriptor] = {}
        self._mint_authority: Dict[AssetId, Optional[Identity]] = {}
        self._supply: Dict[AssetId, Amount] = {}
        self._withheld: Dict[AssetId, Amount] = {}
        self._owners: Dict[Identity, Identity] = {}
        self._epoch = epoch

    # -- assets ---------------------------------------------------------------

    def register_asset(self, descriptor: AssetDescriptor, *, mint_authority: Optional[Identity] = None) -> None:
        if descriptor.identity in self._assets:
            raise TransferError(f"asset already registered: {descriptor.identity}")
        self._assets[descriptor.identity] = descriptor
        self._mint_authority[descriptor.identity] = mint_authority
        self._supply[descriptor.identity] = 0
        self._withheld[descriptor.identity] = 0

    def descriptor(self, asset: AssetId) -> AssetDescriptor:
        desc = self._assets.get(asset)
        if desc is None:
            raise TransferError(f"unknown asset: {asset}")
        return desc

    def current_epoch(self) -> int:
        return self._epoch

    def set_epoch(self, epoch: int) -> None:
        if epoch < self._epoch:
            raise ValueError(f"epoch cannot go backwards: {epoch} < {self._epoch}")
        self._epoch = epoch

    # -- reads ----------------------------------------------------------------

    def balance_of(self, asset: AssetId, account: Identity) -> Amount:
        return self._balances.get(account, asset)

    def supply_of(self, asset: AssetId) -> Amount:
        self.descriptor(asset)
        return self._supply[asset]

    def withheld_fees(self, asset: AssetId) -> Amount:
        self.descriptor(asset)
        return self._withheld[asset]

    def controller_of(self, account: Identity) -> Identity:
        return self._owners.get(account, account)

    def verify_conservation(self, asset: AssetId) -> bool:
        return self._balances.total_for_asset(asset) + self._withheld[asset] == self._supply[asset]

    # -- accounts -------------------------------------------------------------

    def open_account(self, account: Identity, owner: Identity) -> None:
        current = self._owners.get(account)
        if current is not None and current != owner:
            raise TransferError(f"account {account} already owned by another authority")
        self._owners[account] = owner

    # -- movements ------------------------------------------------------------

    def mint(self, asset: AssetId, to: Identity, amount: Amount) -> None:
        """Faucet: credit `amount` of a registered asset out of thin air."""
        self.descriptor(asset)
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative: {amount}")
        self._balances.add(to, asset, amount)
        self._supply[asset] += amount

    def transfer(
        self,
        asset: AssetId,
        source: Identity,
        destination: Identity,
        amount: Amount,
        authority: Identity,
    ) -> Amount:
        desc = self.descriptor(asset)
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise TransferError(f"invalid transfer amount: {amount!r}")
        if source == destination:
            raise TransferError("source and destination must differ")
        if authority != self.controller_of(source):
            raise TransferError(f"{authority} may not move funds out of {source}")

        fee = epoch_transfer_fee(desc, amount, self._epoch)
        try:
            self._balances.subtract(source, asset, amount)
        except ValueError as exc:
            raise TransferError(f"transfer of {amount} {asset} failed: {exc}") from exc
        delivered = amount - fee
        self._balances.add(destination, asset, delivered)
        self._withheld[asset] += fee
        if fee:
            logger.debug("transfer fee withheld asset=%s amount=%d fee=%d", asset, amount, fee)
        return delivered

    def create_lp_asset(self, descriptor: AssetDescriptor, mint_authority: Identity) -> None:
        if descriptor.extensions or descriptor.transfer_fee is not None:
            raise TransferError("LP share asset must be a plain asset")
        self.register_asset(descriptor, mint_authority=mint_authority)

    def mint_lp_shares(self, lp_asset: AssetId, to: Identity, amount: Amount, authority: Identity) -> None:
        self.descriptor(lp_asset)
        if self._mint_authority.get(lp_asset) != authority:
            raise TransferError(f"{authority} is not the mint authority of {lp_asset}")
        if amount < 0:
            raise TransferError(f"invalid mint amount: {amount}")
        self._balances.add(to, lp_asset, amount)
        self._supply[lp_asset] += amount

    def burn_lp_shares(self, lp_asset: AssetId, owner: Identity, amount: Amount) -> None:
        self.descriptor(lp_asset)
        if amount < 0:
            raise TransferError(f"invalid burn amount: {amount}")
        try:
            self._balances.subtract(owner, lp_asset, amount)
        except ValueError as exc:
            raise TransferError(f"burn of {amount} {lp_asset} failed: {exc}") from exc
        self._supply[lp_asset] -= amount

    # -- atomicity ------------------------------------------------------------

    def _snapshot(self) -> _LedgerSnapshot:
        return _LedgerSnapshot(
            balances=self._balances.copy(),
            assets=dict(self._assets),
            mint_authority=dict(self._mint_authority),
            supply=dict(self._supply),
            withheld=dict(self._withheld),
            owners=dict(self._owners),
        )

    def _restore(self, snap: _LedgerSnapshot) -> None:
        self._balances = snap.balances
        self._assets = snap.assets
        self._mint_authority = snap.mint_authority
        self._supply = snap.supply
        self._withheld = snap.withheld
        self._owners = snap.owners

    @contextmanager
    def atomic(self) -> Iterator[None]:
        snap = self._snapshot()
        try:
            yield
        except BaseException:
            self._restore(snap)
            raise
