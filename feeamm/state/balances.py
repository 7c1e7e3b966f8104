"""
Multi-asset balance tracking.

Implements BalanceTable[Identity, AssetId] -> Amount. The in-memory ledger keeps
every account balance (user wallets, pool vaults, LP share holdings) here.
"""

from typing import Dict, Tuple


# Type aliases
Identity = str  # account / principal identifier
AssetId = str  # asset identifier
Amount = int  # Non-negative integer (arbitrary precision, bounded to u64 by the engine)

U64_MAX = 2**64 - 1


class BalanceTable:
    """
    Balance table mapping (account, asset) -> amount.

    Zero balances are omitted to keep the table sparse. Do not rely on dict
    iteration order; sort keys explicitly when a deterministic order matters.
    """

    def __init__(self):
        self._balances: Dict[Tuple[Identity, AssetId], Amount] = {}

    def get(self, account: Identity, asset: AssetId) -> Amount:
        """Get balance for (account, asset). Returns 0 if not found."""
        return self._balances.get((account, asset), 0)

    def set(self, account: Identity, asset: AssetId, amount: Amount) -> None:
        """
        Set balance for (account, asset).

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            self._balances.pop((account, asset), None)
        else:
            self._balances[(account, asset)] = amount

    def add(self, account: Identity, asset: AssetId, delta: int) -> None:
        """
        Add delta to balance (delta can be negative for subtraction).

        Raises:
            ValueError: If resulting balance would be negative
        """
        current = self.get(account, asset)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(
                f"Insufficient balance: {current} + {delta} = {new_balance} < 0"
            )
        self.set(account, asset, new_balance)

    def subtract(self, account: Identity, asset: AssetId, delta: Amount) -> None:
        """Subtract a non-negative amount from a balance."""
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(account, asset, -delta)

    def total_for_asset(self, asset: AssetId) -> Amount:
        """Sum of all account balances for one asset."""
        return sum(amount for (_, a), amount in self._balances.items() if a == asset)

    def copy(self) -> "BalanceTable":
        copied = BalanceTable()
        copied._balances = dict(self._balances)
        return copied

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
