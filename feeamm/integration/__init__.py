"""
Collaborator adapters for the pool engine
"""

from .ledger import InMemoryLedger, TransferAgent

__all__ = ["InMemoryLedger", "TransferAgent"]
