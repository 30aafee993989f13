"""
Data-access capability the analytics engines depend on.
"""
from typing import List, Protocol, runtime_checkable

from ..models.financial import AccountRef, CategoryRef, TransactionFilter, TransactionSample


@runtime_checkable
class TransactionDataSource(Protocol):
    """Read-only access to a user's transactions, categories and accounts."""

    async def find_transactions(self, filter: TransactionFilter) -> List[TransactionSample]:
        """Return non-deleted transactions matching the filter."""
        ...

    async def find_categories(self, user_id: str) -> List[CategoryRef]:
        """Return the user's categories."""
        ...

    async def find_accounts(self, user_id: str) -> List[AccountRef]:
        """Return the user's accounts with their current balances."""
        ...
