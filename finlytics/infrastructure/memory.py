"""
In-memory transaction store used by tests and the demo script.
"""
from collections import defaultdict
from typing import Dict, Iterable, List

import structlog

from ..models.financial import AccountRef, CategoryRef, TransactionFilter, TransactionSample

logger = structlog.get_logger()


class InMemoryTransactionStore:
    """Transaction data source backed by plain dictionaries."""

    def __init__(self):
        self._transactions: Dict[str, List[TransactionSample]] = defaultdict(list)
        self._categories: Dict[str, Dict[str, CategoryRef]] = defaultdict(dict)
        self._accounts: Dict[str, Dict[str, AccountRef]] = defaultdict(dict)

    def add_transaction(self, sample: TransactionSample) -> None:
        self._transactions[sample.user_id].append(sample)

    def add_transactions(self, samples: Iterable[TransactionSample]) -> None:
        for sample in samples:
            self.add_transaction(sample)

    def add_category(self, user_id: str, category: CategoryRef) -> None:
        self._categories[user_id][category.id] = category

    def add_account(self, user_id: str, account: AccountRef) -> None:
        self._accounts[user_id][account.id] = account

    def clear(self) -> None:
        """Remove all stored data."""
        self._transactions.clear()
        self._categories.clear()
        self._accounts.clear()

    async def find_transactions(self, filter: TransactionFilter) -> List[TransactionSample]:
        results = [
            sample for sample in self._transactions.get(filter.user_id, [])
            if filter.matches(sample)
        ]
        results.sort(key=lambda s: s.date)

        logger.debug(
            "Transactions fetched from memory",
            user_id=filter.user_id,
            count=len(results)
        )
        return results

    async def find_categories(self, user_id: str) -> List[CategoryRef]:
        return list(self._categories.get(user_id, {}).values())

    async def find_accounts(self, user_id: str) -> List[AccountRef]:
        return list(self._accounts.get(user_id, {}).values())
