"""
Unit tests for the in-memory transaction store.
"""
from datetime import datetime

import pytest

from factories.financial_factory import (
    AccountRefFactory,
    CategoryRefFactory,
    ExpenseSampleFactory,
    IncomeSampleFactory,
)
from finlytics.infrastructure import InMemoryTransactionStore, TransactionDataSource
from finlytics.models.financial import TransactionFilter, TransactionType


@pytest.mark.unit
class TestInMemoryTransactionStore:
    """Test the in-memory data source."""

    def test_satisfies_data_source_protocol(self, store):
        """Test structural compatibility with the engines."""
        assert isinstance(store, TransactionDataSource)

    @pytest.mark.asyncio
    async def test_find_transactions_filters_and_sorts(self, store):
        """Test range, type, user and deletion filtering."""
        later = ExpenseSampleFactory(date=datetime(2024, 6, 20))
        earlier = ExpenseSampleFactory(date=datetime(2024, 6, 5))
        store.add_transactions([
            later,
            earlier,
            ExpenseSampleFactory(date=datetime(2024, 6, 10), is_deleted=True),
            ExpenseSampleFactory(date=datetime(2024, 7, 1)),
            IncomeSampleFactory(date=datetime(2024, 6, 15)),
            ExpenseSampleFactory(date=datetime(2024, 6, 15), user_id="someone_else"),
        ])

        samples = await store.find_transactions(TransactionFilter(
            user_id="test_user_123",
            date_from=datetime(2024, 6, 1),
            date_to=datetime(2024, 7, 1),
            type=TransactionType.EXPENSE
        ))

        assert [s.id for s in samples] == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_find_transactions_by_account(self, store):
        """Test account restrictions."""
        wanted = ExpenseSampleFactory(date=datetime(2024, 6, 5), account_id="acc_card")
        store.add_transactions([wanted, ExpenseSampleFactory(date=datetime(2024, 6, 5), account_id="acc_main")])

        samples = await store.find_transactions(TransactionFilter(
            user_id="test_user_123",
            date_from=datetime(2024, 6, 1),
            date_to=datetime(2024, 7, 1),
            account_ids=["acc_card"]
        ))

        assert samples == [wanted]

    @pytest.mark.asyncio
    async def test_categories_and_accounts(self, store):
        """Test reference data is kept per user."""
        store.add_category("test_user_123", CategoryRefFactory(id="cat_1", name="Rent"))
        store.add_account("test_user_123", AccountRefFactory(id="acc_1"))
        store.add_account("other_user", AccountRefFactory(id="acc_2"))

        assert [c.name for c in await store.find_categories("test_user_123")] == ["Rent"]
        assert [a.id for a in await store.find_accounts("test_user_123")] == ["acc_1"]
        assert await store.find_categories("nobody") == []

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clearing all data."""
        store = InMemoryTransactionStore()
        store.add_transaction(ExpenseSampleFactory(date=datetime(2024, 6, 5)))
        store.add_account("test_user_123", AccountRefFactory())

        store.clear()

        assert await store.find_accounts("test_user_123") == []
        assert await store.find_transactions(TransactionFilter(
            user_id="test_user_123",
            date_from=datetime(2024, 1, 1),
            date_to=datetime(2025, 1, 1)
        )) == []
