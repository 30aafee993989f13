"""
Unit tests for the Firestore transaction source.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from finlytics.infrastructure import firestore as firestore_module
from finlytics.infrastructure.firestore import (
    FirestoreTransactionSource,
    cleanup_firestore,
    get_firestore_source,
)
from finlytics.models.financial import TransactionFilter, TransactionType
from finlytics.utils.exceptions import DatabaseError


def _doc(doc_id, data):
    doc = MagicMock()
    doc.id = doc_id
    doc.to_dict.return_value = data
    return doc


@pytest.fixture
def collections():
    """Documents per collection path served by the mock client."""
    return {}


@pytest.fixture
def mock_client(collections):
    """Mock Firestore client whose queries stream from ``collections``."""
    client = MagicMock()
    client.queries = {}

    def collection(path):
        query = MagicMock()
        client.queries[path] = query
        query.where.return_value = query
        query.stream.side_effect = lambda: iter(collections.get(path, []))
        return query

    client.collection.side_effect = collection
    return client


@pytest.fixture
def source(mock_client, test_settings):
    """Firestore source with an injected mock client."""
    return FirestoreTransactionSource(settings=test_settings, client=mock_client)


class TestFindTransactions:
    """Test transaction queries."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_maps_documents_to_samples(self, source, collections):
        """Test document conversion and category name lookup."""
        collections["transactions/user_1/user_transactions"] = [
            _doc("txn_2", {
                "amount": "-12.00",
                "transaction_date": datetime(2024, 6, 20, 9),
                "transaction_type": "expense",
                "category_id": "cat_food",
                "account_id": "acc_1",
                "is_active": True,
            }),
            _doc("txn_1", {
                "amount": -25.5,
                "transaction_date": datetime(2024, 6, 10, 9),
                "transaction_type": "expense",
                "category_id": "cat_food",
                "is_active": True,
            }),
        ]
        collections["categories/user_1/user_categories"] = [_doc("cat_food", {"name": "Food"})]

        samples = await source.find_transactions(TransactionFilter(
            user_id="user_1",
            date_from=datetime(2024, 6, 1),
            date_to=datetime(2024, 7, 1),
            type=TransactionType.EXPENSE
        ))

        assert [s.id for s in samples] == ["txn_1", "txn_2"]
        assert samples[0].amount == Decimal("25.5")
        assert samples[0].category_name == "Food"
        assert samples[1].account_id == "acc_1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_where_clauses(self, source, mock_client):
        """Test the range and type are pushed down to Firestore."""
        tx_filter = TransactionFilter(
            user_id="user_1",
            date_from=datetime(2024, 6, 1),
            date_to=datetime(2024, 7, 1),
            type=TransactionType.INCOME,
            end_inclusive=True
        )

        await source.find_transactions(tx_filter)

        where_calls = [c.args for c in mock_client.queries["transactions/user_1/user_transactions"].where.call_args_list]
        assert where_calls == [
            ("is_active", "==", True),
            ("transaction_date", ">=", datetime(2024, 6, 1)),
            ("transaction_date", "<=", datetime(2024, 7, 1)),
            ("transaction_type", "==", "income"),
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_aware_timestamps_become_naive_utc(self, source, collections):
        """Test Firestore timestamps compare against naive query bounds."""
        collections["transactions/user_1/user_transactions"] = [
            _doc("txn_1", {
                "amount": 10,
                "transaction_date": datetime(2024, 6, 10, 9, tzinfo=timezone.utc),
                "transaction_type": "expense",
                "category_id": "cat_unknown",
            }),
        ]

        samples = await source.find_transactions(TransactionFilter(
            user_id="user_1",
            date_from=datetime(2024, 6, 1),
            date_to=datetime(2024, 7, 1)
        ))

        assert samples[0].date == datetime(2024, 6, 10, 9)
        assert samples[0].category_name == "Unknown"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_query_failure_raises_database_error(self, source, mock_client):
        """Test client errors are wrapped."""
        mock_client.collection.side_effect = RuntimeError("deadline exceeded")

        with pytest.raises(DatabaseError) as exc_info:
            await source.find_transactions(TransactionFilter(
                user_id="user_1",
                date_from=datetime(2024, 6, 1),
                date_to=datetime(2024, 7, 1)
            ))

        assert exc_info.value.code == "QUERY_DOCUMENTS_ERROR"
        assert exc_info.value.details == ["deadline exceeded"]


class TestFindAccounts:
    """Test account queries."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_accounts(self, source, collections):
        """Test balances and activity flags."""
        collections["accounts/user_1/bank_accounts"] = [
            _doc("acc_1", {"name": "Main", "balance": 1500.25, "is_active": True}),
            _doc("acc_2", {"balance": "20", "is_active": False}),
        ]

        accounts = await source.find_accounts("user_1")

        assert accounts[0].balance == Decimal("1500.25")
        assert accounts[1].name == "acc_2"
        assert accounts[1].is_active is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_account_failure(self, source, mock_client):
        """Test client errors are wrapped."""
        mock_client.collection.side_effect = RuntimeError("unavailable")

        with pytest.raises(DatabaseError):
            await source.find_accounts("user_1")


@pytest.mark.unit
class TestClientLifecycle:
    """Test client creation and the global source."""

    def test_connection_failure(self, test_settings):
        """Test client creation errors are wrapped."""
        source = FirestoreTransactionSource(settings=test_settings)

        with patch.object(firestore_module.firestore, "Client", side_effect=RuntimeError("no credentials")):
            with pytest.raises(DatabaseError) as exc_info:
                source.client

        assert exc_info.value.code == "FIRESTORE_CONNECTION_ERROR"

    def test_emulator_client(self, test_settings):
        """Test the emulator host is exported before connecting."""
        source = FirestoreTransactionSource(settings=test_settings)

        with patch.object(firestore_module.firestore, "Client") as client_cls:
            client = source.client

        assert client is client_cls.return_value
        client_cls.assert_called_once_with(project="test-project", database="(default)")

    @pytest.mark.asyncio
    async def test_global_source_and_cleanup(self, monkeypatch):
        """Test the singleton and closing its client."""
        monkeypatch.setattr(firestore_module, "_firestore_source", None)

        source = get_firestore_source()
        assert get_firestore_source() is source

        client = MagicMock()
        source._client = client
        await cleanup_firestore()

        client.close.assert_called_once()
        assert firestore_module._firestore_source is None
