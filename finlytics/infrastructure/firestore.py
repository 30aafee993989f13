"""
Firestore-backed transaction data source.
"""
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from google.cloud import firestore
from google.cloud.firestore import Client as FirestoreClient

from ..config import Settings, get_settings
from ..models.financial import (
    AccountRef,
    CategoryRef,
    TransactionFilter,
    TransactionSample,
    TransactionType,
)
from ..utils.exceptions import DatabaseError

logger = structlog.get_logger()


class FirestoreTransactionSource:
    """
    Reads transactions, categories and accounts from the per-user
    Firestore collections.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[FirestoreClient] = None):
        self._client: Optional[FirestoreClient] = client
        self._settings = settings or get_settings()

    @property
    def client(self) -> FirestoreClient:
        """Get or create Firestore client."""
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> FirestoreClient:
        """Create and configure Firestore client."""
        try:
            if self._settings.use_firestore_emulator:
                os.environ["FIRESTORE_EMULATOR_HOST"] = self._settings.firestore_emulator_host
                client = firestore.Client(
                    project=self._settings.firestore_project_id,
                    database=self._settings.firestore_database
                )
                logger.info(
                    "Connected to Firestore emulator",
                    host=self._settings.firestore_emulator_host,
                    project=self._settings.firestore_project_id
                )
            else:
                if self._settings.google_credentials_path:
                    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = self._settings.google_credentials_path

                client = firestore.Client(
                    project=self._settings.firestore_project_id,
                    database=self._settings.firestore_database
                )
                logger.info(
                    "Connected to Firestore",
                    project=self._settings.firestore_project_id
                )

            return client

        except Exception as e:
            logger.error("Failed to create Firestore client", error=str(e))
            raise DatabaseError(
                message="Failed to connect to database",
                code="FIRESTORE_CONNECTION_ERROR",
                details=[str(e)]
            )

    def _stream(self, collection: str, where_clauses: List[tuple]) -> List[Dict[str, Any]]:
        query = self.client.collection(collection)
        for field, operator, value in where_clauses:
            query = query.where(field, operator, value)

        documents = []
        for doc in query.stream():
            doc_data = doc.to_dict() or {}
            doc_data["id"] = doc.id
            documents.append(doc_data)
        return documents

    async def find_transactions(self, filter: TransactionFilter) -> List[TransactionSample]:
        collection = f"transactions/{filter.user_id}/user_transactions"
        where_clauses = [
            ("is_active", "==", True),
            ("transaction_date", ">=", filter.date_from),
            ("transaction_date", "<=" if filter.end_inclusive else "<", filter.date_to),
        ]
        if filter.type is not None:
            where_clauses.append(("transaction_type", "==", TransactionType(filter.type).value))

        try:
            documents = self._stream(collection, where_clauses)
            category_names = {c.id: c.name for c in await self.find_categories(filter.user_id)}

            samples = []
            for doc_data in documents:
                sample = self._to_sample(filter.user_id, doc_data, category_names)
                if filter.matches(sample):
                    samples.append(sample)
            samples.sort(key=lambda s: s.date)

            logger.info(
                "Transactions queried",
                collection=collection,
                count=len(samples),
                filters=where_clauses
            )
            return samples

        except DatabaseError:
            raise
        except Exception as e:
            logger.error(
                "Failed to query transactions",
                collection=collection,
                error=str(e)
            )
            raise DatabaseError(
                message="Failed to query transactions",
                code="QUERY_DOCUMENTS_ERROR",
                details=[str(e)]
            )

    async def find_categories(self, user_id: str) -> List[CategoryRef]:
        collection = f"categories/{user_id}/user_categories"
        try:
            documents = self._stream(collection, [])
            return [
                CategoryRef(id=doc["id"], name=doc.get("name") or "Unknown")
                for doc in documents
            ]
        except Exception as e:
            logger.error(
                "Failed to query categories",
                collection=collection,
                error=str(e)
            )
            raise DatabaseError(
                message="Failed to query categories",
                code="QUERY_DOCUMENTS_ERROR",
                details=[str(e)]
            )

    async def find_accounts(self, user_id: str) -> List[AccountRef]:
        collection = f"accounts/{user_id}/bank_accounts"
        try:
            documents = self._stream(collection, [])
            return [
                AccountRef(
                    id=doc["id"],
                    name=doc.get("name") or doc["id"],
                    balance=Decimal(str(doc.get("balance", "0"))),
                    is_active=doc.get("is_active", True)
                )
                for doc in documents
            ]
        except Exception as e:
            logger.error(
                "Failed to query accounts",
                collection=collection,
                error=str(e)
            )
            raise DatabaseError(
                message="Failed to query accounts",
                code="QUERY_DOCUMENTS_ERROR",
                details=[str(e)]
            )

    @staticmethod
    def _to_sample(
        user_id: str,
        doc_data: Dict[str, Any],
        category_names: Dict[str, str]
    ) -> TransactionSample:
        # Stored amounts may carry a sign; analytics work on magnitudes
        amount = abs(Decimal(str(doc_data.get("amount", "0"))))
        category_id = doc_data.get("category_id") or "uncategorized"
        transaction_date = doc_data["transaction_date"]
        if isinstance(transaction_date, datetime) and transaction_date.tzinfo is not None:
            # Firestore timestamps are aware; queries use naive UTC
            transaction_date = transaction_date.astimezone(timezone.utc).replace(tzinfo=None)
        return TransactionSample(
            id=doc_data["id"],
            user_id=user_id,
            date=transaction_date,
            amount=amount,
            type=doc_data["transaction_type"],
            category_id=category_id,
            category_name=category_names.get(category_id, "Unknown"),
            account_id=doc_data.get("account_id"),
            is_deleted=not doc_data.get("is_active", True)
        )


# Global Firestore source instance
_firestore_source: Optional[FirestoreTransactionSource] = None


def get_firestore_source() -> FirestoreTransactionSource:
    """Get the global Firestore data source instance."""
    global _firestore_source
    if _firestore_source is None:
        _firestore_source = FirestoreTransactionSource()
    return _firestore_source


async def cleanup_firestore():
    """Cleanup Firestore connections."""
    global _firestore_source
    if _firestore_source and _firestore_source._client:
        _firestore_source._client.close()
        _firestore_source = None
        logger.info("Firestore client closed")
