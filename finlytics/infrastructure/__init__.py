"""
Infrastructure layer for transaction data sources.
"""
from .data_source import TransactionDataSource
from .firestore import FirestoreTransactionSource, cleanup_firestore, get_firestore_source
from .memory import InMemoryTransactionStore

__all__ = [
    "TransactionDataSource",
    "FirestoreTransactionSource",
    "InMemoryTransactionStore",
    "get_firestore_source",
    "cleanup_firestore",
]
