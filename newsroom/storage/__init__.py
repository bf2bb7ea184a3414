"""Persistence: schema, engine helpers, retried transactions and the typed store."""

from .db import create_db_engine, dialect_insert, init_db
from .store import NewsStore, PublishedCluster
from .transactions import BatchResult, TransactionManager, is_transient_db_error

__all__ = [
    "create_db_engine",
    "dialect_insert",
    "init_db",
    "NewsStore",
    "PublishedCluster",
    "BatchResult",
    "TransactionManager",
    "is_transient_db_error",
]
