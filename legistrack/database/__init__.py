"""
Database module - MongoDB connection, indexes and the bill store.
"""

from legistrack.database.connection import (
    get_sync_client,
    get_sync_database,
    close_sync_client,
    get_async_client,
    get_async_database,
    close_async_client,
    test_connection,
)
from legistrack.database.store import BillStore, stale_bills_filter

__all__ = [
    "get_sync_client",
    "get_sync_database",
    "close_sync_client",
    "get_async_client",
    "get_async_database",
    "close_async_client",
    "test_connection",
    "BillStore",
    "stale_bills_filter",
]
