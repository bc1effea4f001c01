"""
MongoDB connection management.

One Motor client serves the sync pipelines and services; a pymongo client
is kept for the connection check and other one-off admin commands. Both are
created lazily, tz-aware (stored timestamps come back as UTC datetimes
comparable with utcnow()) and fail fast when the server is unreachable.

Usage:
    db = get_async_database()
    store = BillStore(db)
    ...
    close_async_client()
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from legistrack.config.constants import (
    COLLECTION_BILLS,
    COLLECTION_SUBJECTS,
    COLLECTION_TAGS,
    COLLECTION_TRACKED_BILLS,
    MONGO_SERVER_SELECTION_TIMEOUT_MS,
)
from legistrack.config.settings import settings

logger = logging.getLogger(__name__)

APP_COLLECTIONS = (COLLECTION_BILLS, COLLECTION_SUBJECTS, COLLECTION_TAGS, COLLECTION_TRACKED_BILLS)

_async_client: Optional[AsyncIOMotorClient] = None
_sync_client: Optional[MongoClient] = None


def _client_options() -> dict:
    return {
        "tz_aware": True,
        "appname": settings.APP_NAME,
        "serverSelectionTimeoutMS": MONGO_SERVER_SELECTION_TIMEOUT_MS,
    }


# ============================================================
# Motor (async)
# ============================================================

def get_async_client() -> AsyncIOMotorClient:
    global _async_client
    if _async_client is None:
        logger.debug(f"Opening Motor client for database '{settings.MONGODB_DATABASE}'")
        _async_client = AsyncIOMotorClient(settings.MONGODB_URI, **_client_options())
    return _async_client


def get_async_database(name: Optional[str] = None) -> AsyncIOMotorDatabase:
    """The configured database, or `name` on the same server."""
    return get_async_client()[name or settings.MONGODB_DATABASE]


def close_async_client() -> None:
    global _async_client
    if _async_client is not None:
        _async_client.close()
        _async_client = None


# ============================================================
# pymongo (sync)
# ============================================================

def get_sync_client() -> MongoClient:
    global _sync_client
    if _sync_client is None:
        _sync_client = MongoClient(settings.MONGODB_URI, **_client_options())
    return _sync_client


def get_sync_database(name: Optional[str] = None) -> Database:
    return get_sync_client()[name or settings.MONGODB_DATABASE]


def close_sync_client() -> None:
    global _sync_client
    if _sync_client is not None:
        _sync_client.close()
        _sync_client = None


# ============================================================
# Health check
# ============================================================

def test_connection() -> dict:
    """
    Ping MongoDB and report which LegisTrack collections exist.

    Blocking; call through asyncio.to_thread from async code.

    Returns:
        {"success": bool, "message": str, "missing_collections": [...]} or
        {"success": False, "message": str, "error": str}
    """
    try:
        db = get_sync_database()
        db.client.admin.command("ping")
        existing = set(db.list_collection_names())
    except PyMongoError as e:
        logger.error(f"MongoDB connection failed: {e}")
        return {"success": False, "message": "Could not reach MongoDB", "error": str(e)}

    missing = [name for name in APP_COLLECTIONS if name not in existing]
    message = f"Connected to '{settings.MONGODB_DATABASE}'"
    if missing:
        message += f" ({len(missing)} collections not created yet)"
    return {"success": True, "message": message, "missing_collections": missing}
