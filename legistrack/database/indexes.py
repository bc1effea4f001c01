"""
Database Indexes Module

Creates the MongoDB indexes the store relies on. The unique indexes are what
make upserts idempotent: one row per bill_id, per subject_id, per
(bill_id, subject_id) tag and per (user_id, bill_id) tracking entry.

Usage:
    legistrack setup-indexes

    # From async Python
    from legistrack.database.indexes import create_indexes
    await create_indexes(db)
"""
import logging
from typing import Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, TEXT

from legistrack.config.constants import (
    COLLECTION_BILLS,
    COLLECTION_SUBJECTS,
    COLLECTION_TAGS,
    COLLECTION_TRACKED_BILLS,
)

logger = logging.getLogger(__name__)


async def create_bills_indexes(db: AsyncIOMotorDatabase):
    """Create indexes for the bills collection"""
    collection = db[COLLECTION_BILLS]

    logger.info("Creating bills indexes...")

    await collection.create_index(
        [("bill_id", ASCENDING)],
        unique=True,
        name="idx_bill_id"
    )

    await collection.create_index(
        [("congress", ASCENDING), ("bill_type", ASCENDING), ("introduced_date", DESCENDING)],
        name="idx_congress_type_date"
    )

    # Stale-bill selection orders by updated_at and filters on last_synced
    await collection.create_index(
        [("updated_at", ASCENDING)],
        name="idx_updated_at"
    )

    await collection.create_index(
        [("last_synced", ASCENDING)],
        name="idx_last_synced"
    )

    await collection.create_index(
        [("policy_area", ASCENDING)],
        name="idx_policy_area",
        sparse=True
    )

    await collection.create_index(
        [("subjects", ASCENDING)],
        name="idx_subjects"
    )

    await collection.create_index(
        [("sponsors.state", ASCENDING), ("sponsors.party", ASCENDING)],
        name="idx_sponsor_state_party"
    )

    await collection.create_index(
        [
            ("title", TEXT),
            ("short_title", TEXT),
            ("summary", TEXT),
            ("subjects", TEXT),
            ("policy_area", TEXT),
        ],
        name="idx_bill_text_search",
        weights={"title": 10, "short_title": 10, "summary": 5, "policy_area": 3, "subjects": 2}
    )


async def create_subjects_indexes(db: AsyncIOMotorDatabase):
    """Create indexes for the bill_subjects collection"""
    collection = db[COLLECTION_SUBJECTS]

    logger.info("Creating bill_subjects indexes...")

    await collection.create_index(
        [("subject_id", ASCENDING)],
        unique=True,
        name="idx_subject_id"
    )

    await collection.create_index(
        [("type", ASCENDING), ("name", ASCENDING)],
        name="idx_type_name"
    )


async def create_tags_indexes(db: AsyncIOMotorDatabase):
    """Create indexes for the bill_tags collection"""
    collection = db[COLLECTION_TAGS]

    logger.info("Creating bill_tags indexes...")

    await collection.create_index(
        [("bill_id", ASCENDING), ("subject_id", ASCENDING)],
        unique=True,
        name="idx_unique_bill_subject"
    )

    await collection.create_index(
        [("tag_id", ASCENDING)],
        unique=True,
        name="idx_tag_id"
    )

    await collection.create_index(
        [("subject_id", ASCENDING), ("confidence_score", DESCENDING)],
        name="idx_subject_confidence"
    )


async def create_tracked_bills_indexes(db: AsyncIOMotorDatabase):
    """Create indexes for the user_tracked_bills collection"""
    collection = db[COLLECTION_TRACKED_BILLS]

    logger.info("Creating user_tracked_bills indexes...")

    await collection.create_index(
        [("user_id", ASCENDING), ("bill_id", ASCENDING)],
        unique=True,
        name="idx_unique_user_bill"
    )

    await collection.create_index(
        [("user_id", ASCENDING), ("tracked_at", DESCENDING)],
        name="idx_user_tracked_at"
    )


async def create_indexes(db: AsyncIOMotorDatabase):
    """Create every index used by the store."""
    await create_bills_indexes(db)
    await create_subjects_indexes(db)
    await create_tags_indexes(db)
    await create_tracked_bills_indexes(db)
    logger.info("✅ All indexes created")


async def list_indexes(db: AsyncIOMotorDatabase) -> Dict[str, List[str]]:
    """Index names per collection."""
    result = {}
    for name in (COLLECTION_BILLS, COLLECTION_SUBJECTS, COLLECTION_TAGS, COLLECTION_TRACKED_BILLS):
        info = await db[name].index_information()
        result[name] = sorted(info.keys())
    return result
