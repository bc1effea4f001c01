"""
Persistence Store: all reads and writes against MongoDB.

Every write is an upsert keyed on the natural key of its collection, so
re-running any sync converges on the same rows instead of duplicating them.
Write failures surface as StoreWriteError; read failures propagate as the
driver raised them.
"""
import logging
import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from legistrack.config.constants import (
    COLLECTION_BILLS,
    COLLECTION_SUBJECTS,
    COLLECTION_TAGS,
    COLLECTION_TRACKED_BILLS,
    STALE_AFTER_HOURS,
)
from legistrack.database.normalization import normalize_bill
from legistrack.errors import StoreWriteError
from legistrack.models import (
    Bill,
    BillSubject,
    BillTag,
    SubjectType,
    SyncStats,
    TagSource,
    TagSuggestion,
    TrackedBill,
    make_tag_id,
)
from legistrack.timeutils import utcnow

logger = logging.getLogger(__name__)

# Direction is ASCENDING, DESCENDING or {"$meta": "textScore"}
Sort = Sequence[Tuple[str, Any]]

NO_ID = {"_id": 0}


def stale_bills_filter(now: datetime, max_age: timedelta = timedelta(hours=STALE_AFTER_HOURS)) -> dict:
    """
    Filter selecting bills that need a re-sync.

    A bill is stale when it was never synced, was synced longer than
    `max_age` ago, or is still missing any of summary, full-text URL or
    policy area (regardless of age).
    """
    cutoff = now - max_age
    return {
        "$or": [
            {"last_synced": None},
            {"last_synced": {"$lt": cutoff}},
            {"summary": None},
            {"full_text_url": None},
            {"policy_area": None},
        ]
    }


def _plain(value: Any) -> Any:
    """Convert models and enums nested in an update into BSON-friendly values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="python", exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


class BillStore:
    """
    Repository over the bills, bill_subjects, bill_tags and
    user_tracked_bills collections.

    Usage:
        store = BillStore(get_async_database())
        await store.upsert_bill(bill)
        stale = await store.find_stale_bills(limit=50, now=utcnow())
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.bills = db[COLLECTION_BILLS]
        self.subjects = db[COLLECTION_SUBJECTS]
        self.tags = db[COLLECTION_TAGS]
        self.tracked = db[COLLECTION_TRACKED_BILLS]

    async def _write(self, description: str, operation: Awaitable[Any]) -> Any:
        try:
            return await operation
        except PyMongoError as e:
            logger.error(f"Store write failed ({description}): {e}")
            raise StoreWriteError(f"Failed to {description}: {e}") from e

    @staticmethod
    async def _to_list(cursor, sort: Optional[Sort] = None, skip: int = 0, limit: int = 0) -> List[dict]:
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    # ========================================================================
    # Bills
    # ========================================================================

    async def upsert_bill(self, bill: Bill) -> bool:
        """
        Insert or update a bill keyed on bill_id.

        Returns:
            True if a new row was inserted, False if an existing row was updated
        """
        result = await self._write(
            f"upsert bill {bill.bill_id}",
            self.bills.update_one(
                {"bill_id": bill.bill_id},
                {"$set": normalize_bill(bill), "$setOnInsert": {"created_at": bill.updated_at}},
                upsert=True,
            ),
        )
        return result.upserted_id is not None

    async def upsert_bills(self, bills: Iterable[Bill]) -> List[str]:
        """Upsert several bills; returns their ids in input order."""
        bill_ids = []
        for bill in bills:
            await self.upsert_bill(bill)
            bill_ids.append(bill.bill_id)
        return bill_ids

    async def insert_bills_if_missing(self, bills: Iterable[Bill]) -> int:
        """
        Insert bills that are not stored yet, leaving existing rows untouched.

        Used to cache search results without overwriting enriched rows.

        Returns:
            Number of rows inserted
        """
        inserted = 0
        for bill in bills:
            document = normalize_bill(bill)
            document["created_at"] = bill.updated_at
            result = await self._write(
                f"insert bill {bill.bill_id}",
                self.bills.update_one({"bill_id": bill.bill_id}, {"$setOnInsert": document}, upsert=True),
            )
            if result.upserted_id is not None:
                inserted += 1
        return inserted

    async def update_bill_fields(self, bill_id: str, fields: Dict[str, Any], now: Optional[datetime] = None) -> bool:
        """
        Set specific fields on a bill, stamping updated_at.

        Returns:
            True if the bill exists
        """
        update = {k: _plain(v) for k, v in fields.items()}
        update["updated_at"] = now or utcnow()
        result = await self._write(
            f"update bill {bill_id}",
            self.bills.update_one({"bill_id": bill_id}, {"$set": update}),
        )
        return result.matched_count > 0

    async def get_bill(self, bill_id: str) -> Optional[Bill]:
        document = await self.bills.find_one({"bill_id": bill_id}, NO_ID)
        return Bill.model_validate(document) if document else None

    async def get_bills(self, bill_ids: Sequence[str]) -> List[Bill]:
        if not bill_ids:
            return []
        return await self.find_bills({"bill_id": {"$in": list(bill_ids)}})

    async def find_bills(
        self,
        filters: Optional[dict] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Bill]:
        documents = await self._to_list(self.bills.find(filters or {}, NO_ID), sort, skip, limit)
        return [Bill.model_validate(doc) for doc in documents]

    async def find_bill_ids(
        self,
        filters: Optional[dict] = None,
        sort: Optional[Sort] = None,
        limit: int = 0,
    ) -> List[str]:
        documents = await self._to_list(
            self.bills.find(filters or {}, {"bill_id": 1, "_id": 0}), sort, limit=limit
        )
        return [doc["bill_id"] for doc in documents]

    async def count_bills(self, filters: Optional[dict] = None) -> int:
        return await self.bills.count_documents(filters or {})

    async def find_stale_bills(
        self,
        limit: int,
        now: Optional[datetime] = None,
        max_age: timedelta = timedelta(hours=STALE_AFTER_HOURS),
    ) -> List[str]:
        """Ids of stale bills, least recently updated first."""
        return await self.find_bill_ids(
            stale_bills_filter(now or utcnow(), max_age),
            sort=[("updated_at", ASCENDING)],
            limit=limit,
        )

    async def sync_stats(
        self,
        now: Optional[datetime] = None,
        max_age: timedelta = timedelta(hours=STALE_AFTER_HOURS),
    ) -> SyncStats:
        now = now or utcnow()
        total = await self.bills.count_documents({})
        recent = await self.bills.count_documents({"last_synced": {"$gte": now - max_age}})
        stale = await self.bills.count_documents(stale_bills_filter(now, max_age))
        latest = await self.bills.find_one(
            {"last_synced": {"$ne": None}},
            {"last_synced": 1, "_id": 0},
            sort=[("last_synced", DESCENDING)],
        )
        return SyncStats(
            total_bills=total,
            recently_synced=recent,
            needs_update=stale,
            last_sync_time=latest["last_synced"] if latest else None,
        )

    # ========================================================================
    # Subjects
    # ========================================================================

    async def upsert_subjects(self, subjects: Iterable[BillSubject]) -> int:
        count = 0
        for subject in subjects:
            await self._write(
                f"upsert subject {subject.subject_id}",
                self.subjects.update_one(
                    {"subject_id": subject.subject_id},
                    {"$set": subject.model_dump(mode="json")},
                    upsert=True,
                ),
            )
            count += 1
        return count

    async def list_subjects(self, subject_type: Optional[SubjectType] = None) -> List[BillSubject]:
        filters = {"type": SubjectType(subject_type).value} if subject_type else {}
        documents = await self._to_list(self.subjects.find(filters, NO_ID), sort=[("name", ASCENDING)])
        return [BillSubject.model_validate(doc) for doc in documents]

    async def find_subjects_by_names(self, names: Sequence[str]) -> List[BillSubject]:
        """Subjects whose name contains any of `names` (case-insensitive)."""
        patterns = [{"name": {"$regex": re.escape(name), "$options": "i"}} for name in names if name]
        if not patterns:
            return []
        documents = await self._to_list(self.subjects.find({"$or": patterns}, NO_ID))
        return [BillSubject.model_validate(doc) for doc in documents]

    # ========================================================================
    # Tags
    # ========================================================================

    async def upsert_tags(
        self,
        bill_id: str,
        suggestions: Iterable[TagSuggestion],
        source: TagSource = TagSource.AI,
        now: Optional[datetime] = None,
    ) -> int:
        """Upsert tags keyed on (bill_id, subject_id)."""
        now = now or utcnow()
        count = 0
        for suggestion in suggestions:
            await self._write(
                f"upsert tag {bill_id}/{suggestion.subject_id}",
                self.tags.update_one(
                    {"bill_id": bill_id, "subject_id": suggestion.subject_id},
                    {
                        "$set": {
                            "tag_id": make_tag_id(bill_id, suggestion.subject_id),
                            "confidence_score": suggestion.confidence_score,
                            "source": TagSource(source).value,
                            "updated_at": now,
                        },
                        "$setOnInsert": {"created_at": now},
                    },
                    upsert=True,
                ),
            )
            count += 1
        return count

    async def has_tags(self, bill_id: str) -> bool:
        return await self.tags.find_one({"bill_id": bill_id}, {"_id": 1}) is not None

    async def tagged_bill_ids(self) -> List[str]:
        return await self.tags.distinct("bill_id")

    async def _join_subjects(self, documents: List[dict]) -> List[BillTag]:
        subject_ids = list({doc["subject_id"] for doc in documents})
        subjects = {}
        if subject_ids:
            rows = await self._to_list(self.subjects.find({"subject_id": {"$in": subject_ids}}, NO_ID))
            subjects = {row["subject_id"]: row for row in rows}

        tags = []
        for doc in documents:
            subject = subjects.get(doc["subject_id"], {})
            tags.append(BillTag.model_validate({**doc, "name": subject.get("name"), "type": subject.get("type")}))
        return tags

    async def get_tags(self, bill_id: str, min_confidence: int = 0) -> List[BillTag]:
        """Tags for a bill joined with subject name/type, highest confidence first."""
        documents = await self._to_list(
            self.tags.find({"bill_id": bill_id, "confidence_score": {"$gte": min_confidence}}, NO_ID),
            sort=[("confidence_score", DESCENDING)],
        )
        return await self._join_subjects(documents)

    async def get_tags_for_bills(self, bill_ids: Sequence[str], min_confidence: int = 0) -> Dict[str, List[BillTag]]:
        if not bill_ids:
            return {}
        documents = await self._to_list(
            self.tags.find({"bill_id": {"$in": list(bill_ids)}, "confidence_score": {"$gte": min_confidence}}, NO_ID),
            sort=[("confidence_score", DESCENDING)],
        )
        grouped: Dict[str, List[BillTag]] = {bill_id: [] for bill_id in bill_ids}
        for tag in await self._join_subjects(documents):
            grouped.setdefault(tag.bill_id, []).append(tag)
        return grouped

    async def get_tag(self, tag_id: str) -> Optional[BillTag]:
        document = await self.tags.find_one({"tag_id": tag_id}, NO_ID)
        return BillTag.model_validate(document) if document else None

    async def update_tag(self, tag_id: str, fields: Dict[str, Any]) -> bool:
        result = await self._write(
            f"update tag {tag_id}",
            self.tags.update_one({"tag_id": tag_id}, {"$set": {k: _plain(v) for k, v in fields.items()}}),
        )
        return result.matched_count > 0

    async def find_tags(self, subject_ids: Sequence[str], min_confidence: int = 0) -> List[BillTag]:
        """Tags on any of `subject_ids` at or above `min_confidence`, highest first."""
        if not subject_ids:
            return []
        documents = await self._to_list(
            self.tags.find(
                {"subject_id": {"$in": list(subject_ids)}, "confidence_score": {"$gte": min_confidence}},
                NO_ID,
            ),
            sort=[("confidence_score", DESCENDING)],
        )
        return [BillTag.model_validate(doc) for doc in documents]

    # ========================================================================
    # Tracking
    # ========================================================================

    async def upsert_tracking(self, tracked: TrackedBill) -> bool:
        """
        Track a bill for a user, keyed on (user_id, bill_id).

        Re-tracking replaces settings, notes and tags but keeps the original
        tracked_at and view count.

        Returns:
            True if this is a new tracking row
        """
        document = tracked.model_dump(mode="python")
        on_insert = {
            "tracked_at": document.pop("tracked_at"),
            "view_count": document.pop("view_count"),
        }
        result = await self._write(
            f"track bill {tracked.bill_id} for {tracked.user_id}",
            self.tracked.update_one(
                {"user_id": tracked.user_id, "bill_id": tracked.bill_id},
                {"$set": document, "$setOnInsert": on_insert},
                upsert=True,
            ),
        )
        return result.upserted_id is not None

    async def delete_tracking(self, user_id: str, bill_id: str) -> bool:
        result = await self._write(
            f"untrack bill {bill_id} for {user_id}",
            self.tracked.delete_one({"user_id": user_id, "bill_id": bill_id}),
        )
        return result.deleted_count > 0

    async def get_tracking(self, user_id: str, bill_id: str) -> Optional[TrackedBill]:
        document = await self.tracked.find_one({"user_id": user_id, "bill_id": bill_id}, NO_ID)
        return TrackedBill.model_validate(document) if document else None

    async def list_tracking(self, user_id: str) -> List[TrackedBill]:
        documents = await self._to_list(
            self.tracked.find({"user_id": user_id}, NO_ID),
            sort=[("tracked_at", DESCENDING)],
        )
        return [TrackedBill.model_validate(doc) for doc in documents]

    async def update_tracking(self, user_id: str, bill_id: str, fields: Dict[str, Any]) -> bool:
        result = await self._write(
            f"update tracking {bill_id} for {user_id}",
            self.tracked.update_one(
                {"user_id": user_id, "bill_id": bill_id},
                {"$set": {k: _plain(v) for k, v in fields.items()}},
            ),
        )
        return result.matched_count > 0

    async def increment_view(self, user_id: str, bill_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        result = await self._write(
            f"record view {bill_id} for {user_id}",
            self.tracked.update_one(
                {"user_id": user_id, "bill_id": bill_id},
                {"$inc": {"view_count": 1}, "$set": {"last_viewed": now, "updated_at": now}},
            ),
        )
        return result.matched_count > 0
