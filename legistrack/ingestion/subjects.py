"""
Subject taxonomy import.

Builds the bill_subjects collection from the Congress.gov subject and
policy-area lists, or derives it from stored bills when the lists are
unavailable.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from legistrack.cache import TTLCache
from legistrack.config.constants import SUBJECT_BATCH_DELAY, SUBJECT_BATCH_SIZE, SUBJECTS_CACHE_TTL
from legistrack.database.normalization import slugify_subject
from legistrack.database.store import BillStore
from legistrack.ingestion.base import BatchPipeline
from legistrack.ingestion.congress_gov import CongressGovClient
from legistrack.ingestion.transform import as_list, extract_policy_area, parse_bill_id
from legistrack.models import Bill, BillSubject, SubjectType, SyncResult

logger = logging.getLogger(__name__)

ALL_SUBJECTS_KEY = "all-subjects"


def _subjects_from_payload(items: Any, subject_type: SubjectType) -> List[BillSubject]:
    subjects = []
    for item in as_list(items):
        if not isinstance(item, dict) or not item.get("name"):
            continue
        subjects.append(BillSubject(
            subject_id=slugify_subject(item["name"], subject_type),
            name=item["name"],
            type=subject_type,
            count=int(item.get("count") or 0),
            update_date=item.get("updateDate"),
        ))
    return subjects


def observed_subjects(policy_area: Optional[str], subject_names: List[str]) -> List[BillSubject]:
    """Taxonomy entries for a policy area and a list of legislative subject names."""
    observed = []
    if policy_area:
        observed.append(BillSubject(
            subject_id=slugify_subject(policy_area, SubjectType.POLICY),
            name=policy_area,
            type=SubjectType.POLICY,
        ))
    for name in subject_names:
        observed.append(BillSubject(
            subject_id=slugify_subject(name, SubjectType.LEGISLATIVE),
            name=name,
            type=SubjectType.LEGISLATIVE,
        ))
    return observed


def subjects_from_bill(bill: Bill) -> List[BillSubject]:
    """Taxonomy entries observed on one bill: its policy area and legislative subjects."""
    return observed_subjects(bill.policy_area, bill.subjects)


class SubjectImporter(BatchPipeline):
    """
    Imports and serves the subject taxonomy.

    Usage:
        importer = SubjectImporter(client, store)
        count = await importer.import_all_subjects()
        subjects = await importer.get_all_subjects()
    """

    def __init__(
        self,
        client: CongressGovClient,
        store: BillStore,
        cache: Optional[TTLCache] = None,
        batch_size: int = SUBJECT_BATCH_SIZE,
        batch_delay: float = SUBJECT_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(batch_size=batch_size, batch_delay=batch_delay, sleep=sleep)
        self.client = client
        self.store = store
        self.cache = cache or TTLCache(SUBJECTS_CACHE_TTL, name="subjects")

    async def import_legislative_subjects(self) -> int:
        payload = await self.client.get_legislative_subjects()
        subjects = _subjects_from_payload(payload.get("subjects"), SubjectType.LEGISLATIVE)
        self.logger.info(f"📥 Processing {len(subjects)} legislative subjects...")
        return await self.store.upsert_subjects(subjects)

    async def import_policy_areas(self) -> int:
        payload = await self.client.get_policy_areas()
        subjects = _subjects_from_payload(payload.get("policyAreas"), SubjectType.POLICY)
        self.logger.info(f"📥 Processing {len(subjects)} policy areas...")
        return await self.store.upsert_subjects(subjects)

    async def import_all_subjects(self) -> int:
        """
        Import legislative subjects and policy areas.

        Returns:
            Number of subjects written

        Raises:
            CongressApiError / StoreWriteError: propagated from either import
        """
        self.logger.info("🏷️ Importing subject taxonomy...")
        count = await self.import_legislative_subjects()
        count += await self.import_policy_areas()
        self.cache.invalidate()
        self.logger.info(f"✅ Imported {count} subjects")
        return count

    async def _load_subjects(self) -> List[BillSubject]:
        subjects = await self.store.list_subjects()
        if subjects:
            return subjects

        self.logger.info("No stored subjects; deriving them from bills")
        bills = await self.store.find_bills({}, limit=100)
        derived = {}
        for bill in bills:
            for subject in subjects_from_bill(bill):
                derived.setdefault(subject.subject_id, subject)

        if derived:
            await self.store.upsert_subjects(derived.values())
        return sorted(derived.values(), key=lambda s: s.name)

    async def get_all_subjects(self) -> List[BillSubject]:
        """Full taxonomy, cached for 24 hours."""
        return await self.cache.get_or_fetch(ALL_SUBJECTS_KEY, self._load_subjects)

    async def _update_policy_area(self, bill_id: str) -> bool:
        congress, bill_type, number = parse_bill_id(bill_id)
        payload = await self.client.get_bill_subjects(congress, bill_type, number)
        policy_area = extract_policy_area(payload)
        if not policy_area:
            return False
        await self.store.update_bill_fields(bill_id, {"policy_area": policy_area})
        return True

    async def update_policy_areas_for_existing_bills(self, limit: int = 50) -> SyncResult:
        """Backfill policy_area for stored bills that lack one."""
        self.logger.info("🔄 Updating policy areas for existing bills...")
        try:
            bill_ids = await self.store.find_bill_ids({"policy_area": None}, limit=limit)
        except Exception as e:
            self.logger.error(f"Error updating policy areas: {e}")
            return SyncResult.failure(f"Error updating policy areas: {e}")

        if not bill_ids:
            return SyncResult(success=True, count=0, message="No bills found without policy areas")

        self.logger.info(f"📊 Found {len(bill_ids)} bills without policy areas")
        outcome = await self.run_batches(bill_ids, self._update_policy_area)
        return SyncResult(
            success=True,
            count=len(outcome.succeeded),
            message=f"Updated policy areas for {len(outcome.succeeded)} of {len(bill_ids)} bills",
            errors=outcome.errors,
        )
