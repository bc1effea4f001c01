"""
Sync Orchestrator: keeps the bills collection in step with Congress.gov.

Three entry points:
- initial_data_collection: one bulk page, every bill upserted and enriched
- resync_stale_bills: re-fetch only bills the store reports as stale
- ongoing_synchronization: bills updated upstream in the last N days

Each bill is upserted from the primary payload first, then five enrichers
(summary, subjects, full text, committees, cosponsors) run concurrently.
An enricher failing only leaves its own fields empty.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_not_exception_type, stop_after_attempt, wait_fixed

from legistrack.agents.tagging import TagGenerator
from legistrack.config.constants import (
    CURRENT_CONGRESS,
    DEFAULT_BILL_SORT,
    STALE_AFTER_HOURS,
    SYNC_BATCH_DELAY,
    SYNC_BATCH_SIZE,
    SYNC_MAX_RETRIES,
    SYNC_RETRY_DELAY,
)
from legistrack.database.store import BillStore
from legistrack.errors import CongressApiError, ConfigurationError, InvalidBillIdError, MalformedResponseError
from legistrack.ingestion.base import BatchPipeline
from legistrack.ingestion.congress_gov import CongressGovClient
from legistrack.ingestion.full_text import FullTextFetcher
from legistrack.ingestion.subjects import observed_subjects
from legistrack.ingestion.transform import (
    as_list,
    count_cosponsors,
    describe_raw_bill,
    extract_committees,
    extract_policy_area,
    extract_subjects,
    extract_summary_text,
    make_bill_id,
    parse_bill_id,
    transform_congress_bill,
)
from legistrack.models import Bill, SyncResult, SyncStats
from legistrack.timeutils import ensure_utc, format_api_datetime, parse_api_datetime, utcnow

logger = logging.getLogger(__name__)


class BillSyncer(BatchPipeline):
    """
    Orchestrates bill synchronization.

    Usage:
        syncer = BillSyncer(client, store, full_text=fetcher)
        result = await syncer.initial_data_collection(congress=118, limit=100)
        print(result.message)
    """

    def __init__(
        self,
        client: CongressGovClient,
        store: BillStore,
        full_text: Optional[FullTextFetcher] = None,
        tagger: Optional[TagGenerator] = None,
        tag_after_sync: bool = False,
        batch_size: int = SYNC_BATCH_SIZE,
        batch_delay: float = SYNC_BATCH_DELAY,
        max_retries: int = SYNC_MAX_RETRIES,
        retry_delay: float = SYNC_RETRY_DELAY,
        stale_after: timedelta = timedelta(hours=STALE_AFTER_HOURS),
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(batch_size=batch_size, batch_delay=batch_delay, sleep=sleep)
        self.client = client
        self.store = store
        self.full_text = full_text
        self.tagger = tagger
        self.tag_after_sync = tag_after_sync and tagger is not None
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.stale_after = stale_after
        self._clock = clock

    # ========================================================================
    # Enrichment
    # ========================================================================

    async def enrich_summary(self, bill_id: str) -> None:
        congress, bill_type, number = parse_bill_id(bill_id)
        payload = await self.client.get_bill_summaries(congress, bill_type, number)
        summary = extract_summary_text(payload)
        if summary:
            await self.store.update_bill_fields(bill_id, {"summary": summary}, now=self._clock())

    async def enrich_subjects(self, bill_id: str) -> None:
        congress, bill_type, number = parse_bill_id(bill_id)
        payload = await self.client.get_bill_subjects(congress, bill_type, number)
        subjects = extract_subjects(payload)
        policy_area = extract_policy_area(payload)

        fields: Dict[str, Any] = {"subjects": subjects}
        if policy_area:
            fields["policy_area"] = policy_area
        await self.store.update_bill_fields(bill_id, fields, now=self._clock())

        # Keep the taxonomy covering everything we have seen on a bill
        await self.store.upsert_subjects(observed_subjects(policy_area, subjects))

    async def enrich_full_text(self, bill_id: str) -> None:
        if self.full_text is None:
            return
        await self.full_text.update_bill_full_text(bill_id)

    async def enrich_committees(self, bill_id: str) -> None:
        congress, bill_type, number = parse_bill_id(bill_id)
        payload = await self.client.get_bill_committees(congress, bill_type, number)
        committees = extract_committees(payload)
        if committees:
            await self.store.update_bill_fields(bill_id, {"committees": committees}, now=self._clock())

    async def enrich_cosponsors(self, bill_id: str) -> None:
        congress, bill_type, number = parse_bill_id(bill_id)
        payload = await self.client.get_bill_cosponsors(congress, bill_type, number)
        await self.store.update_bill_fields(
            bill_id, {"cosponsors_count": count_cosponsors(payload)}, now=self._clock()
        )

    async def _run_enricher(self, name: str, enricher: Callable[[str], Awaitable[None]], bill_id: str) -> bool:
        try:
            await enricher(bill_id)
            return True
        except Exception as e:
            self.logger.warning(f"Could not fetch {name} for bill {bill_id}: {e}")
            return False

    async def enrich_bill(self, bill_id: str) -> Dict[str, bool]:
        """
        Run every enricher for a bill concurrently.

        Returns:
            {enricher name: succeeded}
        """
        enrichers = {
            "summary": self.enrich_summary,
            "subjects": self.enrich_subjects,
            "full_text": self.enrich_full_text,
            "committees": self.enrich_committees,
            "cosponsors": self.enrich_cosponsors,
        }
        results = await asyncio.gather(
            *(self._run_enricher(name, enricher, bill_id) for name, enricher in enrichers.items())
        )
        return dict(zip(enrichers.keys(), results))

    async def _tag(self, bill_id: str) -> None:
        if not self.tag_after_sync:
            return
        bill = await self.store.get_bill(bill_id)
        if bill is not None:
            await self.tagger.tag_bill(bill)

    # ========================================================================
    # Per-bill sync
    # ========================================================================

    async def _store_and_enrich(self, raw: dict, synced_at: datetime) -> str:
        bill = transform_congress_bill(raw, synced_at)
        await self.store.upsert_bill(bill)
        await self.enrich_bill(bill.bill_id)
        await self._tag(bill.bill_id)
        return bill.bill_id

    async def fetch_and_store(self, bill_id: str) -> Bill:
        """
        Fetch one bill's primary record and upsert it, without enrichment.

        Raises:
            InvalidBillIdError: malformed id
            CongressApiError: upstream failure or bill not found
        """
        congress, bill_type, number = parse_bill_id(bill_id)
        response = await self.client.get_bill(congress, bill_type, number)
        raw = response.get("bill")
        if not raw:
            raise MalformedResponseError(f"Bill {bill_id} not found in Congress.gov response")

        bill = transform_congress_bill(raw, self._clock())
        await self.store.upsert_bill(bill)
        return bill

    async def _sync_one(self, bill_id: str) -> Bill:
        bill = await self.fetch_and_store(bill_id)
        await self.enrich_bill(bill.bill_id)
        await self._tag(bill.bill_id)
        return await self.store.get_bill(bill.bill_id) or bill

    async def sync_bill_by_id(self, bill_id: str) -> Optional[Bill]:
        """
        Fetch, upsert and enrich one bill, retrying on failure.

        Returns:
            The stored bill, or None when every attempt failed

        Raises:
            InvalidBillIdError: malformed id (not retried)
            ConfigurationError: no API key
        """
        parse_bill_id(bill_id)
        self.client.ensure_configured()

        attempts = self.max_retries + 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_not_exception_type((ConfigurationError, InvalidBillIdError)),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    self.logger.info(f"🔄 Syncing bill {bill_id} (attempt {number}/{attempts})")
                    return await self._sync_one(bill_id)
        except (ConfigurationError, InvalidBillIdError):
            raise
        except Exception as e:
            self.logger.error(f"Giving up on bill {bill_id} after {attempts} attempts: {e}")

        return None

    def _log_retry(self, retry_state: RetryCallState) -> None:
        self.logger.error(
            f"Error syncing bill (attempt {retry_state.attempt_number}): {retry_state.outcome.exception()}"
        )

    async def _sync_or_raise(self, bill_id: str) -> str:
        bill = await self.sync_bill_by_id(bill_id)
        if bill is None:
            raise CongressApiError(f"Failed to sync bill {bill_id} after {self.max_retries + 1} attempts")
        return bill.bill_id

    async def sync_multiple_bills(self, bill_ids: Sequence[str]) -> SyncResult:
        """Sync a list of bills by id in batches."""
        self.client.ensure_configured()
        if not bill_ids:
            return SyncResult(success=True, count=0, message="No bills to sync")

        self.logger.info(f"🔄 Syncing {len(bill_ids)} bills...")
        outcome = await self.run_batches(list(bill_ids), self._sync_or_raise)
        return SyncResult(
            success=True,
            count=len(outcome.succeeded),
            message=f"Successfully synced {len(outcome.succeeded)} of {len(bill_ids)} bills",
            errors=outcome.errors,
        )

    # ========================================================================
    # Bulk operations
    # ========================================================================

    async def _list_bills(self, congress: int, limit: int, offset: int = 0, **extra: Any) -> List[dict]:
        response = await self.client.get_bills(
            congress=congress, limit=limit, offset=offset, sort=DEFAULT_BILL_SORT, **extra
        )
        if "bills" not in response:
            raise MalformedResponseError("No bills returned from Congress.gov")
        return as_list(response["bills"])

    async def initial_data_collection(
        self,
        congress: int = CURRENT_CONGRESS,
        limit: int = 100,
        offset: int = 0,
    ) -> SyncResult:
        """
        Collect one page of bills and store every one of them.

        Args:
            congress: Congress number
            limit: Page size (capped at 250 by the client)
            offset: Pagination offset

        Returns:
            SyncResult with per-bill errors
        """
        self.client.ensure_configured()
        self.logger.info(f"🚀 Starting initial data collection for Congress {congress} (limit {limit})")

        try:
            raw_bills = await self._list_bills(congress, limit, offset)
        except CongressApiError as e:
            self.logger.error(f"Error in initial data collection: {e}")
            return SyncResult.failure(f"Error in initial data collection: {e}")

        self.logger.info(f"📊 Retrieved {len(raw_bills)} bills from Congress.gov")
        synced_at = self._clock()
        outcome = await self.run_batches(
            raw_bills, lambda raw: self._store_and_enrich(raw, synced_at), describe=describe_raw_bill
        )

        return SyncResult(
            success=True,
            count=len(outcome.succeeded),
            message=f"Successfully collected data for {len(outcome.succeeded)} of {len(raw_bills)} bills",
            errors=outcome.errors,
        )

    async def resync_stale_bills(self, limit: int = 50) -> SyncResult:
        """Re-sync only the bills the store reports as stale."""
        self.client.ensure_configured()
        self.logger.info(f"🔄 Starting incremental sync (limit {limit})")

        try:
            bill_ids = await self.store.find_stale_bills(limit, now=self._clock(), max_age=self.stale_after)
        except Exception as e:
            self.logger.error(f"Error finding stale bills: {e}")
            return SyncResult.failure(f"Error in incremental sync: {e}")

        if not bill_ids:
            return SyncResult(success=True, count=0, message="No bills found that need updating")

        self.logger.info(f"📊 Found {len(bill_ids)} bills that need updating")
        return await self.sync_multiple_bills(bill_ids)

    def _needs_update(self, existing: Bill, raw: dict, now: datetime) -> bool:
        if existing.last_synced is None:
            return True
        upstream_updated = parse_api_datetime(raw.get("updateDate"))
        if upstream_updated is not None:
            return upstream_updated > ensure_utc(existing.last_synced)
        return existing.last_synced < now - self.stale_after

    async def _sync_if_changed(self, raw: dict, synced_at: datetime) -> Optional[str]:
        bill_id = make_bill_id(raw["congress"], raw["type"], raw["number"])
        existing = await self.store.get_bill(bill_id)
        if existing is not None and not self._needs_update(existing, raw, synced_at):
            return None
        return await self._store_and_enrich(raw, synced_at)

    async def ongoing_synchronization(
        self,
        congress: int = CURRENT_CONGRESS,
        days_back: int = 7,
        limit: int = 50,
    ) -> SyncResult:
        """
        Sync bills updated upstream within the last `days_back` days.

        Only bills that are new to the store or changed since they were
        last synced are upserted and enriched.
        """
        self.client.ensure_configured()
        now = self._clock()
        start = now - timedelta(days=days_back)
        self.logger.info(f"🔄 Checking for bills updated since {start.date()}")

        try:
            raw_bills = await self._list_bills(
                congress, limit,
                fromDateTime=format_api_datetime(start),
                toDateTime=format_api_datetime(now),
            )
        except CongressApiError as e:
            self.logger.error(f"Error in ongoing sync: {e}")
            return SyncResult.failure(f"Error in ongoing sync: {e}")

        if not raw_bills:
            return SyncResult(success=True, count=0, message="No recently updated bills found")

        outcome = await self.run_batches(
            raw_bills, lambda raw: self._sync_if_changed(raw, now), describe=describe_raw_bill
        )
        return SyncResult(
            success=True,
            count=len(outcome.succeeded),
            message=f"Updated {len(outcome.succeeded)} of {len(raw_bills)} recently changed bills",
            errors=outcome.errors,
        )

    # ========================================================================
    # Monitoring
    # ========================================================================

    async def get_bills_needing_updates(self, limit: int = 50) -> List[str]:
        try:
            return await self.store.find_stale_bills(limit, now=self._clock(), max_age=self.stale_after)
        except Exception as e:
            self.logger.error(f"Error getting bills needing updates: {e}")
            return []

    async def get_sync_stats(self) -> SyncStats:
        try:
            return await self.store.sync_stats(now=self._clock(), max_age=self.stale_after)
        except Exception as e:
            self.logger.error(f"Error getting sync stats: {e}")
            return SyncStats()

    async def run_periodic(
        self,
        interval_minutes: float = 60,
        limit: int = 20,
        iterations: Optional[int] = None,
    ) -> None:
        """
        Resync stale bills every `interval_minutes`.

        Runs forever unless `iterations` is given.
        """
        self.logger.info(f"⏰ Scheduling resync every {interval_minutes} minutes")
        completed = 0
        while iterations is None or completed < iterations:
            result = await self.resync_stale_bills(limit)
            self.logger.info(f"Scheduled sync: {result.message}")
            completed += 1
            if iterations is None or completed < iterations:
                await self._sleep(interval_minutes * 60)

    def clear_cache(self) -> None:
        self.client.clear_cache()
