"""
Bill query service.

Read paths over the store: filtered/paginated listing, interest matching,
lookup with fetch-on-miss, search with API fallback, subject, trending and
similar-bill lists. Query results are cached for five minutes.
"""
import asyncio
import logging
import re
from typing import Dict, List, Optional, Sequence, Set

from pymongo import ASCENDING, DESCENDING

from legistrack.agents.tagging import TagGenerator
from legistrack.cache import TTLCache, make_cache_key
from legistrack.config.constants import CURRENT_CONGRESS, QUERY_CACHE_TTL
from legistrack.database.normalization import normalize_bill_type
from legistrack.database.store import BillStore
from legistrack.errors import CongressApiError, ConfigurationError, StoreWriteError
from legistrack.ingestion.bill_sync import BillSyncer
from legistrack.ingestion.congress_gov import CongressGovClient
from legistrack.ingestion.transform import as_list, canonical_bill_id, transform_congress_bill
from legistrack.models import Bill, BillPage, BillQuery, SearchResult, TaggedBill
from legistrack.timeutils import utcnow

logger = logging.getLogger(__name__)

POLICY_PREFIX = "policy-"
DATABASE_HIT_THRESHOLD = 10
TEXT_SCORE = {"$meta": "textScore"}


def build_bill_filters(query: BillQuery) -> dict:
    """Translate a BillQuery into a Mongo filter (interest matching excluded)."""
    filters: dict = {}

    if query.congress:
        filters["congress"] = query.congress
    if query.bill_type:
        filters["bill_type"] = normalize_bill_type(query.bill_type)
    if query.status:
        filters["status"] = {"$regex": re.escape(query.status), "$options": "i"}
    if query.sponsor_state:
        filters["sponsors.state"] = query.sponsor_state.upper()
    if query.sponsor_party:
        filters["sponsors.party"] = query.sponsor_party.upper()

    if query.subjects:
        policy_areas = [s[len(POLICY_PREFIX):] for s in query.subjects if s.startswith(POLICY_PREFIX)]
        legislative = [s for s in query.subjects if not s.startswith(POLICY_PREFIX)]
        if policy_areas:
            filters["policy_area"] = {"$in": policy_areas}
        if legislative:
            filters["subjects"] = {"$in": legislative}

    date_range = {}
    if query.introduced_after:
        date_range["$gte"] = query.introduced_after
    if query.introduced_before:
        date_range["$lte"] = query.introduced_before
    if date_range:
        filters["introduced_date"] = date_range

    if query.query:
        filters["$text"] = {"$search": query.query}

    return filters


def build_sort(query: BillQuery) -> List[tuple]:
    """
    Mongo sort for a query; bill_id breaks ties so pages are stable.

    Relevance ranks by text score when there is a search term and falls
    back to introduced_date when there is none.
    """
    if query.sort_by == "relevance" and query.query:
        return [("score", TEXT_SCORE), ("bill_id", ASCENDING)]
    direction = ASCENDING if query.sort_order == "asc" else DESCENDING
    if query.sort_by in ("relevance", "introduced_date"):
        return [("introduced_date", direction), ("bill_id", ASCENDING)]
    return [("updated_at", direction), ("bill_id", ASCENDING)]


class BillService:
    """
    Bill reads for the application layer.

    Usage:
        service = BillService(store, client=client, syncer=syncer, tagger=tagger)
        page = await service.get_bills(BillQuery(congress=118, policy_interests=["health"]))
    """

    def __init__(
        self,
        store: BillStore,
        client: Optional[CongressGovClient] = None,
        syncer: Optional[BillSyncer] = None,
        tagger: Optional[TagGenerator] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.store = store
        self.client = client
        self.syncer = syncer
        self.tagger = tagger
        self.cache = cache or TTLCache(QUERY_CACHE_TTL, name="bill-queries")
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Wait for enrichment/tagging started by lookups to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def _with_tags(self, bills: Sequence[Bill]) -> List[TaggedBill]:
        tags = await self.store.get_tags_for_bills([b.bill_id for b in bills])
        return [
            TaggedBill(**bill.model_dump(), tags=tags.get(bill.bill_id, []))
            for bill in bills
        ]

    # ------------------------------------------------------------------
    # Interest matching
    # ------------------------------------------------------------------

    async def match_bills_by_interests(
        self,
        interests: Sequence[str],
        min_confidence: int = 70,
        require_all: bool = False,
        limit: Optional[int] = 20,
    ) -> List[str]:
        """
        Bill ids whose tags match the given interests.

        Each interest matches every subject whose name contains it
        (case-insensitive). With require_all=False a bill matches when any
        interest matches; with require_all=True every interest must match
        at least one of the bill's tags. Bills are ranked by their highest
        matching tag confidence.
        """
        interests = [i.strip() for i in interests if i and i.strip()]
        if not interests:
            return []

        subjects = await self.store.find_subjects_by_names(interests)
        interest_subjects: Dict[str, Set[str]] = {
            interest: {s.subject_id for s in subjects if interest.lower() in s.name.lower()}
            for interest in interests
        }
        all_subject_ids = set().union(*interest_subjects.values())
        if not all_subject_ids:
            return []
        if require_all and not all(interest_subjects.values()):
            return []

        tags = await self.store.find_tags(sorted(all_subject_ids), min_confidence)

        bill_subjects: Dict[str, Set[str]] = {}
        best_score: Dict[str, int] = {}
        for tag in tags:
            bill_subjects.setdefault(tag.bill_id, set()).add(tag.subject_id)
            best_score[tag.bill_id] = max(best_score.get(tag.bill_id, 0), tag.confidence_score)

        check = all if require_all else any
        matched = [
            bill_id for bill_id, tagged in bill_subjects.items()
            if check(tagged & wanted for wanted in interest_subjects.values())
        ]
        matched.sort(key=lambda bill_id: (-best_score[bill_id], bill_id))
        return matched[:limit] if limit else matched

    async def get_bills_by_user_interests(
        self,
        interests: Sequence[str],
        min_confidence: int = 70,
        require_all: bool = False,
        limit: int = 20,
    ) -> List[TaggedBill]:
        bill_ids = await self.match_bills_by_interests(interests, min_confidence, require_all, limit)
        bills = {b.bill_id: b for b in await self.store.get_bills(bill_ids)}
        return await self._with_tags([bills[i] for i in bill_ids if i in bills])

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def get_bills(self, query: Optional[BillQuery] = None) -> BillPage:
        """
        Filtered, sorted, paginated bills with their tags.

        Cached per query for five minutes.
        """
        query = query or BillQuery()
        key = make_cache_key("bills", query.model_dump(mode="json"))
        return await self.cache.get_or_fetch(key, lambda: self._query_bills(query))

    async def _query_bills(self, query: BillQuery) -> BillPage:
        filters = build_bill_filters(query)
        skip = (query.page - 1) * query.limit

        if query.policy_interests:
            matched = await self.match_bills_by_interests(
                query.policy_interests, query.min_confidence, query.require_all_interests, limit=None
            )
            if not matched:
                return BillPage(data=[], total=0, page=query.page, limit=query.limit)
            filters["bill_id"] = {"$in": matched}

        total = await self.store.count_bills(filters)

        if query.sort_by == "confidence":
            # Order by best tag confidence; needs every candidate in memory
            candidates = await self.store.find_bills(filters)
            tagged = await self._with_tags(candidates)
            reverse = query.sort_order != "asc"
            tagged.sort(
                key=lambda b: max((t.confidence_score for t in b.tags), default=0),
                reverse=reverse,
            )
            data = tagged[skip:skip + query.limit]
        else:
            bills = await self.store.find_bills(filters, sort=build_sort(query), skip=skip, limit=query.limit)
            data = await self._with_tags(bills)

        return BillPage(
            data=data,
            total=total,
            page=query.page,
            limit=query.limit,
            has_more=skip + len(data) < total,
        )

    async def get_bills_by_subject(self, subject_id: str, min_confidence: int = 70, limit: int = 20) -> List[TaggedBill]:
        tags = await self.store.find_tags([subject_id], min_confidence)
        bill_ids = [tag.bill_id for tag in tags[:limit]]
        bills = await self.store.get_bills(bill_ids)
        bills.sort(key=lambda b: b.updated_at, reverse=True)
        return await self._with_tags(bills)

    async def get_trending_bills(self, limit: int = 10) -> List[TaggedBill]:
        """Most recently updated bills."""
        bills = await self.store.find_bills({}, sort=[("updated_at", DESCENDING)], limit=limit)
        return await self._with_tags(bills)

    async def get_similar_bills(self, bill_id: str, limit: int = 5) -> List[TaggedBill]:
        """
        Recently updated bills in the same policy area sharing a subject.

        A bill with neither a policy area nor subjects has nothing to
        compare on, so it gets no suggestions.

        Raises:
            InvalidBillIdError: malformed id
        """
        bill_id = canonical_bill_id(bill_id)
        bill = await self.store.get_bill(bill_id)
        if bill is None or not (bill.policy_area or bill.subjects):
            return []

        filters: dict = {"bill_id": {"$ne": bill_id}}
        if bill.policy_area:
            filters["policy_area"] = bill.policy_area
        if bill.subjects:
            filters["subjects"] = {"$in": bill.subjects}

        similar = await self.store.find_bills(
            filters, sort=[("updated_at", DESCENDING), ("bill_id", ASCENDING)], limit=limit
        )
        logger.info(f"🔍 Found {len(similar)} bills similar to {bill_id}")
        return await self._with_tags(similar)

    # ------------------------------------------------------------------
    # Single bill
    # ------------------------------------------------------------------

    async def _enrich_in_background(self, bill: Bill) -> None:
        try:
            if self.syncer is not None:
                await self.syncer.enrich_subjects(bill.bill_id)
            if self.tagger is not None:
                stored = await self.store.get_bill(bill.bill_id) or bill
                await self.tagger.tag_bill(stored)
        except Exception as e:
            logger.warning(f"Background enrichment failed for {bill.bill_id}: {e}")

    async def ensure_bill_in_database(self, bill_id: str) -> Optional[Bill]:
        """
        Return the stored bill, fetching and storing it on a miss.

        On a miss, subjects and tags are filled in in the background.

        Returns:
            The bill, or None if it could not be fetched or stored

        Raises:
            InvalidBillIdError: malformed id
        """
        bill_id = canonical_bill_id(bill_id)
        existing = await self.store.get_bill(bill_id)
        if existing is not None:
            return existing

        if self.syncer is None:
            logger.warning(f"Bill {bill_id} not stored and no syncer configured")
            return None

        try:
            bill = await self.syncer.fetch_and_store(bill_id)
        except (ConfigurationError, CongressApiError, StoreWriteError) as e:
            logger.error(f"Error ensuring bill {bill_id} is in database: {e}")
            return None

        logger.info(f"✅ Stored bill {bill_id} on lookup")
        self._spawn(self._enrich_in_background(bill))
        return bill

    async def get_bill(self, bill_id: str) -> Optional[TaggedBill]:
        """Bill with tags, from cache, the store, or Congress.gov."""
        bill_id = canonical_bill_id(bill_id)
        key = make_cache_key("bill", {"bill_id": bill_id})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        bill = await self.ensure_bill_in_database(bill_id)
        if bill is None:
            return None
        tagged = (await self._with_tags([bill]))[0]
        self.cache.set(key, tagged)
        return tagged

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _search_database(self, query: str, congress: Optional[int], bill_type: Optional[str],
                               subjects: Sequence[str], limit: int, offset: int) -> SearchResult:
        bill_query = BillQuery(
            query=query,
            congress=congress,
            bill_type=bill_type,
            subjects=list(subjects),
            sort_by="relevance",
            limit=limit,
            page=offset // max(limit, 1) + 1,
        )
        filters = build_bill_filters(bill_query)
        total = await self.store.count_bills(filters)
        bills = await self.store.find_bills(filters, sort=build_sort(bill_query), skip=offset, limit=limit)
        return SearchResult(bills=bills, total=total, from_api=False)

    async def _cache_search_results(self, bills: List[Bill]) -> None:
        try:
            inserted = await self.store.insert_bills_if_missing(bills)
            logger.info(f"Cached {inserted} new bills from search results")
        except StoreWriteError as e:
            logger.warning(f"Could not cache search results: {e}")

    async def search_bills(
        self,
        query: str,
        congress: Optional[int] = None,
        bill_type: Optional[str] = None,
        subjects: Sequence[str] = (),
        limit: int = 20,
        offset: int = 0,
    ) -> SearchResult:
        """
        Search bills, preferring the database.

        The database answers when it has at least ten hits and no congress
        filter is given; otherwise Congress.gov is searched and the results
        are cached into the store. An API failure falls back to the database.
        """
        local = await self._search_database(query, congress, bill_type, subjects, limit, offset)
        if (len(local.bills) >= DATABASE_HIT_THRESHOLD and not congress) or self.client is None:
            return local

        try:
            key = make_cache_key("search", {"q": query, "congress": congress, "type": bill_type,
                                            "limit": limit, "offset": offset})
            response = await self.cache.get_or_fetch(key, lambda: self.client.search_bills(
                query, congress=congress or CURRENT_CONGRESS, bill_type=bill_type, limit=limit, offset=offset
            ))
        except (ConfigurationError, CongressApiError) as e:
            logger.warning(f"API search failed, using database results: {e}")
            return local

        now = utcnow()
        bills = []
        for raw in as_list(response.get("bills")):
            try:
                bills.append(transform_congress_bill(raw, now))
            except CongressApiError as e:
                logger.warning(f"Skipping malformed search result: {e}")

        if bills:
            self._spawn(self._cache_search_results(bills))

        pagination = response.get("pagination") or {}
        return SearchResult(bills=bills, total=int(pagination.get("count") or len(bills)), from_api=True)

    def clear_cache(self) -> None:
        self.cache.invalidate()
