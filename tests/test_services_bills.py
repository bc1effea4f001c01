"""Tests for BillService read paths."""
import asyncio
from datetime import timedelta

import pytest

from legistrack.cache import TTLCache
from legistrack.ingestion.bill_sync import BillSyncer
from legistrack.ingestion.transform import transform_congress_bill
from legistrack.models import BillQuery, BillSubject, Sponsor, SubjectType, TagSuggestion
from legistrack.services.bills import BillService, build_bill_filters, build_sort
from tests.fakes import FakeClock, FakeCongressApi, make_client, raw_bill

SUBJECTS = [
    BillSubject(subject_id="policy-health", name="Health", type=SubjectType.POLICY),
    BillSubject(subject_id="legislative-health-care-costs", name="Health care costs", type=SubjectType.LEGISLATIVE),
    BillSubject(subject_id="policy-taxation", name="Taxation", type=SubjectType.POLICY),
    BillSubject(subject_id="policy-energy", name="Energy", type=SubjectType.POLICY),
]


def _bill(number, bill_type="HR", hours_ago=0, **fields):
    clock = FakeClock()
    raw = raw_bill(118, bill_type, number, introducedDate=f"2023-01-{number:02d}")
    return transform_congress_bill(raw, clock.now - timedelta(hours=hours_ago)).model_copy(update=fields)


@pytest.fixture
def catalog(store):
    """
    HR-1: Health 90, Taxation 60
    HR-2: Taxation 95
    HR-3: Health care costs 75
    HR-4: Energy 80
    """
    async def seed():
        await store.upsert_subjects(SUBJECTS)
        await store.upsert_bill(_bill(1, policy_area="Health", hours_ago=4))
        await store.upsert_bill(_bill(2, policy_area="Taxation", hours_ago=3,
                                      sponsors=[Sponsor(full_name="Rep. Utah", party="R", state="UT")]))
        await store.upsert_bill(_bill(3, subjects=["Medicare"], hours_ago=2))
        await store.upsert_bill(_bill(4, "S", hours_ago=1, policy_area="Energy"))
        await store.upsert_tags("118-HR-1", [TagSuggestion(subject_id="policy-health", confidence_score=90),
                                             TagSuggestion(subject_id="policy-taxation", confidence_score=60)])
        await store.upsert_tags("118-HR-2", [TagSuggestion(subject_id="policy-taxation", confidence_score=95)])
        await store.upsert_tags("118-HR-3", [TagSuggestion(subject_id="legislative-health-care-costs",
                                                           confidence_score=75)])
        await store.upsert_tags("118-S-4", [TagSuggestion(subject_id="policy-energy", confidence_score=80)])

    asyncio.run(seed())
    return store


# ============================================================================
# Interest matching
# ============================================================================

def test_any_interest_ranks_by_best_confidence(catalog):
    service = BillService(catalog)

    matched = asyncio.run(service.match_bills_by_interests(["health", "energy"], min_confidence=70))

    assert matched == ["118-HR-1", "118-S-4", "118-HR-3"]


def test_all_interests_requires_each_interest_to_match(catalog):
    service = BillService(catalog)

    both = asyncio.run(service.match_bills_by_interests(
        ["health", "taxation"], min_confidence=50, require_all=True
    ))
    strict = asyncio.run(service.match_bills_by_interests(
        ["health", "taxation"], min_confidence=70, require_all=True
    ))

    assert both == ["118-HR-1"]
    assert strict == []


def test_all_interests_with_unknown_interest_matches_nothing(catalog):
    service = BillService(catalog)

    assert asyncio.run(service.match_bills_by_interests(["health", "space"], require_all=True)) == []
    assert asyncio.run(service.match_bills_by_interests(["  "])) == []


# ============================================================================
# Listing
# ============================================================================

def test_filters_translate_to_mongo():
    filters = build_bill_filters(BillQuery(
        congress=118, bill_type="hr", status="pass", sponsor_state="ut",
        subjects=["policy-Health", "Medicare"], introduced_after="2023-01-01", query="clean water",
    ))

    assert filters["bill_type"] == "HR"
    assert filters["status"] == {"$regex": "pass", "$options": "i"}
    assert filters["sponsors.state"] == "UT"
    assert filters["policy_area"] == {"$in": ["Health"]}
    assert filters["subjects"] == {"$in": ["Medicare"]}
    assert filters["introduced_date"] == {"$gte": "2023-01-01"}
    assert filters["$text"] == {"$search": "clean water"}


def test_get_bills_pages_and_attaches_tags(catalog):
    service = BillService(catalog)

    page = asyncio.run(service.get_bills(BillQuery(bill_type="HR", sort_order="asc", limit=2, page=1)))

    assert page.total == 3
    assert page.has_more is True
    assert [b.bill_id for b in page.data] == ["118-HR-1", "118-HR-2"]
    assert [t.subject_id for t in page.data[0].tags] == ["policy-health", "policy-taxation"]

    second = asyncio.run(service.get_bills(BillQuery(bill_type="HR", sort_order="asc", limit=2, page=2)))
    assert [b.bill_id for b in second.data] == ["118-HR-3"]
    assert second.has_more is False


def test_get_bills_by_interest_and_sponsor(catalog):
    service = BillService(catalog)

    by_interest = asyncio.run(service.get_bills(BillQuery(policy_interests=["taxation"], min_confidence=70)))
    by_sponsor = asyncio.run(service.get_bills(BillQuery(sponsor_party="r")))

    assert [b.bill_id for b in by_interest.data] == ["118-HR-2"]
    assert [b.bill_id for b in by_sponsor.data] == ["118-HR-2"]


def test_get_bills_sorted_by_confidence(catalog):
    service = BillService(catalog)

    page = asyncio.run(service.get_bills(BillQuery(sort_by="confidence")))

    assert [b.bill_id for b in page.data] == ["118-HR-2", "118-HR-1", "118-S-4", "118-HR-3"]


def test_query_results_are_cached_until_cleared(catalog):
    clock = FakeClock()
    service = BillService(catalog, cache=TTLCache(300, clock=clock.monotonic))
    query = BillQuery(bill_type="S")

    first = asyncio.run(service.get_bills(query))
    asyncio.run(catalog.upsert_bill(_bill(5, "S")))
    cached = asyncio.run(service.get_bills(query))
    service.clear_cache()
    fresh = asyncio.run(service.get_bills(query))

    assert first.total == cached.total == 1
    assert fresh.total == 2


def test_limit_is_capped_at_fifty():
    assert BillQuery(limit=500).limit == 50


def test_bills_by_subject_and_trending(catalog):
    service = BillService(catalog)

    by_subject = asyncio.run(service.get_bills_by_subject("policy-taxation", min_confidence=50))
    trending = asyncio.run(service.get_trending_bills(limit=2))

    assert {b.bill_id for b in by_subject} == {"118-HR-1", "118-HR-2"}
    assert [b.bill_id for b in trending] == ["118-S-4", "118-HR-3"]


# ============================================================================
# Lookup and search
# ============================================================================

def _service_with_api(store, routes):
    api = FakeCongressApi(routes)
    client = make_client(api)
    syncer = BillSyncer(client, store)
    return BillService(store, client=client, syncer=syncer), api


def test_get_bill_fetches_on_miss_and_enriches_in_background(store):
    routes = {
        "/bill/118/hr/9": {"bill": raw_bill(118, "HR", 9)},
        "/bill/118/hr/9/subjects": {"subjects": {"legislativeSubjects": [{"name": "Medicare"}],
                                                 "policyArea": {"name": "Health"}}},
    }
    service, _ = _service_with_api(store, routes)

    async def scenario():
        bill = await service.get_bill("118-HR-9")
        await service.wait_for_background()
        return bill

    bill = asyncio.run(scenario())

    assert bill.bill_id == "118-HR-9"
    stored = asyncio.run(store.get_bill("118-HR-9"))
    assert stored.policy_area == "Health"
    assert stored.subjects == ["Medicare"]


def test_ensure_bill_returns_none_when_upstream_fails(store):
    service, _ = _service_with_api(store, {"/bill/118/hr/9": (500, {"error": "down"})})

    assert asyncio.run(service.ensure_bill_in_database("118-HR-9")) is None


def test_search_prefers_database_with_enough_hits(store):
    async def seed():
        for number in range(1, 12):
            await store.upsert_bill(_bill(number, title=f"Clean Water Act {number}"))

    asyncio.run(seed())
    service, api = _service_with_api(store, {})

    result = asyncio.run(service.search_bills("water", limit=20))

    assert result.from_api is False
    assert result.total == 11
    assert api.requests == []


def test_search_uses_api_and_caches_results(catalog):
    routes = {"/bill/118": {"bills": [raw_bill(118, "HR", 1, title="Changed"), raw_bill(118, "HR", 50)],
                            "pagination": {"count": 2}}}
    service, api = _service_with_api(catalog, routes)

    async def scenario():
        result = await service.search_bills("water", congress=118)
        await service.wait_for_background()
        return result

    result = asyncio.run(scenario())

    assert result.from_api is True
    assert [b.bill_id for b in result.bills] == ["118-HR-1", "118-HR-50"]
    assert asyncio.run(catalog.get_bill("118-HR-50")) is not None
    assert asyncio.run(catalog.get_bill("118-HR-1")).title == "Test Act 1"


def test_search_falls_back_to_database_on_api_error(catalog):
    service, _ = _service_with_api(catalog, {"/bill/118": (429, {"error": "slow down"})})

    result = asyncio.run(service.search_bills("Test", congress=118))

    assert result.from_api is False
    assert result.total == 4


def test_lookup_by_lowercase_id_hits_stored_row(store):
    service, api = _service_with_api(store, {"/bill/118/hr/9": {"bill": raw_bill(118, "HR", 9)}})

    async def scenario():
        first = await service.ensure_bill_in_database("118-hr-9")
        second = await service.ensure_bill_in_database("118-Hr-9")
        await service.wait_for_background()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.bill_id == second.bill_id == "118-HR-9"
    assert api.paths().count("/bill/118/hr/9") == 1


def test_relevance_sort_ranks_by_text_score(store):
    async def seed():
        await store.upsert_bill(_bill(1, title="Water Act"))
        await store.upsert_bill(_bill(2, title="Water Rights and Water Storage Water Act"))
        await store.upsert_bill(_bill(3, title="Clean Water and Safe Water Act"))
        await store.upsert_bill(_bill(4, title="Energy Act"))

    asyncio.run(seed())
    service = BillService(store)

    ranked = asyncio.run(service.get_bills(BillQuery(query="water", sort_by="relevance")))
    by_date = asyncio.run(service.get_bills(BillQuery(query="water", sort_by="introduced_date")))

    assert [b.bill_id for b in ranked.data] == ["118-HR-2", "118-HR-3", "118-HR-1"]
    assert [b.bill_id for b in by_date.data] == ["118-HR-3", "118-HR-2", "118-HR-1"]


def test_relevance_without_search_term_sorts_by_introduced_date():
    assert build_sort(BillQuery(query="water", sort_by="relevance"))[0] == ("score", {"$meta": "textScore"})
    assert build_sort(BillQuery(sort_by="relevance"))[0] == ("introduced_date", -1)


# ============================================================================
# Similar bills
# ============================================================================

def test_similar_bills_share_policy_area_and_subject(store):
    async def seed():
        await store.upsert_bill(_bill(1, policy_area="Health", subjects=["Medicare", "Hospital care"]))
        await store.upsert_bill(_bill(2, policy_area="Health", subjects=["Medicare"], hours_ago=1))
        await store.upsert_bill(_bill(3, policy_area="Health", subjects=["Hospital care"], hours_ago=3))
        await store.upsert_bill(_bill(4, policy_area="Health", subjects=["Drug pricing"]))
        await store.upsert_bill(_bill(5, policy_area="Taxation", subjects=["Medicare"]))
        await store.upsert_bill(_bill(6))
        await store.upsert_tags("118-HR-2", [TagSuggestion(subject_id="policy-health", confidence_score=88)])

    asyncio.run(seed())
    service = BillService(store)

    similar = asyncio.run(service.get_similar_bills("118-hr-1"))
    top = asyncio.run(service.get_similar_bills("118-HR-1", limit=1))

    assert [b.bill_id for b in similar] == ["118-HR-2", "118-HR-3"]
    assert [t.subject_id for t in similar[0].tags] == ["policy-health"]
    assert [b.bill_id for b in top] == ["118-HR-2"]
    assert asyncio.run(service.get_similar_bills("118-HR-6")) == []
    assert asyncio.run(service.get_similar_bills("118-HR-404")) == []
