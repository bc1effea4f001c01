"""Tests for BillStore over the in-memory database."""
import asyncio
from datetime import timedelta

import pytest

from legistrack.database.indexes import create_indexes, list_indexes
from legistrack.errors import StoreWriteError
from legistrack.ingestion.transform import transform_congress_bill
from legistrack.models import BillSubject, SubjectType, TagSource, TagSuggestion, TrackedBill
from tests.fakes import FakeClock, raw_bill


def _bill(number=1, synced_at=None, **fields):
    bill = transform_congress_bill(raw_bill(number=number), synced_at or FakeClock().now)
    return bill.model_copy(update=fields)


def test_stale_query_selects_never_synced_bill(store, db):
    now = FakeClock().now

    async def scenario():
        await store.upsert_bill(_bill(1, summary="s", full_text_url="u", policy_area="Health"))
        db["bills"].documents[0]["last_synced"] = None
        return await store.find_stale_bills(limit=10, now=now)

    assert asyncio.run(scenario()) == ["118-HR-1"]


def test_stale_query_selects_fresh_bill_missing_summary(store):
    now = FakeClock().now

    async def scenario():
        await store.upsert_bill(_bill(1, synced_at=now, full_text_url="u", policy_area="Health"))
        await store.upsert_bill(_bill(2, synced_at=now, summary="s", full_text_url="u", policy_area="Health"))
        return await store.find_stale_bills(limit=10, now=now)

    assert asyncio.run(scenario()) == ["118-HR-1"]


def test_stale_query_selects_old_complete_bills_oldest_first(store):
    now = FakeClock().now
    complete = dict(summary="s", full_text_url="u", policy_area="Health")

    async def scenario():
        await store.upsert_bill(_bill(1, synced_at=now - timedelta(hours=30), **complete))
        await store.upsert_bill(_bill(2, synced_at=now - timedelta(hours=48), **complete))
        await store.upsert_bill(_bill(3, synced_at=now - timedelta(hours=1), **complete))
        return await store.find_stale_bills(limit=10, now=now)

    assert asyncio.run(scenario()) == ["118-HR-2", "118-HR-1"]


def test_bulk_resync_keeps_enriched_fields(store):
    async def scenario():
        await store.upsert_bill(_bill(1))
        await store.update_bill_fields("118-HR-1", {"summary": "Enriched", "subjects": ["Medicare"]})
        await store.upsert_bill(_bill(1))
        return await store.get_bill("118-HR-1")

    bill = asyncio.run(scenario())
    assert bill.summary == "Enriched"
    assert bill.subjects == ["Medicare"]


def test_upsert_reports_insert_then_update_and_keeps_created_at(store, db):
    clock = FakeClock()

    async def scenario():
        inserted = await store.upsert_bill(_bill(1, synced_at=clock.now))
        clock.advance(3600)
        updated = await store.upsert_bill(_bill(1, synced_at=clock.now))
        return inserted, updated

    assert asyncio.run(scenario()) == (True, False)
    document = db["bills"].documents[0]
    assert document["created_at"] == clock.now - timedelta(hours=1)
    assert document["last_synced"] == clock.now


def test_insert_if_missing_never_overwrites(store):
    async def scenario():
        await store.upsert_bill(_bill(1, summary="Stored"))
        inserted = await store.insert_bills_if_missing([_bill(1, title="Other"), _bill(2)])
        return inserted, await store.get_bill("118-HR-1")

    inserted, bill = asyncio.run(scenario())
    assert inserted == 1
    assert bill.summary == "Stored"
    assert bill.title == "Test Act 1"


def test_write_failures_surface_as_store_write_error(store, db):
    db["bills"].fail_writes = True
    with pytest.raises(StoreWriteError):
        asyncio.run(store.upsert_bill(_bill(1)))


def test_tags_are_unique_per_bill_and_subject(store, db):
    async def scenario():
        await store.upsert_subjects([
            BillSubject(subject_id="policy-health", name="Health", type=SubjectType.POLICY),
        ])
        await store.upsert_tags("118-HR-1", [TagSuggestion(subject_id="policy-health", confidence_score=70)])
        await store.upsert_tags(
            "118-HR-1", [TagSuggestion(subject_id="policy-health", confidence_score=95)], TagSource.MANUAL
        )
        return await store.get_tags("118-HR-1")

    tags = asyncio.run(scenario())
    assert len(tags) == 1
    assert tags[0].tag_id == "118-HR-1::policy-health"
    assert tags[0].confidence_score == 95
    assert tags[0].source == TagSource.MANUAL
    assert tags[0].name == "Health"
    assert len(db["bill_tags"].documents) == 1


def test_subject_lookup_is_case_insensitive_substring(store):
    async def scenario():
        await store.upsert_subjects([
            BillSubject(subject_id="policy-health", name="Health", type=SubjectType.POLICY),
            BillSubject(subject_id="legislative-health-care-costs", name="Health care costs",
                        type=SubjectType.LEGISLATIVE),
            BillSubject(subject_id="policy-taxation", name="Taxation", type=SubjectType.POLICY),
        ])
        return await store.find_subjects_by_names(["HEALTH"])

    found = asyncio.run(scenario())
    assert sorted(s.subject_id for s in found) == ["legislative-health-care-costs", "policy-health"]


def test_tracking_upsert_keeps_tracked_at_and_views(store):
    clock = FakeClock()

    async def scenario():
        first = TrackedBill(user_id="u1", bill_id="118-HR-1", tracked_at=clock.now)
        await store.upsert_tracking(first)
        await store.increment_view("u1", "118-HR-1", now=clock.now)
        clock.advance(60)
        again = TrackedBill(user_id="u1", bill_id="118-HR-1", user_notes="watch", tracked_at=clock.now)
        inserted = await store.upsert_tracking(again)
        return inserted, await store.get_tracking("u1", "118-HR-1")

    inserted, tracked = asyncio.run(scenario())
    assert inserted is False
    assert tracked.view_count == 2
    assert tracked.user_notes == "watch"
    assert tracked.tracked_at == clock.now - timedelta(seconds=60)


def test_sync_stats(store):
    now = FakeClock().now

    async def scenario():
        await store.upsert_bill(_bill(1, synced_at=now, summary="s", full_text_url="u", policy_area="Health"))
        await store.upsert_bill(_bill(2, synced_at=now - timedelta(days=3)))
        return await store.sync_stats(now=now)

    stats = asyncio.run(scenario())
    assert stats.total_bills == 2
    assert stats.recently_synced == 1
    assert stats.needs_update == 1
    assert stats.last_sync_time == now


def test_create_indexes(db):
    async def scenario():
        await create_indexes(db)
        return await list_indexes(db)

    indexes = asyncio.run(scenario())
    assert "idx_bill_id" in indexes["bills"]
    assert "idx_unique_bill_subject" in indexes["bill_tags"]
    assert "idx_unique_user_bill" in indexes["user_tracked_bills"]
