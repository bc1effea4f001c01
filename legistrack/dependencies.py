"""
Service wiring - builds the object graph shared by the CLI and callers.

Everything hangs off one Motor database and one Congress.gov client.
"""
from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from legistrack.agents.summarizer import build_default_summarizer
from legistrack.agents.tagging import TagGenerator
from legistrack.database.connection import close_async_client, get_async_database
from legistrack.database.store import BillStore
from legistrack.ingestion.bill_sync import BillSyncer
from legistrack.ingestion.congress_gov import CongressGovClient
from legistrack.ingestion.full_text import FullTextFetcher
from legistrack.ingestion.subjects import SubjectImporter
from legistrack.services.bills import BillService
from legistrack.services.tracking import TrackingService


@dataclass
class Services:
    """
    Wired services.

    Attributes:
        db: MongoDB database connection (Motor async)
        store: Bill/subject/tag/tracking persistence
        client: Congress.gov API client
    """
    db: AsyncIOMotorDatabase
    store: BillStore
    client: CongressGovClient
    full_text: FullTextFetcher
    subjects: SubjectImporter
    tagger: TagGenerator
    syncer: BillSyncer
    bills: BillService
    tracking: TrackingService
    owns_db: bool = False

    async def aclose(self) -> None:
        await self.bills.wait_for_background()
        await self.full_text.aclose()
        await self.client.aclose()
        if self.owns_db:
            close_async_client()


def build_services(
    db: Optional[AsyncIOMotorDatabase] = None,
    client: Optional[CongressGovClient] = None,
    tag_after_sync: bool = False,
) -> Services:
    """
    Factory for the service graph.

    Args:
        db: Database to use; defaults to the configured Motor database
        client: Congress.gov client; defaults to one built from settings
        tag_after_sync: Tag each bill as soon as it is synced

    Returns:
        Services
    """
    owns_db = db is None
    db = db if db is not None else get_async_database()
    store = BillStore(db)
    client = client or CongressGovClient()

    full_text = FullTextFetcher(client, store, summarizer=build_default_summarizer())
    subjects = SubjectImporter(client, store)
    tagger = TagGenerator(store, subject_source=subjects.get_all_subjects)
    syncer = BillSyncer(client, store, full_text=full_text, tagger=tagger, tag_after_sync=tag_after_sync)
    bills = BillService(store, client=client, syncer=syncer, tagger=tagger)

    return Services(
        db=db,
        store=store,
        client=client,
        full_text=full_text,
        subjects=subjects,
        tagger=tagger,
        syncer=syncer,
        bills=bills,
        tracking=TrackingService(store, bills),
        owns_db=owns_db,
    )
