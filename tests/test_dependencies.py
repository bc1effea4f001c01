"""Tests for service wiring and the MongoDB health check."""
import asyncio
from unittest.mock import MagicMock, patch

from pymongo.errors import ServerSelectionTimeoutError

from legistrack.database import connection
from legistrack.dependencies import build_services
from tests.fakes import FakeCongressApi, make_client


def test_services_share_one_store_and_client(db):
    client = make_client(FakeCongressApi())

    services = build_services(db=db, client=client)

    assert services.owns_db is False
    assert services.syncer.store is services.store
    assert services.bills.store is services.store
    assert services.tracking.bill_service is services.bills
    assert services.syncer.client is client
    assert services.full_text.client is client
    assert services.syncer.tag_after_sync is False

    asyncio.run(services.aclose())


def test_tag_after_sync_is_wired(db):
    services = build_services(db=db, client=make_client(FakeCongressApi()), tag_after_sync=True)

    assert services.syncer.tag_after_sync is True
    assert services.syncer.tagger is services.tagger

    asyncio.run(services.aclose())


def test_connection_reports_missing_collections():
    fake_db = MagicMock()
    fake_db.list_collection_names.return_value = ["bills", "bill_tags"]

    with patch.object(connection, "get_sync_database", return_value=fake_db):
        result = connection.test_connection()

    fake_db.client.admin.command.assert_called_once_with("ping")
    assert result["success"] is True
    assert result["missing_collections"] == ["bill_subjects", "user_tracked_bills"]


def test_connection_failure_is_reported():
    fake_db = MagicMock()
    fake_db.client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

    with patch.object(connection, "get_sync_database", return_value=fake_db):
        result = connection.test_connection()

    assert result["success"] is False
    assert "no servers" in result["error"]
