"""Tests for full-text retrieval and its fallback chain."""
import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from legistrack.errors import FullTextUnavailableError
from legistrack.ingestion.full_text import (
    SOURCE_AI_SUMMARY,
    SOURCE_DIRECT,
    SOURCE_STORE,
    SOURCE_URL_ONLY,
    FullTextFetcher,
    is_restricted_host,
    is_textual_document,
)
from legistrack.ingestion.transform import transform_congress_bill
from tests.fakes import FakeClock, FakeCongressApi, make_client, raw_bill

XML_URL = "https://www.congress.gov/118/bills/hr1/BILLS-118hr1ih.xml"
TEXT_ROUTES = {
    "/bill/118/hr/1/text": {"textVersions": [
        {"type": "Introduced in House", "formats": [
            {"type": "PDF", "url": "https://www.congress.gov/118/bills/hr1/BILLS-118hr1ih.pdf"},
            {"type": "Formatted XML", "url": XML_URL},
        ]},
    ]},
}


def _documents(body="<bill>Full text</bill>", status=200):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(status, text=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def _seed(store, **fields):
    bill = transform_congress_bill(raw_bill(), FakeClock().now).model_copy(update=fields)
    asyncio.run(store.upsert_bill(bill))


@pytest.mark.parametrize("url, restricted", [
    ("https://www.govinfo.gov/content/pkg/BILLS.xml", True),
    ("https://www.congress.gov/118/bills/hr1.xml", True),
    ("https://gpo.gov/doc.pdf", True),
    ("https://api.congress.gov/v3/bill/118/hr/1/text", False),
    ("https://example.org/bill.xml", False),
])
def test_restricted_hosts(url, restricted):
    assert is_restricted_host(url) is restricted


def test_direct_fetch_when_cross_origin_allowed(store):
    _seed(store)
    http, requests = _documents()
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store,
                              allow_cross_origin=True, http_client=http)

    result = asyncio.run(fetcher.update_bill_full_text("118-HR-1"))

    assert result.source == SOURCE_DIRECT
    assert str(requests[0].url) == XML_URL
    bill = asyncio.run(store.get_bill("118-HR-1"))
    assert bill.full_text_url == XML_URL
    assert bill.full_text_content == "<bill>Full text</bill>"
    assert bill.full_text_source == SOURCE_DIRECT


def test_restricted_host_uses_stored_content_first(store):
    _seed(store, full_text_content="cached text")
    http, requests = _documents()
    summarizer = AsyncMock()
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store, summarizer=summarizer,
                              allow_cross_origin=False, http_client=http)

    result = asyncio.run(fetcher.fetch_text("118-HR-1"))

    assert result.source == SOURCE_STORE
    assert result.content == "cached text"
    assert requests == []
    summarizer.summarize.assert_not_called()


def test_restricted_host_falls_back_to_ai_summary(store):
    _seed(store)
    summarizer = AsyncMock()
    summarizer.summarize.return_value = "This bill does things."
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store, summarizer=summarizer,
                              allow_cross_origin=False)

    result = asyncio.run(fetcher.update_bill_full_text("118-HR-1"))

    assert result.source == SOURCE_AI_SUMMARY
    bill = asyncio.run(store.get_bill("118-HR-1"))
    assert bill.full_text_content == "This bill does things."
    assert bill.full_text_source == SOURCE_AI_SUMMARY


def test_restricted_host_ends_with_url_only(store):
    _seed(store)
    summarizer = AsyncMock()
    summarizer.summarize.side_effect = RuntimeError("model unavailable")
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store, summarizer=summarizer,
                              allow_cross_origin=False)

    result = asyncio.run(fetcher.update_bill_full_text("118-HR-1"))

    assert result.source == SOURCE_URL_ONLY
    assert result.content is None
    bill = asyncio.run(store.get_bill("118-HR-1"))
    assert bill.full_text_url == XML_URL
    assert bill.full_text_content is None


def test_direct_fetch_failure_records_url_only(store):
    _seed(store)
    http, _ = _documents(status=403)
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store,
                              allow_cross_origin=True, http_client=http)

    result = asyncio.run(fetcher.fetch_text("118-HR-1"))

    assert result.source == SOURCE_URL_ONLY
    assert result.url == XML_URL


def test_no_text_versions(store):
    _seed(store)
    api = FakeCongressApi({"/bill/118/hr/1/text": {"textVersions": []}})
    fetcher = FullTextFetcher(make_client(api), store, allow_cross_origin=False)

    with pytest.raises(FullTextUnavailableError):
        asyncio.run(fetcher.fetch_text("118-HR-1"))
    assert asyncio.run(fetcher.update_bill_full_text("118-HR-1")) is None


def test_pdf_only_version_is_referenced_not_stored(store):
    _seed(store)
    pdf_url = "https://www.congress.gov/118/bills/hr1/BILLS-118hr1ih.pdf"
    api = FakeCongressApi({"/bill/118/hr/1/text": {"textVersions": [
        {"type": "Introduced in House", "formats": [{"type": "PDF", "url": pdf_url}]},
    ]}})
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(
        200, content=b"%PDF-1.7\n\xe2\xe3\x00binarystream", headers={"content-type": "application/pdf"}
    )))
    fetcher = FullTextFetcher(make_client(api), store, allow_cross_origin=True, http_client=http)

    result = asyncio.run(fetcher.update_bill_full_text("118-HR-1"))

    assert result.source == SOURCE_URL_ONLY
    assert result.content is None
    bill = asyncio.run(store.get_bill("118-HR-1"))
    assert bill.full_text_url == pdf_url
    assert bill.full_text_content is None


@pytest.mark.parametrize("url, content_type, textual", [
    ("https://example.org/a.xml", "application/xml; charset=utf-8", True),
    ("https://example.org/a.htm", "text/html", True),
    ("https://example.org/a", "application/pdf", False),
    ("https://example.org/a.PDF", "", False),
])
def test_textual_document_detection(url, content_type, textual):
    assert is_textual_document(url, content_type) is textual


def test_update_missing_full_text(store, sleep):
    _seed(store)
    http, _ = _documents()
    fetcher = FullTextFetcher(make_client(FakeCongressApi(TEXT_ROUTES)), store,
                              allow_cross_origin=True, http_client=http, sleep=sleep)

    result = asyncio.run(fetcher.update_missing_full_text(limit=5))

    assert result.success is True
    assert result.count == 1
    assert asyncio.run(fetcher.update_missing_full_text(limit=5)).message == "No bills need full text"
