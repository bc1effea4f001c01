"""
Full-text retrieval for bills.

Locates a bill's published text through the /text endpoint and tries to
obtain its content. Where this runtime may not fetch government document
hosts directly, content comes from (a) what the store already has, then
(b) an AI-written summary, and otherwise only the URL is recorded.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from legistrack.config import settings
from legistrack.config.constants import (
    FULL_TEXT_BATCH_DELAY,
    FULL_TEXT_BATCH_SIZE,
    FULL_TEXT_TIMEOUT,
    PREFERRED_TEXT_FORMAT,
    RESTRICTED_TEXT_HOSTS,
    TEXTUAL_CONTENT_TYPES,
    USER_AGENT,
)
from legistrack.agents.summarizer import BillTextSummarizer
from legistrack.database.store import BillStore
from legistrack.errors import FullTextUnavailableError, UpstreamTimeoutError, UpstreamUnreachableError
from legistrack.ingestion.base import BatchPipeline
from legistrack.ingestion.congress_gov import CongressGovClient
from legistrack.ingestion.transform import (
    extract_text_formats,
    extract_text_versions,
    parse_bill_id,
    select_text_url,
)
from legistrack.models import SyncResult

logger = logging.getLogger(__name__)

SOURCE_DIRECT = "direct"
SOURCE_STORE = "store"
SOURCE_AI_SUMMARY = "ai_summary"
SOURCE_URL_ONLY = "url_only"


@dataclass
class FullTextResult:
    url: str
    content: Optional[str]
    source: str


def is_restricted_host(url: str) -> bool:
    """
    Is this a government document host that may refuse cross-origin fetches?

    api.congress.gov is the JSON API and is never restricted.
    """
    host = (urlparse(url).hostname or "").lower()
    if host == "api.congress.gov":
        return False
    return any(host == domain or host.endswith("." + domain) for domain in RESTRICTED_TEXT_HOSTS)


def is_textual_document(url: str, content_type: str) -> bool:
    """PDFs and other binary formats are referenced by URL only, never stored."""
    if urlparse(url).path.lower().endswith(".pdf"):
        return False
    media_type = content_type.split(";")[0].strip().lower()
    if not media_type:
        return True
    return media_type.startswith(TEXTUAL_CONTENT_TYPES) or media_type.endswith("+xml")


class FullTextFetcher(BatchPipeline):
    """
    Resolves and stores bill full text.

    Usage:
        fetcher = FullTextFetcher(client, store, summarizer=build_default_summarizer())
        result = await fetcher.fetch_text("118-HR-1")
    """

    def __init__(
        self,
        client: CongressGovClient,
        store: BillStore,
        summarizer: Optional[BillTextSummarizer] = None,
        allow_cross_origin: Optional[bool] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = FULL_TEXT_TIMEOUT,
        batch_size: int = FULL_TEXT_BATCH_SIZE,
        batch_delay: float = FULL_TEXT_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        super().__init__(batch_size=batch_size, batch_delay=batch_delay, sleep=sleep)
        self.client = client
        self.store = store
        self.summarizer = summarizer
        self.allow_cross_origin = (
            settings.ALLOW_CROSS_ORIGIN_FETCH if allow_cross_origin is None else allow_cross_origin
        )
        self.timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT, "Accept": "application/xml, text/xml, */*"},
            )
        return self._http

    # ------------------------------------------------------------------
    # Locating text
    # ------------------------------------------------------------------

    async def get_text_versions(self, bill_id: str) -> List[dict]:
        congress, bill_type, number = parse_bill_id(bill_id)
        return extract_text_versions(await self.client.get_bill_text(congress, bill_type, number))

    async def get_available_formats(self, bill_id: str) -> List[dict]:
        congress, bill_type, number = parse_bill_id(bill_id)
        return extract_text_formats(await self.client.get_bill_text(congress, bill_type, number))

    async def get_full_text_url(self, bill_id: str, preferred: str = PREFERRED_TEXT_FORMAT) -> Optional[str]:
        """URL of the newest text version: preferred format, then XML, text, PDF, else first."""
        return select_text_url(await self.get_available_formats(bill_id), preferred)

    def can_fetch_directly(self, url: str) -> bool:
        return self.allow_cross_origin or not is_restricted_host(url)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _fetch_direct(self, bill_id: str, url: str) -> Optional[str]:
        logger.info(f"📡 Fetching text content from: {url}")
        try:
            response = await self._get_http().get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"Timed out fetching {url}") from e
        except httpx.TransportError as e:
            raise UpstreamUnreachableError(f"Could not fetch {url}: {e}") from e
        response.raise_for_status()

        if not is_textual_document(url, response.headers.get("content-type", "")):
            logger.info(f"⚠️ Not storing non-text document for bill {bill_id}: {url}")
            return None

        text = response.text
        if not text or not text.strip():
            logger.warning(f"⚠️ Empty content received for bill: {bill_id}")
            return None
        return text

    async def _read_stored(self, bill_id: str, url: str) -> Optional[str]:
        bill = await self.store.get_bill(bill_id)
        return bill.full_text_content if bill else None

    async def _summarize(self, bill_id: str, url: str) -> Optional[str]:
        if self.summarizer is None:
            return None
        bill = await self.store.get_bill(bill_id)
        if bill is None:
            return None
        return await self.summarizer.summarize(bill)

    def _strategies_for(self, url: str) -> List[Tuple[str, Callable[[str, str], Awaitable[Optional[str]]]]]:
        if self.can_fetch_directly(url):
            return [(SOURCE_DIRECT, self._fetch_direct)]
        logger.info(f"⚠️ Skipping direct fetch of restricted host: {url}")
        return [(SOURCE_STORE, self._read_stored), (SOURCE_AI_SUMMARY, self._summarize)]

    async def fetch_text(self, bill_id: str) -> FullTextResult:
        """
        Resolve a bill's full text.

        Returns:
            FullTextResult; content is None when only the URL is known

        Raises:
            FullTextUnavailableError: the bill has no published text version
        """
        url = await self.get_full_text_url(bill_id)
        if not url:
            raise FullTextUnavailableError(f"No text versions available for bill {bill_id}")

        for source, strategy in self._strategies_for(url):
            try:
                content = await strategy(bill_id, url)
            except Exception as e:
                logger.warning(f"Full-text strategy {source} failed for {bill_id}: {e}")
                continue
            if content:
                logger.info(f"✅ Got full text for {bill_id} via {source}")
                return FullTextResult(url=url, content=content, source=source)

        return FullTextResult(url=url, content=None, source=SOURCE_URL_ONLY)

    # ------------------------------------------------------------------
    # Persisting
    # ------------------------------------------------------------------

    async def update_bill_full_text(self, bill_id: str) -> Optional[FullTextResult]:
        """
        Fetch and store a bill's full-text URL and any content found.

        Returns:
            The result, or None when the bill has no text yet
        """
        try:
            result = await self.fetch_text(bill_id)
        except FullTextUnavailableError as e:
            logger.info(str(e))
            return None

        fields = {"full_text_url": result.url}
        if result.content and result.source != SOURCE_STORE:
            fields["full_text_content"] = result.content
            fields["full_text_source"] = result.source
        await self.store.update_bill_fields(bill_id, fields)
        return result

    async def update_missing_full_text(self, limit: int = 20) -> SyncResult:
        """Fill in full text for bills that have none yet."""
        try:
            bill_ids = await self.store.find_bill_ids(
                {"full_text_content": None}, sort=[("updated_at", -1)], limit=limit
            )
        except Exception as e:
            logger.error(f"Error finding bills without full text: {e}")
            return SyncResult.failure(f"Error updating bill full text: {e}")

        if not bill_ids:
            return SyncResult(success=True, count=0, message="No bills need full text")

        self.logger.info(f"🔄 Updating full text for {len(bill_ids)} bills...")
        outcome = await self.run_batches(bill_ids, self.update_bill_full_text)
        return SyncResult(
            success=True,
            count=len(outcome.succeeded),
            message=f"Updated full text for {len(outcome.succeeded)} of {len(bill_ids)} bills",
            errors=outcome.errors,
        )
