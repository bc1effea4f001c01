"""
Congress.gov API client.

Handles fetching bill data from the Congress.gov API. Every request goes
through a TTL cache and then the Request Gate.
API Docs: https://api.congress.gov/
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from legistrack.cache import TTLCache, make_cache_key
from legistrack.config import settings
from legistrack.config.constants import (
    API_TIMEOUT,
    BULK_CACHE_TTL,
    CONGRESS_GOV_BASE_URL,
    DEFAULT_BILL_SORT,
    DETAIL_CACHE_TTL,
    MAX_API_PAGE_SIZE,
    USER_AGENT,
)
from legistrack.database.normalization import normalize_bill_type
from legistrack.errors import (
    CongressApiError,
    ConfigurationError,
    InvalidCredentialError,
    KeyNotActivatedError,
    MalformedResponseError,
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    UpstreamUnreachableError,
)
from legistrack.ingestion.request_gate import RequestGate

logger = logging.getLogger(__name__)

REQUEST_HEADERS = {"User-Agent": USER_AGENT, "Accept": "application/json"}

MISSING_KEY_MESSAGE = (
    "Congress.gov API key not configured. "
    "Set CONGRESS_GOV_API_KEY in your environment or .env file "
    "(sign up at https://api.congress.gov/sign-up/)."
)


def raise_for_congress_status(response: httpx.Response) -> None:
    """
    Classify a non-2xx Congress.gov response into a typed error.

    Raises:
        InvalidCredentialError: 401
        KeyNotActivatedError: 403
        RateLimitedError: 429
        UpstreamUnavailableError: 5xx
        CongressApiError: any other non-2xx status
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    if status == 401:
        raise InvalidCredentialError(
            "Invalid Congress.gov API key. Check CONGRESS_GOV_API_KEY.", status
        )
    if status == 403:
        raise KeyNotActivatedError(
            "Congress.gov API key not activated. Check the activation email from api.data.gov.", status
        )
    if status == 429:
        raise RateLimitedError("Congress.gov rate limit exceeded. Try again later.", status)
    if status >= 500:
        raise UpstreamUnavailableError(f"Congress.gov service unavailable (status {status}).", status)

    raise CongressApiError(f"Congress.gov request failed with status {status}: {response.text[:200]}", status)


class CongressGovClient:
    """
    Async client for the Congress.gov bill endpoints.

    Usage:
        async with CongressGovClient() as client:
            bills = await client.get_bills(congress=118, limit=20)
            detail = await client.get_bill(118, "hr", 1)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = CONGRESS_GOV_BASE_URL,
        gate: Optional[RequestGate] = None,
        cache: Optional[TTLCache] = None,
        detail_cache: Optional[TTLCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = API_TIMEOUT,
    ):
        self.api_key = api_key if api_key is not None else settings.CONGRESS_GOV_API_KEY
        self.base_url = base_url.rstrip("/")
        self.gate = gate or RequestGate()
        self.cache = cache or TTLCache(BULK_CACHE_TTL, name="congress-bulk")
        self.detail_cache = detail_cache or TTLCache(DETAIL_CACHE_TTL, name="congress-detail")
        self.timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None

        if not self.api_key:
            logger.error(MISSING_KEY_MESSAGE)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "CongressGovClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when no API key is available."""
        if not self.api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

    # ------------------------------------------------------------------
    # Core request path
    # ------------------------------------------------------------------

    async def make_request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        cache: Optional[TTLCache] = None,
    ) -> dict:
        """
        Make a cached, gated request to the Congress.gov API.

        Args:
            endpoint: API endpoint (e.g., "/bill/118/hr/1")
            params: Query parameters; None values are dropped
            cache: Cache to use; defaults to the bulk (10 minute) cache

        Returns:
            JSON response as dict
        """
        self.ensure_configured()

        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        cache = cache if cache is not None else self.cache
        key = make_cache_key(endpoint, clean_params)

        return await cache.get_or_fetch(
            key,
            lambda: self.gate.submit(lambda: self._send(endpoint, clean_params)),
        )

    async def _send(self, endpoint: str, params: dict) -> dict:
        url = f"{self.base_url}{endpoint}"

        # Always include API key and format
        request_params = {"api_key": self.api_key, "format": "json"}
        request_params.update({k: str(v) for k, v in params.items()})

        logger.info(f"Making Congress.gov request: {endpoint}")
        try:
            response = await self._get_http().get(
                url, params=request_params, headers=REQUEST_HEADERS, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Congress.gov request timed out after {self.timeout}s: {endpoint}"
            ) from e
        except httpx.TransportError as e:
            raise UpstreamUnreachableError(f"Could not reach Congress.gov: {e}") from e

        raise_for_congress_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Congress.gov returned non-JSON body for {endpoint}") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"Congress.gov returned {type(data).__name__}, expected object")

        return data

    def _bill_path(self, congress: int, bill_type: str, number: int, suffix: str = "") -> str:
        return f"/bill/{congress}/{normalize_bill_type(bill_type, for_path=True)}/{number}{suffix}"

    # ------------------------------------------------------------------
    # Bulk queries (10 minute cache)
    # ------------------------------------------------------------------

    async def get_bills(
        self,
        congress: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
        sort: str = DEFAULT_BILL_SORT,
        **extra: Any,
    ) -> dict:
        """
        List bills, newest update first.

        Args:
            congress: Congress number; all congresses when None
            limit: Page size (capped at 250)
            offset: Pagination offset
            sort: Congress.gov sort expression
            **extra: Additional query params (fromDateTime, toDateTime, ...)

        Returns:
            {"bills": [...], "pagination": {...}}
        """
        endpoint = f"/bill/{congress}" if congress else "/bill"
        params = {
            "limit": min(limit, MAX_API_PAGE_SIZE),
            "offset": offset,
            "sort": sort,
            **extra,
        }
        return await self.make_request(endpoint, params)

    async def search_bills(
        self,
        query: str,
        congress: Optional[int] = None,
        bill_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict:
        """Search bills by free text, optionally narrowed to a congress and type."""
        endpoint = "/bill"
        if congress:
            endpoint = f"/bill/{congress}"
            if bill_type:
                endpoint += f"/{normalize_bill_type(bill_type, for_path=True)}"
        params = {
            "query": query,
            "limit": min(limit, MAX_API_PAGE_SIZE),
            "offset": offset,
            "sort": DEFAULT_BILL_SORT,
        }
        return await self.make_request(endpoint, params)

    async def get_legislative_subjects(self, limit: int = MAX_API_PAGE_SIZE, offset: int = 0) -> dict:
        return await self.make_request("/bill/subjects", {"limit": limit, "offset": offset})

    async def get_policy_areas(self) -> dict:
        return await self.make_request("/bill/policy-areas")

    # ------------------------------------------------------------------
    # Per-bill queries (1 hour cache)
    # ------------------------------------------------------------------

    async def get_bill(self, congress: int, bill_type: str, number: int) -> dict:
        """
        Get one bill.

        Returns:
            {"bill": {...}}
        """
        return await self.make_request(self._bill_path(congress, bill_type, number), cache=self.detail_cache)

    async def get_bill_actions(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/actions"), cache=self.detail_cache)

    async def get_bill_summaries(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/summaries"), cache=self.detail_cache)

    async def get_bill_subjects(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/subjects"), cache=self.detail_cache)

    async def get_bill_cosponsors(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/cosponsors"), cache=self.detail_cache)

    async def get_bill_committees(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/committees"), cache=self.detail_cache)

    async def get_bill_text(self, congress: int, bill_type: str, number: int) -> dict:
        return await self.make_request(self._bill_path(congress, bill_type, number, "/text"), cache=self.detail_cache)

    async def get_amendment_text(self, congress: int, amendment_type: str, number: int) -> dict:
        endpoint = f"/amendment/{congress}/{amendment_type.lower()}/{number}/text"
        return await self.make_request(endpoint, cache=self.detail_cache)

    async def get_bill_details(self, congress: int, bill_type: str, number: int) -> dict:
        """
        Aggregate a bill with its actions, summaries, subjects, cosponsors,
        committees and text versions.

        The bill call itself must succeed; each sub-call falls back to an
        empty shape on failure.
        """
        bill = await self.get_bill(congress, bill_type, number)

        async def or_default(call: Callable[[], Awaitable[dict]], default: dict) -> dict:
            try:
                return await call()
            except CongressApiError as e:
                logger.warning(f"Detail sub-request failed for {congress}-{bill_type}-{number}: {e}")
                return default

        args = (congress, bill_type, number)
        actions, summaries, subjects, cosponsors, committees, text = await asyncio.gather(
            or_default(lambda: self.get_bill_actions(*args), {"actions": []}),
            or_default(lambda: self.get_bill_summaries(*args), {"summaries": []}),
            or_default(lambda: self.get_bill_subjects(*args), {"subjects": {}}),
            or_default(lambda: self.get_bill_cosponsors(*args), {"cosponsors": []}),
            or_default(lambda: self.get_bill_committees(*args), {"committees": []}),
            or_default(lambda: self.get_bill_text(*args), {"textVersions": []}),
        )

        return {
            **bill.get("bill", {}),
            "actions": actions.get("actions", []),
            "summaries": summaries.get("summaries", []),
            "subjects": subjects.get("subjects", {}),
            "cosponsors": cosponsors.get("cosponsors", []),
            "committees": committees.get("committees", []),
            "textVersions": text.get("textVersions", []),
        }

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    async def test_connection(self) -> dict:
        """
        Check that the key works with a one-bill request.

        Returns:
            {"success": bool, "message": str, "error": str (on failure)}
        """
        try:
            await self.make_request("/bill", {"limit": 1})
            return {"success": True, "message": "Congress.gov API connection successful"}
        except (ConfigurationError, CongressApiError) as e:
            return {"success": False, "message": "Congress.gov API connection failed", "error": str(e)}

    def clear_cache(self) -> None:
        self.cache.invalidate()
        self.detail_cache.invalidate()

    def cache_stats(self) -> dict:
        return {"bulk": self.cache.stats(), "detail": self.detail_cache.stats()}


# Convenience function
def get_congress_client() -> CongressGovClient:
    """Get a Congress.gov API client instance."""
    return CongressGovClient()
