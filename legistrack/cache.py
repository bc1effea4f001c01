"""
In-process TTL cache.

Used in front of the Congress.gov client (bulk and detail queries), the bill
query service and the subject taxonomy. Entries are process-local and
unsynchronized; losing one only costs an extra request.
"""
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


def make_cache_key(endpoint: str, params: Optional[dict] = None) -> str:
    """
    Build a stable cache key from an endpoint and its parameters.

    Example:
        >>> make_cache_key("/bill/118", {"limit": 2, "offset": 0})
        '/bill/118-{"limit": 2, "offset": 0}'
    """
    return f"{endpoint}-{json.dumps(params or {}, sort_keys=True, default=str)}"


class TTLCache:
    """
    Key/value cache whose entries expire `ttl` seconds after being stored.

    The clock is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic, name: str = "cache"):
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[key]
            return _MISSING
        return value

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one entry, or every entry when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self.invalidate()

    def stats(self) -> dict:
        return {"size": len(self._entries), "keys": list(self._entries.keys())}

    def __contains__(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for `key`, fetching and storing it on a miss.

        Exceptions from `fetch` propagate and nothing is cached.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            logger.debug(f"[{self.name}] cache hit: {key}")
            return value

        value = await fetch()
        self.set(key, value)
        return value
