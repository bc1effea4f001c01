"""Timezone-aware datetime helpers shared by models, store and sync code."""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by some Mongo clients) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_api_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Congress.gov date or datetime string.

    Handles both "2023-01-11" and "2023-01-11T13:43:49Z".

    Returns:
        Aware UTC datetime, or None if the value is empty or unparseable
    """
    if not value:
        return None
    try:
        if "T" in value:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        return datetime.strptime(value[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def format_api_datetime(value: datetime) -> str:
    """Format a datetime the way Congress.gov expects in fromDateTime/toDateTime."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")
