"""
Transformer: Congress.gov payloads -> LegisTrack models.

Everything here is pure. The API returns a single object where a list is
expected often enough that every list-valued field goes through as_list().
"""
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from legistrack.config.constants import PREFERRED_TEXT_FORMAT, TEXT_FORMAT_ORDER
from legistrack.database.normalization import derive_status, normalize_bill_type
from legistrack.errors import InvalidBillIdError, MalformedResponseError
from legistrack.models import Bill, Committee, LatestAction, Sponsor

logger = logging.getLogger(__name__)


# ============================================================================
# Bill ids
# ============================================================================

def make_bill_id(congress: int, bill_type: str, number: Any) -> str:
    """
    Build the natural key for a bill.

    Example:
        >>> make_bill_id(118, "hr", "1")
        '118-HR-1'
    """
    return f"{int(congress)}-{normalize_bill_type(bill_type)}-{int(number)}"


def parse_bill_id(bill_id: str) -> Tuple[int, str, int]:
    """
    Split "118-HR-1" into (118, "HR", 1).

    Raises:
        InvalidBillIdError: anything other than congress-type-number with
            integer congress and number
    """
    parts = (bill_id or "").strip().split("-")
    if len(parts) != 3 or not parts[1]:
        raise InvalidBillIdError(bill_id)
    try:
        congress, number = int(parts[0]), int(parts[2])
    except ValueError:
        raise InvalidBillIdError(bill_id) from None
    return congress, normalize_bill_type(parts[1]), number


def canonical_bill_id(bill_id: str) -> str:
    """
    The stored form of a bill id, whatever case or spacing it came in.

    Example:
        >>> canonical_bill_id(" 118-hr-1 ")
        '118-HR-1'
    """
    return make_bill_id(*parse_bill_id(bill_id))


def describe_raw_bill(raw: Any) -> str:
    """Best-effort bill id for error reports about a raw payload."""
    if isinstance(raw, dict):
        try:
            return make_bill_id(raw.get("congress"), raw.get("type"), raw.get("number"))
        except (TypeError, ValueError):
            return str(raw.get("number") or "unknown")
    return str(raw)


# ============================================================================
# Shape helpers
# ============================================================================

def as_list(value: Any) -> list:
    """None -> [], a single object -> [object], a list -> itself."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _name_of(item: Any) -> Optional[str]:
    if isinstance(item, dict):
        return item.get("name")
    if isinstance(item, str):
        return item
    return None


def extract_policy_area(payload: Optional[dict]) -> Optional[str]:
    """
    Policy area name from a bill or /subjects payload.

    Accepts {"policyArea": {"name": ...}} at the top level or nested under "subjects".
    """
    if not payload:
        return None
    policy = payload.get("policyArea")
    if policy is None and isinstance(payload.get("subjects"), dict):
        policy = payload["subjects"].get("policyArea")
    return _name_of(policy)


def extract_subjects(payload: Optional[dict]) -> List[str]:
    """
    Legislative subject names from a /subjects payload.

    The API nests them as {"subjects": {"legislativeSubjects": [...]}}; a
    bare {"legislativeSubjects": ...} or a list under "subjects" also works.
    """
    if not payload:
        return []
    container = payload.get("subjects", payload)
    if isinstance(container, dict):
        items = container.get("legislativeSubjects")
    else:
        items = container
    names = [_name_of(item) for item in as_list(items)]
    return [name for name in names if name]


def extract_committees(payload: Optional[dict]) -> List[Committee]:
    if not payload:
        return []
    committees = []
    for item in as_list(payload.get("committees")):
        if not isinstance(item, dict) or not item.get("name"):
            continue
        committees.append(Committee(
            name=item["name"],
            chamber=item.get("chamber"),
            system_code=item.get("systemCode"),
            url=item.get("url"),
        ))
    return committees


def extract_sponsors(raw: dict) -> List[Sponsor]:
    sponsors = []
    for item in as_list(raw.get("sponsors")):
        if not isinstance(item, dict):
            continue
        district = item.get("district")
        sponsors.append(Sponsor(
            bioguide_id=item.get("bioguideId"),
            full_name=item.get("fullName"),
            party=item.get("party"),
            state=item.get("state"),
            district=int(district) if district not in (None, "") else None,
        ))
    return sponsors


def extract_summary_text(payload: Optional[dict]) -> Optional[str]:
    """
    Text of the first summary in a /summaries payload (or bill payload
    carrying summaries inline).
    """
    if not payload:
        return None
    summaries = payload.get("summaries")
    if isinstance(summaries, dict):
        # Detail payloads carry {"count": n, "url": ...}; some carry the list inline
        summaries = summaries.get("billSummaries") or summaries.get("summaries")
    for item in as_list(summaries):
        if isinstance(item, dict) and item.get("text"):
            return item["text"]
    return None


def count_cosponsors(payload: Optional[dict]) -> int:
    """Cosponsor count from a /cosponsors payload or a bill's {"cosponsors": {"count": n}}."""
    if not payload:
        return 0
    pagination = payload.get("pagination")
    if isinstance(pagination, dict) and pagination.get("count") is not None:
        return int(pagination["count"])
    cosponsors = payload.get("cosponsors")
    if isinstance(cosponsors, dict):
        return int(cosponsors.get("count") or 0)
    return len(as_list(cosponsors))


def extract_text_versions(payload: Optional[dict]) -> List[dict]:
    if not payload:
        return []
    return [v for v in as_list(payload.get("textVersions")) if isinstance(v, dict)]


def extract_text_formats(payload: Optional[dict]) -> List[dict]:
    """Formats of the most recent text version (the API lists newest first)."""
    versions = extract_text_versions(payload)
    if not versions:
        return []
    return [f for f in as_list(versions[0].get("formats")) if isinstance(f, dict)]


def select_text_url(formats: List[dict], preferred: str = PREFERRED_TEXT_FORMAT) -> Optional[str]:
    """
    Pick a document URL: the preferred format, then XML, then the text
    formats, then PDF, else the first one listed.
    """
    if not formats:
        return None
    order = [preferred] + [f for f in TEXT_FORMAT_ORDER if f != preferred]
    for wanted in order:
        for fmt in formats:
            if fmt.get("type") == wanted and fmt.get("url"):
                return fmt["url"]
    return formats[0].get("url")


# ============================================================================
# Bill transform
# ============================================================================

def _congress_gov_url(congress: int, bill_type: str, number: int) -> str:
    return f"https://www.congress.gov/bill/{congress}th-congress/{normalize_bill_type(bill_type, for_path=True)}/{number}"


def transform_congress_bill(raw: dict, synced_at: datetime) -> Bill:
    """
    Transform one bill from the list or detail endpoint into a Bill.

    Fields the payload does not carry (summary, subjects, committees, ...)
    are left empty for the enrichers to fill in.

    Args:
        raw: One item of {"bills": [...]} or the {"bill": {...}} object
        synced_at: Timestamp written to updated_at and last_synced

    Returns:
        Bill model

    Raises:
        MalformedResponseError: payload lacks congress, type or number
    """
    if not isinstance(raw, dict):
        raise MalformedResponseError(f"Expected bill object, got {type(raw).__name__}")

    try:
        congress = int(raw["congress"])
        bill_type = normalize_bill_type(raw["type"])
        number = int(raw["number"])
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedResponseError(f"Bill payload missing congress/type/number: {e}") from e

    latest = raw.get("latestAction") or {}
    latest_action = LatestAction(
        action_date=latest.get("actionDate"), text=latest.get("text"), action_code=latest.get("actionCode")
    ) if latest else None

    introduced = raw.get("introducedDate")
    title = raw.get("title") or ""

    return Bill(
        bill_id=make_bill_id(congress, bill_type, number),
        congress=congress,
        bill_type=bill_type,
        number=number,
        title=title,
        short_title=raw.get("shortTitle") or (title[:100] if title else None),
        summary=extract_summary_text(raw),
        status=derive_status(latest.get("text")),
        introduced_date=introduced[:10] if introduced else None,
        latest_action=latest_action,
        sponsors=extract_sponsors(raw),
        cosponsors_count=count_cosponsors(raw),
        committees=extract_committees(raw),
        subjects=extract_subjects(raw) if isinstance(raw.get("subjects"), (dict, list)) else [],
        policy_area=extract_policy_area(raw),
        congress_url=_congress_gov_url(congress, bill_type, number),
        update_date=raw.get("updateDate"),
        updated_at=synced_at,
        last_synced=synced_at,
    )
