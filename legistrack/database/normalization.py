"""
Data Normalization Module

Centralized functions to turn models and raw values into our standardized
database format. The transformer and the store both go through here so a
bill written by a bulk sync looks exactly like one written by a single fetch.

Usage:
    from legistrack.database.normalization import derive_status, normalize_bill

    status = derive_status(raw["latestAction"]["text"])
    document = normalize_bill(bill)
    await db.bills.update_one({"bill_id": bill.bill_id}, {"$set": document}, upsert=True)
"""
import re
from typing import Any, Dict, Optional

from legistrack.models import Bill, BillStatus, SubjectType


# ============================================================================
# Status Normalization
# ============================================================================

# Checked in order; the first keyword found wins.
STATUS_KEYWORDS = [
    (("passed", "agreed to"), BillStatus.PASSED),
    (("failed", "rejected"), BillStatus.FAILED),
    (("introduced",), BillStatus.INTRODUCED),
]


def derive_status(action_text: Optional[str]) -> BillStatus:
    """
    Derive a coarse bill status from the latest action text.

    This is a keyword heuristic, not a parse of the legislative process:
    "Motion to reconsider laid on the table. Agreed to without objection."
    reads as PASSED even though the bill itself may not have passed.

    Examples:
        >>> derive_status("Passed Senate without amendment by Unanimous Consent.")
        <BillStatus.PASSED: 'passed'>
        >>> derive_status("Introduced in House")
        <BillStatus.INTRODUCED: 'introduced'>
        >>> derive_status("Referred to the Committee on Finance.")
        <BillStatus.IN_PROGRESS: 'in_progress'>
    """
    if not action_text:
        return BillStatus.INTRODUCED

    text = action_text.lower()
    for keywords, status in STATUS_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return status

    return BillStatus.IN_PROGRESS


# ============================================================================
# Bill Type Normalization
# ============================================================================

def normalize_bill_type(bill_type: Optional[str], for_path: bool = False) -> str:
    """
    Normalize a bill type.

    Stored ids use the upper-case form the API returns ("HR"); request
    paths use lower case ("/bill/118/hr/1").
    """
    cleaned = (bill_type or "").strip().replace(".", "").replace(" ", "")
    return cleaned.lower() if for_path else cleaned.upper()


# ============================================================================
# Subject Normalization
# ============================================================================

def slugify_subject(name: str, subject_type: SubjectType) -> str:
    """
    Build the taxonomy id for a subject name.

    Examples:
        >>> slugify_subject("Health", SubjectType.POLICY)
        'policy-health'
        >>> slugify_subject("Medicare & Medicaid", SubjectType.LEGISLATIVE)
        'legislative-medicare-medicaid'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{SubjectType(subject_type).value}-{slug}"


# ============================================================================
# Bill Document Normalization
# ============================================================================

# Filled in by enrichment, not by the list/detail payload. An empty value
# here means "not fetched yet" and must not clobber an enriched row.
ENRICHED_FIELDS = (
    "summary",
    "subjects",
    "policy_area",
    "committees",
    "cosponsors_count",
    "full_text_url",
    "full_text_content",
    "full_text_source",
)


def normalize_bill(bill: Bill) -> Dict[str, Any]:
    """
    Turn a Bill model into the document written with $set.

    - None values are dropped
    - empty enrichment fields are dropped so a re-sync from the bulk list
      never erases a summary or subject list fetched earlier
    - created_at is left to $setOnInsert

    Args:
        bill: Transformed bill

    Returns:
        Document ready for update_one(..., {"$set": document}, upsert=True)
    """
    document = bill.model_dump(mode="python", exclude_none=True, exclude={"created_at"})
    document["status"] = bill.status.value

    for field in ENRICHED_FIELDS:
        if field in document and not document[field]:
            del document[field]

    return document
