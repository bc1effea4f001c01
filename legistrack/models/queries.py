"""
Query parameters and result pages for bill reads.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from legistrack.config.constants import MAX_QUERY_PAGE_SIZE
from legistrack.models.legislation import Bill
from legistrack.models.subjects import BillTag


class BillQuery(BaseModel):
    """Filters, sorting and pagination for BillService.get_bills()."""

    congress: Optional[int] = None
    bill_type: Optional[str] = None
    status: Optional[str] = None
    sponsor_state: Optional[str] = None
    sponsor_party: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)
    policy_interests: List[str] = Field(default_factory=list)
    require_all_interests: bool = False
    min_confidence: int = 70
    introduced_after: Optional[str] = None   # YYYY-MM-DD
    introduced_before: Optional[str] = None  # YYYY-MM-DD
    query: Optional[str] = None

    sort_by: Literal["introduced_date", "updated_at", "relevance", "confidence"] = "introduced_date"
    sort_order: Literal["asc", "desc"] = "desc"

    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1)

    @field_validator("limit")
    @classmethod
    def cap_limit(cls, value: int) -> int:
        return min(value, MAX_QUERY_PAGE_SIZE)


class TaggedBill(Bill):
    """A bill together with its AI tags."""
    tags: List[BillTag] = Field(default_factory=list)


class BillPage(BaseModel):
    data: List[TaggedBill] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    has_more: bool = False


class SearchResult(BaseModel):
    bills: List[Bill] = Field(default_factory=list)
    total: int = 0
    from_api: bool = False
