"""
Legislation data models.

Defines the stored shape of a bill and its nested parts.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from legistrack.timeutils import ensure_utc, utcnow


class BillStatus(str, Enum):
    """Coarse status derived from the latest action text."""
    INTRODUCED = "introduced"
    IN_PROGRESS = "in_progress"
    PASSED = "passed"
    FAILED = "failed"


class Sponsor(BaseModel):
    """Sponsor or cosponsor of a bill."""
    bioguide_id: Optional[str] = None
    full_name: Optional[str] = None
    party: Optional[str] = None
    state: Optional[str] = None
    district: Optional[int] = None


class Committee(BaseModel):
    """Committee a bill has been referred to."""
    name: str
    chamber: Optional[str] = None
    system_code: Optional[str] = None
    url: Optional[str] = None


class LatestAction(BaseModel):
    action_date: Optional[str] = None
    text: Optional[str] = None
    action_code: Optional[str] = None


class Bill(BaseModel):
    """
    A piece of federal legislation, as stored in the `bills` collection.

    `bill_id` is the natural key: "{congress}-{TYPE}-{number}", e.g. "118-HR-1".
    """

    bill_id: str = Field(..., description="Unique ID: {congress}-{TYPE}-{number}")

    # Basic info
    congress: int
    bill_type: str
    number: int

    # Content
    title: str = ""
    short_title: Optional[str] = None
    summary: Optional[str] = None

    # Status
    status: BillStatus = BillStatus.INTRODUCED
    introduced_date: Optional[str] = None  # YYYY-MM-DD
    latest_action: Optional[LatestAction] = None

    # Sponsorship
    sponsors: List[Sponsor] = Field(default_factory=list)
    cosponsors_count: int = 0

    # Categorization
    committees: List[Committee] = Field(default_factory=list)
    subjects: List[str] = Field(default_factory=list)
    policy_area: Optional[str] = None

    # Links and text
    congress_url: Optional[str] = None
    full_text_url: Optional[str] = None
    full_text_content: Optional[str] = None
    full_text_source: Optional[str] = None

    # Upstream's own last-modified stamp
    update_date: Optional[str] = None

    # Metadata
    created_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)
    last_synced: Optional[datetime] = None

    @field_validator("bill_type")
    @classmethod
    def upper_bill_type(cls, value: str) -> str:
        return value.upper()

    @field_validator("created_at", "updated_at", "last_synced")
    @classmethod
    def aware_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def __str__(self) -> str:
        """Human-readable representation."""
        return f"{self.bill_type}. {self.number} ({self.congress}th Congress): {self.title[:60]}"
