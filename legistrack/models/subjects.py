"""
Subject taxonomy and AI tag models.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from legistrack.timeutils import ensure_utc, utcnow


class SubjectType(str, Enum):
    LEGISLATIVE = "legislative"
    POLICY = "policy"


class TagSource(str, Enum):
    AI = "AI"
    MANUAL = "manual"
    FEEDBACK = "feedback"


class BillSubject(BaseModel):
    """One entry of the subject taxonomy, e.g. "policy-health"."""
    subject_id: str
    name: str
    type: SubjectType
    count: int = 0
    update_date: Optional[str] = None


class TagFeedback(BaseModel):
    """Running user verdict on one tag."""
    accurate: Optional[bool] = None
    feedback_count: int = 0
    last_feedback: Optional[datetime] = None


class TagSuggestion(BaseModel):
    """
    A tag proposed by a strategy, before it is stored.

    Confidence is rounded and clamped into [0, 100] on validation, so LLM
    output like 104.6 or -3 never reaches the store.
    """
    subject_id: str
    name: str = ""
    confidence_score: int

    @field_validator("confidence_score", mode="before")
    @classmethod
    def clamp_confidence(cls, value) -> int:
        score = round(float(value))
        return max(0, min(100, score))


class BillTag(BaseModel):
    """A stored (bill, subject) association with a confidence score."""
    tag_id: str
    bill_id: str
    subject_id: str
    confidence_score: int = Field(..., ge=0, le=100)
    source: TagSource = TagSource.AI
    user_feedback: Optional[TagFeedback] = None

    # Joined from the subject taxonomy on read
    name: Optional[str] = None
    type: Optional[SubjectType] = None

    created_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def aware_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


def make_tag_id(bill_id: str, subject_id: str) -> str:
    return f"{bill_id}::{subject_id}"
