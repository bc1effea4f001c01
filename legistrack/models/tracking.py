"""
Per-user bill tracking models.
"""
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from legistrack.models.legislation import Bill
from legistrack.timeutils import ensure_utc, utcnow


class NotificationSettings(BaseModel):
    status_changes: bool = True
    voting_updates: bool = True
    ai_insights: bool = False
    major_milestones: bool = True


class TrackedBill(BaseModel):
    """A user's subscription to one bill, unique on (user_id, bill_id)."""
    user_id: str
    bill_id: str
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)
    user_notes: Optional[str] = None
    user_tags: List[str] = Field(default_factory=list)
    view_count: int = 1
    tracked_at: datetime = Field(default_factory=utcnow)
    last_viewed: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("tracked_at", "last_viewed", "updated_at")
    @classmethod
    def aware_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class TrackedBillView(BaseModel):
    """A tracked bill joined with the bill it points at."""
    bill: Bill
    tracking: TrackedBill


class TrackingStats(BaseModel):
    total_tracked: int = 0
    total_views: int = 0
    recently_tracked: int = 0
