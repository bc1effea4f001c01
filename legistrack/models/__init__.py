"""
Pydantic models for LegisTrack.

Import models from here:
    from legistrack.models import Bill, BillTag, TrackedBill
"""

from legistrack.models.legislation import (
    Bill,
    BillStatus,
    Committee,
    LatestAction,
    Sponsor,
)
from legistrack.models.subjects import (
    BillSubject,
    BillTag,
    SubjectType,
    TagFeedback,
    TagSource,
    TagSuggestion,
    make_tag_id,
)
from legistrack.models.tracking import (
    NotificationSettings,
    TrackedBill,
    TrackedBillView,
    TrackingStats,
)
from legistrack.models.sync import SyncResult, SyncStats, TaggingResult
from legistrack.models.queries import BillPage, BillQuery, SearchResult, TaggedBill

__all__ = [
    # Legislation
    "Bill",
    "BillStatus",
    "Committee",
    "LatestAction",
    "Sponsor",
    # Subjects and tags
    "BillSubject",
    "BillTag",
    "SubjectType",
    "TagFeedback",
    "TagSource",
    "TagSuggestion",
    "make_tag_id",
    # Tracking
    "NotificationSettings",
    "TrackedBill",
    "TrackedBillView",
    "TrackingStats",
    # Results
    "SyncResult",
    "SyncStats",
    "TaggingResult",
    # Queries
    "BillPage",
    "BillQuery",
    "SearchResult",
    "TaggedBill",
]
