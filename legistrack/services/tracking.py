"""
Per-user bill tracking.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from legistrack.database.store import BillStore
from legistrack.models import (
    NotificationSettings,
    TrackedBill,
    TrackedBillView,
    TrackingStats,
)
from legistrack.ingestion.transform import canonical_bill_id
from legistrack.services.bills import BillService
from legistrack.timeutils import utcnow

RECENT_TRACKING_DAYS = 7


class TrackingService:
    """
    Track bills for users and record how often they view them.

    Usage:
        tracking = TrackingService(store, bill_service)
        await tracking.track_bill("user-1", "118-HR-1")
        views = await tracking.get_tracked_bills("user-1")
    """

    def __init__(
        self,
        store: BillStore,
        bill_service: BillService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.bill_service = bill_service
        self._clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    async def track_bill(
        self,
        user_id: str,
        bill_id: str,
        notification_settings: Optional[NotificationSettings] = None,
        user_notes: Optional[str] = None,
        user_tags: Optional[List[str]] = None,
    ) -> bool:
        """
        Start tracking a bill, fetching it from Congress.gov if not stored.

        Re-tracking keeps the original tracked_at and view count.

        Returns:
            False if the bill could not be found or stored
        """
        bill = await self.bill_service.ensure_bill_in_database(bill_id)
        if bill is None:
            self.logger.warning(f"Cannot track {bill_id} for {user_id}: bill not available")
            return False

        now = self._clock()
        tracked = TrackedBill(
            user_id=user_id,
            bill_id=bill.bill_id,
            notification_settings=notification_settings or NotificationSettings(),
            user_notes=user_notes,
            user_tags=user_tags or [],
            tracked_at=now,
            last_viewed=now,
            updated_at=now,
        )
        inserted = await self.store.upsert_tracking(tracked)
        self.logger.info(f"{'📌 Tracking' if inserted else '🔁 Updated tracking for'} {bill.bill_id} ({user_id})")
        return True

    async def untrack_bill(self, user_id: str, bill_id: str) -> bool:
        return await self.store.delete_tracking(user_id, canonical_bill_id(bill_id))

    async def get_tracked_bills(self, user_id: str) -> List[TrackedBillView]:
        """Tracked bills joined with bill data, most recently tracked first."""
        tracked = await self.store.list_tracking(user_id)
        bills = {b.bill_id: b for b in await self.store.get_bills([t.bill_id for t in tracked])}

        views = []
        for row in tracked:
            bill = bills.get(row.bill_id)
            if bill is None:
                self.logger.warning(f"Tracked bill {row.bill_id} missing from store")
                continue
            views.append(TrackedBillView(bill=bill, tracking=row))
        return views

    async def is_bill_tracked(self, user_id: str, bill_id: str) -> bool:
        return await self.store.get_tracking(user_id, canonical_bill_id(bill_id)) is not None

    async def update_notification_settings(
        self, user_id: str, bill_id: str, notification_settings: NotificationSettings
    ) -> bool:
        return await self.store.update_tracking(user_id, canonical_bill_id(bill_id), {
            "notification_settings": notification_settings,
            "updated_at": self._clock(),
        })

    async def update_bill_notes(
        self,
        user_id: str,
        bill_id: str,
        user_notes: Optional[str] = None,
        user_tags: Optional[List[str]] = None,
    ) -> bool:
        fields = {"updated_at": self._clock()}
        if user_notes is not None:
            fields["user_notes"] = user_notes
        if user_tags is not None:
            fields["user_tags"] = user_tags
        return await self.store.update_tracking(user_id, canonical_bill_id(bill_id), fields)

    async def record_bill_view(self, user_id: str, bill_id: str) -> bool:
        """Bump view count and last_viewed; failures are logged, never raised."""
        try:
            return await self.store.increment_view(user_id, canonical_bill_id(bill_id), now=self._clock())
        except Exception as e:
            self.logger.error(f"Error recording view of {bill_id} for {user_id}: {e}")
            return False

    async def get_tracking_stats(self, user_id: str) -> TrackingStats:
        tracked = await self.store.list_tracking(user_id)
        cutoff = self._clock() - timedelta(days=RECENT_TRACKING_DAYS)
        return TrackingStats(
            total_tracked=len(tracked),
            total_views=sum(t.view_count for t in tracked),
            recently_tracked=sum(1 for t in tracked if t.tracked_at >= cutoff),
        )
