"""Services module - bill queries and per-user tracking."""

from legistrack.services.bills import BillService
from legistrack.services.tracking import TrackingService

__all__ = ["BillService", "TrackingService"]
