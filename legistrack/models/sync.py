"""
Result models returned by the sync, full-text and tagging pipelines.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """
    Outcome of one sync operation.

    `errors` holds per-bill failures as {"bill": id, "error": message}, or
    {"error": message} for a whole-operation failure.
    """
    success: bool
    count: int = 0
    message: str = ""
    errors: List[Dict[str, str]] = Field(default_factory=list)

    @classmethod
    def failure(cls, message: str) -> "SyncResult":
        return cls(success=False, count=0, message=message, errors=[{"error": message}])


class SyncStats(BaseModel):
    total_bills: int = 0
    recently_synced: int = 0
    needs_update: int = 0
    last_sync_time: Optional[datetime] = None


class TaggingResult(BaseModel):
    success: bool
    processed: int = 0
    failed: int = 0
    message: str = ""
