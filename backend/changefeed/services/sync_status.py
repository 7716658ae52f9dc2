"""
Sync Run Tracking.
Allows monitoring of the current or last sync pass via API.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from changefeed.models.sync import RunStats, SyncCheckpoint

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Sync run phases."""
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    ERROR = "error"


class SyncStatusTracker:
    """
    Singleton to track the sync pass across requests.

    Only one pass runs at a time per process; the sync endpoint refuses a
    second one while is_running() is true.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize status tracking."""
        self.status = self._blank(SyncPhase.IDLE, "Waiting to start...")

    @staticmethod
    def _blank(phase: SyncPhase, step: str) -> Dict[str, Any]:
        return {
            "phase": phase,
            "started_at": None,
            "current_step": step,
            "object_types": [],
            "progress": {},
            "events_emitted": 0,
            "errors": [],
            "completed_at": None,
            "duration_seconds": 0.0,
        }

    def start_sync(self, object_types: List[str]):
        """Mark sync pass as started."""
        self.status = self._blank(SyncPhase.SYNCING, "Starting incremental sync...")
        self.status["started_at"] = datetime.now(timezone.utc).isoformat()
        self.status["object_types"] = list(object_types)
        logger.info(f"🚀 SYNC STARTED - {len(object_types)} object types")

    def update_object(self, object_type: str, stats: RunStats, checkpoint: SyncCheckpoint):
        """Record the outcome of one object type."""
        self.status["progress"][object_type] = {
            **stats.to_dict(),
            "status": checkpoint.status.value,
            "watermark": checkpoint.last_sync_time.isoformat(),
        }
        self.status["current_step"] = f"Synced {object_type} ({stats.processed} records)"
        if checkpoint.error_message:
            self.add_error(f"{object_type}: {checkpoint.error_message}")
        logger.info(f"📦 {object_type}: {stats.processed} records, {checkpoint.status.value}")

    def add_error(self, error: str):
        """Add error to tracking."""
        self.status["errors"].append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error": error,
        })

    def complete_sync(self, events_emitted: int = 0, success: bool = True):
        """Mark sync pass as completed."""
        self.status["phase"] = SyncPhase.COMPLETED if success else SyncPhase.ERROR
        self.status["events_emitted"] = events_emitted
        self.status["completed_at"] = datetime.now(timezone.utc).isoformat()

        if self.status["started_at"]:
            start = datetime.fromisoformat(self.status["started_at"])
            end = datetime.fromisoformat(self.status["completed_at"])
            self.status["duration_seconds"] = (end - start).total_seconds()

        if success:
            self.status["current_step"] = "✅ Sync completed"
            logger.info(
                f"✅ SYNC COMPLETED - {events_emitted} events in "
                f"{self.status['duration_seconds']:.1f}s"
            )
        else:
            self.status["current_step"] = "❌ Sync failed"
            logger.error("❌ SYNC FAILED")

    def get_status(self) -> Dict[str, Any]:
        """Get current status."""
        return self.status.copy()

    def is_running(self) -> bool:
        """Check if a sync pass is currently running."""
        return self.status["phase"] is SyncPhase.SYNCING


# Singleton instance
sync_status = SyncStatusTracker()
