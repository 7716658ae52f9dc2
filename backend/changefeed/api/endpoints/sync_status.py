"""
Sync Status API Endpoint.
Provides sync progress and checkpoint health monitoring.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from changefeed.api.deps import get_orchestrator
from changefeed.services.crm_sync.sync_orchestrator import IncrementalSyncOrchestrator
from changefeed.services.sync_status import sync_status

router = APIRouter()
logger = logging.getLogger(__name__)


class CheckpointSummary(BaseModel):
    """Roll-up of the stored checkpoints."""
    objects: List[str]
    last_sync: datetime | None
    total_records: int
    status: str


class SyncStatusResponse(BaseModel):
    """Sync status response."""
    phase: str
    started_at: str | None
    current_step: str
    object_types: List[str]
    progress: Dict[str, Any]
    events_emitted: int
    errors: list
    completed_at: str | None
    duration_seconds: float
    is_running: bool
    checkpoints: CheckpointSummary


@router.get("/sync-status", response_model=SyncStatusResponse)
async def get_sync_status(
    orchestrator: IncrementalSyncOrchestrator = Depends(get_orchestrator),
) -> SyncStatusResponse:
    """
    Get current sync status.

    Combines the state of the running (or last) sync pass with the health
    of the stored checkpoints. Poll every few seconds during a sync.

    Returns:
        Current sync status with checkpoint summary
    """
    status = sync_status.get_status()
    summary = await orchestrator.get_sync_status()

    return SyncStatusResponse(
        phase=status["phase"].value,
        started_at=status["started_at"],
        current_step=status["current_step"],
        object_types=status["object_types"],
        progress=status["progress"],
        events_emitted=status["events_emitted"],
        errors=status["errors"],
        completed_at=status["completed_at"],
        duration_seconds=status["duration_seconds"],
        is_running=sync_status.is_running(),
        checkpoints=CheckpointSummary(
            objects=summary.objects,
            last_sync=summary.last_sync,
            total_records=summary.total_records,
            status=summary.status,
        ),
    )
