"""
Checkpoint Endpoints.
Inspect and reset the per-object-type resumption markers.
"""

import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from changefeed.api.deps import get_orchestrator
from changefeed.models.sync import SyncCheckpoint
from changefeed.services.crm_sync.sync_orchestrator import IncrementalSyncOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class CheckpointResponse(BaseModel):
    """One stored checkpoint."""
    object_type: str
    last_sync_time: datetime
    last_record_id: str | None
    record_count: int
    status: str
    error_message: str | None
    cursor: str | None = None

    @classmethod
    def from_checkpoint(cls, checkpoint: SyncCheckpoint) -> "CheckpointResponse":
        return cls(
            object_type=checkpoint.object_type,
            last_sync_time=checkpoint.last_sync_time,
            last_record_id=checkpoint.last_record_id,
            record_count=checkpoint.record_count,
            status=checkpoint.status.value,
            error_message=checkpoint.error_message,
            cursor=checkpoint.cursor,
        )


class ClearCheckpointsResponse(BaseModel):
    status: str
    message: str


@router.get("/checkpoints", response_model=List[CheckpointResponse])
async def list_checkpoints(
    orchestrator: IncrementalSyncOrchestrator = Depends(get_orchestrator),
) -> List[CheckpointResponse]:
    """All stored checkpoints, ordered by object type."""
    checkpoints = await orchestrator.get_all_checkpoints()
    return [CheckpointResponse.from_checkpoint(c) for c in checkpoints]


@router.get("/checkpoints/{object_type}", response_model=CheckpointResponse)
async def get_checkpoint(
    object_type: str,
    orchestrator: IncrementalSyncOrchestrator = Depends(get_orchestrator),
) -> CheckpointResponse:
    """
    Checkpoint of one object type.

    Raises:
        HTTPException 404: If the object type was never synced
    """
    checkpoint = await orchestrator.get_checkpoint(object_type)
    if checkpoint is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No checkpoint for {object_type}",
        )
    return CheckpointResponse.from_checkpoint(checkpoint)


@router.delete("/checkpoints", response_model=ClearCheckpointsResponse)
async def clear_checkpoints(
    orchestrator: IncrementalSyncOrchestrator = Depends(get_orchestrator),
) -> ClearCheckpointsResponse:
    """Forget all checkpoints. The next sync re-reads every object type from epoch."""
    await orchestrator.clear_checkpoints()
    logger.warning("⚠️ All checkpoints cleared via API, next sync is a full resync")
    return ClearCheckpointsResponse(
        status="cleared",
        message="All checkpoints removed; the next sync starts from epoch",
    )
