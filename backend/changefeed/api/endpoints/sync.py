"""
Sync Trigger Endpoint.
Runs one incremental sync pass; scheduling lives outside this service.
"""

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from changefeed.api.deps import get_orchestrator
from changefeed.api.endpoints.checkpoints import CheckpointResponse
from changefeed.core.config import Settings, get_settings
from changefeed.models.sync import CheckpointStatus
from changefeed.services.crm_sync.sync_orchestrator import IncrementalSyncOrchestrator
from changefeed.services.sync_status import sync_status

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncRunRequest(BaseModel):
    """Request model for a sync pass."""
    object_types: List[str] | None = Field(
        default=None,
        description="Object types to sync (default: all configured)",
    )
    max_records_per_object: int | None = Field(default=None, gt=0)
    include_deleted: bool | None = Field(
        default=None,
        description="Include deleted/archived rows (default: SYNC_INCLUDE_DELETED)",
    )


class ObjectSyncReport(BaseModel):
    """Outcome for one object type."""
    checkpoint: CheckpointResponse
    stats: Dict[str, int]


class SyncRunResponse(BaseModel):
    """Response model for a sync pass."""
    status: str
    events_emitted: int
    objects: Dict[str, ObjectSyncReport]
    message: str


@router.post("/sync/run", response_model=SyncRunResponse)
async def run_sync(
    request: SyncRunRequest,
    orchestrator: IncrementalSyncOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
) -> SyncRunResponse:
    """
    Run one incremental sync pass.

    Each object type is paged until it is exhausted or its event cap is
    reached. A failed object type does not stop the others.

    Example:
        POST /api/v1/sync/run
        {
            "object_types": ["Account", "Contact"]
        }
    """
    if sync_status.is_running():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A sync pass is already running",
        )

    object_types = request.object_types or list(orchestrator.configs)
    include_deleted = (
        request.include_deleted
        if request.include_deleted is not None
        else settings.sync_include_deleted
    )

    sync_status.start_sync(object_types)

    try:
        result = await orchestrator.sync_all(
            object_types=object_types,
            max_records_per_object=request.max_records_per_object,
            include_deleted=include_deleted,
            max_concurrency=settings.sync_max_concurrency,
        )
    except Exception as e:
        logger.error(f"❌ Sync pass failed: {e}", exc_info=True)
        sync_status.add_error(str(e))
        sync_status.complete_sync(success=False)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Sync failed: {e}",
        )

    objects: Dict[str, ObjectSyncReport] = {}
    for object_type, checkpoint in result.checkpoints.items():
        stats = result.stats[object_type]
        sync_status.update_object(object_type, stats, checkpoint)
        objects[object_type] = ObjectSyncReport(
            checkpoint=CheckpointResponse.from_checkpoint(checkpoint),
            stats=stats.to_dict(),
        )

    for object_type, error in result.failures.items():
        sync_status.add_error(f"{object_type}: {error}")

    statuses = [c.status for c in result.checkpoints.values()]
    if (statuses or result.failures) and all(s is CheckpointStatus.FAILED for s in statuses):
        run_status = "failed"
    elif result.failures or any(s is not CheckpointStatus.SUCCESS for s in statuses):
        run_status = "partial_success"
    else:
        run_status = "success"

    sync_status.complete_sync(events_emitted=len(result.events), success=run_status != "failed")

    skipped = [t for t in object_types if t not in result.checkpoints and t not in result.failures]
    message = f"Synced {len(objects)} object types, {len(result.events)} events"
    if result.failures:
        message += f"; could not start: {', '.join(result.failures)}"
    if skipped:
        message += f"; skipped unknown types: {', '.join(skipped)}"

    return SyncRunResponse(
        status=run_status,
        events_emitted=len(result.events),
        objects=objects,
        message=message,
    )
