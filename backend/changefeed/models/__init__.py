# Data model: checkpoints, sync configs, events and the page contract
from .sync import (
    CheckpointStatus,
    ExtractedEvent,
    MoreHint,
    ObjectSyncConfig,
    PageQuery,
    PageResult,
    RecordOutcome,
    RunStats,
    SyncAllResult,
    SyncCheckpoint,
    SyncObjectResult,
    SyncStatusSummary,
)

__all__ = [
    "CheckpointStatus",
    "ExtractedEvent",
    "MoreHint",
    "ObjectSyncConfig",
    "PageQuery",
    "PageResult",
    "RecordOutcome",
    "RunStats",
    "SyncAllResult",
    "SyncCheckpoint",
    "SyncObjectResult",
    "SyncStatusSummary",
]
