"""
Sync Data Model.

Checkpoints, per-object sync configuration, extracted events and the
page contract shared by the orchestrator and the source adapters.
"""

import enum
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from changefeed.utils.timestamps import EPOCH


class CheckpointStatus(str, enum.Enum):
    """Outcome of the run that produced a checkpoint."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class MoreHint(str, enum.Enum):
    """
    What an adapter knows about records beyond the page it returned.

    UNKNOWN means the protocol carries no continuation signal; the caller
    assumes more records exist only when the page came back full.
    """

    DEFINITELY_MORE = "definitely_more"
    DEFINITELY_DONE = "definitely_done"
    UNKNOWN = "unknown"


class RecordOutcome(str, enum.Enum):
    """Per-record result of classification."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    ARCHIVED = "archived"
    ERROR = "error"


@dataclass(frozen=True)
class SyncCheckpoint:
    """
    Resumption marker for one object type.

    last_sync_time is the maximum watermark processed. While a source is
    paging by offset token, cursor holds that token and cursor_time the
    start_time it is relative to; the next query resumes from that pair
    instead of last_sync_time. last_record_id is diagnostic.
    """

    object_type: str
    last_sync_time: datetime = EPOCH
    last_record_id: Optional[str] = None
    record_count: int = 0
    status: CheckpointStatus = CheckpointStatus.SUCCESS
    error_message: Optional[str] = None
    cursor: Optional[str] = None
    cursor_time: Optional[datetime] = None

    def resume_point(self) -> Tuple[datetime, Optional[str]]:
        """(start_time, cursor) of the next query."""
        if self.cursor and self.cursor_time is not None:
            return self.cursor_time, self.cursor
        return self.last_sync_time, None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "object_type": self.object_type,
            "last_sync_time": self.last_sync_time.isoformat(),
            "last_record_id": self.last_record_id,
            "record_count": self.record_count,
            "status": self.status.value,
            "error_message": self.error_message,
            "cursor": self.cursor,
            "cursor_time": self.cursor_time.isoformat() if self.cursor_time else None,
        }


@dataclass(frozen=True)
class ObjectSyncConfig:
    """
    Static sync metadata for one object type.

    order_field must sort ascending by date_field, otherwise the maximum
    watermark of a page is not a safe resumption point.
    """

    object_type: str
    batch_size: int
    fields: Tuple[str, ...]
    date_field: str
    order_field: str
    additional_filters: Optional[str] = None
    id_field: str = "Id"
    created_field: str = "CreatedDate"
    deleted_field: str = "IsDeleted"
    owner_field: Optional[str] = "OwnerId"
    entity_name: Optional[str] = None
    use_bulk_api: bool = False

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive for {self.object_type}")
        # Accept lists in literal config tables but keep the instance immutable
        object.__setattr__(self, "fields", tuple(self.fields))

    @property
    def event_namespace(self) -> str:
        """Lowercased entity name used in event types (crm.<entity>.<kind>)."""
        return (self.entity_name or self.object_type).lower()


@dataclass(frozen=True)
class ExtractedEvent:
    """Unit emitted downstream, one per raw record."""

    type: str
    timestamp: datetime
    target_id: str
    actor_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> Tuple[str, str, datetime]:
        """Key a downstream sink deduplicates redelivered events on."""
        return (str(self.metadata.get("objectType", "")), self.target_id, self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
            "actorId": self.actor_id,
            "targetId": self.target_id,
            "metadata": self.metadata,
        }


@dataclass
class RunStats:
    """Per-call tally of record outcomes. Not persisted."""

    processed: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    archived: int = 0
    errors: int = 0

    @classmethod
    def from_outcomes(cls, outcomes: List[RecordOutcome]) -> "RunStats":
        """Reduces a list of per-record outcomes into counts."""
        stats = cls(processed=len(outcomes))
        for outcome in outcomes:
            if outcome is RecordOutcome.CREATED:
                stats.created += 1
            elif outcome is RecordOutcome.UPDATED:
                stats.updated += 1
            elif outcome is RecordOutcome.DELETED:
                stats.deleted += 1
            elif outcome is RecordOutcome.ARCHIVED:
                stats.archived += 1
            else:
                stats.errors += 1
        return stats

    def __add__(self, other: "RunStats") -> "RunStats":
        return RunStats(**{
            f.name: getattr(self, f.name) + getattr(other, f.name)
            for f in fields(self)
        })

    def derive_status(self) -> CheckpointStatus:
        """failed if every processed record errored, partial if some did."""
        if self.processed > 0 and self.errors >= self.processed:
            return CheckpointStatus.FAILED
        if self.errors > 0:
            return CheckpointStatus.PARTIAL
        return CheckpointStatus.SUCCESS

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PageQuery:
    """Request for up to `limit` records with watermark > start_time, ascending."""

    object_type: str
    fields: Tuple[str, ...]
    date_field: str
    order_field: str
    start_time: datetime
    limit: int
    additional_filters: Optional[str] = None
    include_deleted: bool = False
    use_bulk_api: bool = False
    cursor: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        config: ObjectSyncConfig,
        start_time: datetime,
        limit: int,
        include_deleted: bool = False,
        cursor: Optional[str] = None,
    ) -> "PageQuery":
        return cls(
            object_type=config.object_type,
            fields=config.fields,
            date_field=config.date_field,
            order_field=config.order_field,
            start_time=start_time,
            limit=limit,
            additional_filters=config.additional_filters,
            include_deleted=include_deleted,
            use_bulk_api=config.use_bulk_api,
            cursor=cursor,
        )


@dataclass
class PageResult:
    """
    One page of raw records plus the adapter's continuation knowledge.

    next_cursor is a token that, sent back with the same start_time,
    yields the following page. Adapters that keep their own continuation
    state (bulk locators) leave it None.
    """

    records: List[Dict[str, Any]]
    more_hint: MoreHint = MoreHint.UNKNOWN
    next_cursor: Optional[str] = None
    total_hint: Optional[int] = None

    def has_more(self, page_size: int) -> bool:
        if self.more_hint is MoreHint.DEFINITELY_MORE:
            return True
        if self.more_hint is MoreHint.DEFINITELY_DONE:
            return False
        return len(self.records) >= page_size


@dataclass
class SyncObjectResult:
    """Result of one sync_object call (exactly one page)."""

    events: List[ExtractedEvent]
    checkpoint: SyncCheckpoint
    has_more: bool
    stats: RunStats
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncAllResult:
    """
    Result of a sync_all pass over several object types.

    Types that could not start (their stored checkpoint was unreadable) are
    reported in failures and carry no checkpoint, so nothing persisted from
    this result can rewind them.
    """

    events: List[ExtractedEvent] = field(default_factory=list)
    checkpoints: Dict[str, SyncCheckpoint] = field(default_factory=dict)
    stats: Dict[str, RunStats] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)


@dataclass
class SyncStatusSummary:
    """Roll-up of the stored checkpoints."""

    objects: List[str]
    last_sync: Optional[datetime]
    total_records: int
    status: str

    @classmethod
    def from_checkpoints(cls, checkpoints: List[SyncCheckpoint]) -> "SyncStatusSummary":
        objects: List[str] = []
        last_sync: Optional[datetime] = None
        total_records = 0
        has_failures = False
        has_partial = False

        for checkpoint in checkpoints:
            objects.append(checkpoint.object_type)
            total_records += checkpoint.record_count

            if last_sync is None or checkpoint.last_sync_time > last_sync:
                last_sync = checkpoint.last_sync_time

            if checkpoint.status is CheckpointStatus.FAILED:
                has_failures = True
            elif checkpoint.status is CheckpointStatus.PARTIAL:
                has_partial = True

        if has_failures:
            status = "failed"
        elif has_partial:
            status = "partial"
        else:
            status = "healthy"

        return cls(
            objects=objects,
            last_sync=last_sync,
            total_records=total_records,
            status=status,
        )
