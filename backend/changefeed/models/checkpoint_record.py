"""
SyncCheckpointRecord model - durable storage for sync checkpoints.

One row per object type. The row is overwritten by each successful
sync pass for that type (last writer wins, single-row atomic upsert).
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from changefeed.db.base import Base
from changefeed.models.sync import CheckpointStatus, SyncCheckpoint


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on read-back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SyncCheckpointRecord(Base):
    """
    SQLAlchemy model for persisted sync checkpoints.

    last_sync_time is the watermark used to resume, or cursor_time plus
    cursor while an offset-token page chain is open. Every other column
    is diagnostic.
    """

    __tablename__ = "sync_checkpoints"

    object_type: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="CRM object type, unique per source",
    )

    last_sync_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Maximum watermark processed so far",
    )

    last_record_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )

    record_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    status: Mapped[CheckpointStatus] = mapped_column(
        Enum(CheckpointStatus, name="checkpoint_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CheckpointStatus.SUCCESS,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    cursor: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Offset token of an unfinished page chain",
    )

    cursor_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="start_time the cursor is relative to",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def to_checkpoint(self) -> SyncCheckpoint:
        """Convert the row into an immutable checkpoint."""
        last_sync_time = _as_utc(self.last_sync_time)
        cursor_time = _as_utc(self.cursor_time) if self.cursor_time is not None else None

        return SyncCheckpoint(
            object_type=self.object_type,
            last_sync_time=last_sync_time,
            last_record_id=self.last_record_id,
            record_count=self.record_count,
            status=CheckpointStatus(self.status),
            error_message=self.error_message,
            cursor=self.cursor,
            cursor_time=cursor_time,
        )

    def apply(self, checkpoint: SyncCheckpoint) -> None:
        """Overwrite this row with the given checkpoint."""
        self.last_sync_time = checkpoint.last_sync_time
        self.last_record_id = checkpoint.last_record_id
        self.record_count = checkpoint.record_count
        self.status = checkpoint.status
        self.error_message = checkpoint.error_message
        self.cursor = checkpoint.cursor
        self.cursor_time = checkpoint.cursor_time

    def __repr__(self) -> str:
        return f"<SyncCheckpointRecord {self.object_type}: {self.last_sync_time}>"
