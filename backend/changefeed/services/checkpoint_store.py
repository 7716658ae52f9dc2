"""
Checkpoint Store implementations.

- InMemoryCheckpointStore: process-local, lost on restart
- SQLCheckpointStore: one row per object type in sync_checkpoints
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from changefeed.core.interfaces.storage import CheckpointStore
from changefeed.db.base import Base
from changefeed.models.checkpoint_record import SyncCheckpointRecord
from changefeed.models.sync import SyncCheckpoint

logger = logging.getLogger(__name__)


class InMemoryCheckpointStore(CheckpointStore):
    """Dict-backed store. Checkpoints are immutable, so no copying is needed."""

    def __init__(self):
        self._checkpoints: Dict[str, SyncCheckpoint] = {}

    async def get(self, object_type: str) -> Optional[SyncCheckpoint]:
        return self._checkpoints.get(object_type)

    async def set(self, checkpoint: SyncCheckpoint) -> None:
        self._checkpoints[checkpoint.object_type] = checkpoint

    async def clear(self) -> None:
        self._checkpoints.clear()

    async def get_all(self) -> List[SyncCheckpoint]:
        return [self._checkpoints[key] for key in sorted(self._checkpoints)]


class SQLCheckpointStore(CheckpointStore):
    """
    Durable checkpoint store over an async SQLAlchemy session factory.

    Each set() runs in its own transaction, so a write for one object type
    is atomic and independent of every other type.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        """
        Initialize SQL checkpoint store.

        Args:
            session_maker: Session factory (see changefeed.db.session)
        """
        self.session_maker = session_maker

    async def get(self, object_type: str) -> Optional[SyncCheckpoint]:
        async with self.session_maker() as session:
            record = await session.get(SyncCheckpointRecord, object_type)
            return record.to_checkpoint() if record else None

    async def set(self, checkpoint: SyncCheckpoint) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                record = await session.get(SyncCheckpointRecord, checkpoint.object_type)
                if record is None:
                    record = SyncCheckpointRecord(object_type=checkpoint.object_type)
                    session.add(record)
                record.apply(checkpoint)

    async def clear(self) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(delete(SyncCheckpointRecord))
        logger.info(f"🗑️ Deleted {result.rowcount} stored checkpoints")

    async def get_all(self) -> List[SyncCheckpoint]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(SyncCheckpointRecord).order_by(SyncCheckpointRecord.object_type)
            )
            return [record.to_checkpoint() for record in result.scalars()]


async def create_tables(engine: AsyncEngine) -> None:
    """Create the checkpoint table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Checkpoint tables ready")
