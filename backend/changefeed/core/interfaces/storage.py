"""
Checkpoint Store and Event Sink Interfaces.
Collaborators of the sync engine, injected at construction time.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from changefeed.models.sync import ExtractedEvent, SyncCheckpoint


class CheckpointStore(ABC):
    """
    Key-value persistence of one SyncCheckpoint per object type.

    Only atomic single-key writes are required. Concurrent writers for the
    same object type are not supported; the orchestrator serializes syncs
    per type.
    """

    @abstractmethod
    async def get(self, object_type: str) -> Optional[SyncCheckpoint]:
        """Returns the checkpoint for an object type, or None if never synced."""
        pass

    @abstractmethod
    async def set(self, checkpoint: SyncCheckpoint) -> None:
        """Stores a checkpoint, replacing any previous one for its object type."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Removes all checkpoints (next sync starts from epoch)."""
        pass

    @abstractmethod
    async def get_all(self) -> List[SyncCheckpoint]:
        """Returns every stored checkpoint, ordered by object type."""
        pass


class EventSink(ABC):
    """
    Downstream consumer of extracted events.

    Delivery is at-least-once: a page-level failure can redeliver events, so
    implementations MUST be idempotent on (objectType, targetId, timestamp).
    """

    @abstractmethod
    async def emit(self, events: List[ExtractedEvent]) -> None:
        """Delivers a batch of events."""
        pass

    async def close(self) -> None:
        return None
