# Business logic services
from .checkpoint_store import InMemoryCheckpointStore, SQLCheckpointStore
from .event_sink import EventSinkError, InMemoryEventSink, WebhookEventSink

__all__ = [
    "InMemoryCheckpointStore",
    "SQLCheckpointStore",
    "EventSinkError",
    "InMemoryEventSink",
    "WebhookEventSink",
]
