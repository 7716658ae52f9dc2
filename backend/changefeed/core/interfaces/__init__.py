# Abstract interfaces for sources and sync collaborators
from .crm import CRMSource, SourceAdapter
from .storage import CheckpointStore, EventSink

__all__ = ["CRMSource", "SourceAdapter", "CheckpointStore", "EventSink"]
