"""
CRM Sync Services.

Incremental, checkpointed synchronization of CRM records into an event stream.
"""

from .property_sanitizer import PropertySanitizer
from .error_tracker import ErrorTracker, ErrorSummary
from .event_classifier import (
    EventClassifier,
    HubSpotEventClassifier,
    SalesforceEventClassifier,
    classify_lifecycle_by_window,
)
from .sync_orchestrator import IncrementalSyncOrchestrator

__all__ = [
    "PropertySanitizer",
    "ErrorTracker",
    "ErrorSummary",
    "EventClassifier",
    "HubSpotEventClassifier",
    "SalesforceEventClassifier",
    "classify_lifecycle_by_window",
    "IncrementalSyncOrchestrator",
]
