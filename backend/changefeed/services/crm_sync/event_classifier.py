"""
Event Classifier for CRM Records.

Turns one raw record into an ExtractedEvent:
- removal flag (IsDeleted / archived) wins over everything else
- otherwise a pluggable lifecycle predicate decides created vs. updated
- metadata carries the full sanitized payload plus provenance

The default lifecycle predicate is a timestamp heuristic: a record whose
modification time is within 60 seconds of its creation time is "created".
It misclassifies fast manual edits as creations and delayed first syncs
as updates. Sources with a real change log should plug in their own.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from changefeed.models.sync import ExtractedEvent, ObjectSyncConfig, RecordOutcome
from changefeed.services.crm_sync.property_sanitizer import PropertySanitizer
from changefeed.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)

CREATION_WINDOW = timedelta(seconds=60)

LifecyclePredicate = Callable[[Dict[str, Any], ObjectSyncConfig], RecordOutcome]


def classify_lifecycle_by_window(
    modified: datetime,
    created: Optional[datetime],
    window: timedelta = CREATION_WINDOW,
) -> RecordOutcome:
    """
    Creation-vs-update heuristic.

    Args:
        modified: Record watermark (modification time)
        created: Record creation time, None when the source omits it
        window: Maximum distance for a record to still count as new

    Returns:
        RecordOutcome.CREATED or RecordOutcome.UPDATED
    """
    if created is None:
        return RecordOutcome.UPDATED
    if abs(modified - created) < window:
        return RecordOutcome.CREATED
    return RecordOutcome.UPDATED


def outcome_of(event: ExtractedEvent) -> RecordOutcome:
    """Reads the lifecycle kind back from an event type (crm.<entity>.<kind>)."""
    return RecordOutcome(event.type.rsplit(".", 1)[-1])


class EventClassifier(ABC):
    """
    Base classifier. Subclasses describe where a source keeps ids,
    timestamps, removal flags and owners; classify() is shared.

    classify() is a pure function of (record, config, organization_id):
    it never reads the wall clock.
    """

    source: str = "crm"
    removal_flag_key: str = "isDeleted"

    def __init__(
        self,
        lifecycle: Optional[LifecyclePredicate] = None,
        creation_window: timedelta = CREATION_WINDOW,
        sanitizer: Optional[PropertySanitizer] = None,
    ):
        """
        Initialize classifier.

        Args:
            lifecycle: Replacement for the timestamp heuristic
            creation_window: Window used by the default heuristic
            sanitizer: Payload sanitizer (defaults per source)
        """
        self._lifecycle = lifecycle
        self.creation_window = creation_window
        self.sanitizer = sanitizer or self.default_sanitizer()

    # ------------------------------------------------------------------
    # Source-specific accessors
    # ------------------------------------------------------------------

    def default_sanitizer(self) -> PropertySanitizer:
        return PropertySanitizer()

    @abstractmethod
    def get_record_id(self, record: Dict[str, Any], config: ObjectSyncConfig) -> str:
        pass

    @abstractmethod
    def get_watermark(self, record: Dict[str, Any], config: ObjectSyncConfig) -> datetime:
        pass

    @abstractmethod
    def get_created_time(self, record: Dict[str, Any], config: ObjectSyncConfig) -> Optional[datetime]:
        pass

    @abstractmethod
    def get_removal(self, record: Dict[str, Any], config: ObjectSyncConfig) -> Optional[RecordOutcome]:
        """Returns DELETED/ARCHIVED when the record's removal flag is set."""
        pass

    @abstractmethod
    def get_actor_id(self, record: Dict[str, Any], config: ObjectSyncConfig) -> Optional[str]:
        pass

    @abstractmethod
    def get_payload(self, record: Dict[str, Any], config: ObjectSyncConfig) -> Dict[str, Any]:
        pass

    def get_entity(self, record: Dict[str, Any], config: ObjectSyncConfig) -> str:
        """Event namespace for a record; subclasses alias special subtypes."""
        return config.event_namespace

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify_lifecycle(self, record: Dict[str, Any], config: ObjectSyncConfig) -> RecordOutcome:
        """Created vs. updated for a record that is not removed."""
        if self._lifecycle is not None:
            return self._lifecycle(record, config)
        return classify_lifecycle_by_window(
            self.get_watermark(record, config),
            self.get_created_time(record, config),
            self.creation_window,
        )

    def classify(
        self,
        record: Dict[str, Any],
        config: ObjectSyncConfig,
        organization_id: str,
    ) -> ExtractedEvent:
        """
        Classify one raw record.

        Args:
            record: Raw record as returned by the adapter
            config: Sync config of the record's object type
            organization_id: Tenant id for provenance

        Returns:
            ExtractedEvent of type crm.<entity>.<created|updated|deleted|archived>

        Raises:
            ValueError, KeyError, TypeError: On malformed records. The
            orchestrator counts these as record-level errors.
        """
        if not isinstance(record, dict):
            raise TypeError(f"Record must be a mapping, got {type(record).__name__}")

        record_id = self.get_record_id(record, config)
        timestamp = self.get_watermark(record, config)
        removal = self.get_removal(record, config)
        kind = removal or self.classify_lifecycle(record, config)

        metadata = self.get_payload(record, config)
        metadata.update({
            "source": self.source,
            "organizationId": organization_id,
            "objectType": config.object_type,
            "recordId": record_id,
            self.removal_flag_key: removal is not None,
        })

        return ExtractedEvent(
            type=f"crm.{self.get_entity(record, config)}.{kind.value}",
            timestamp=timestamp,
            actor_id=self.get_actor_id(record, config),
            target_id=record_id,
            metadata=metadata,
        )


def _is_true(value: Any) -> bool:
    # Bulk exports deliver booleans as "true"/"false" strings
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


class SalesforceEventClassifier(EventClassifier):
    """Classifier for flat SOQL records (Id, CreatedDate, SystemModstamp, IsDeleted)."""

    source = "salesforce"
    removal_flag_key = "isDeleted"

    def default_sanitizer(self) -> PropertySanitizer:
        return PropertySanitizer(internal_keys={"attributes"})

    def get_record_id(self, record, config):
        record_id = record.get(config.id_field)
        if not record_id:
            raise ValueError(f"Record has no {config.id_field}")
        return str(record_id)

    def get_watermark(self, record, config):
        return parse_timestamp(record.get(config.date_field) or record.get("LastModifiedDate"))

    def get_created_time(self, record, config):
        created = record.get(config.created_field)
        return parse_timestamp(created) if created else None

    def get_removal(self, record, config):
        if _is_true(record.get(config.deleted_field)):
            return RecordOutcome.DELETED
        return None

    def get_actor_id(self, record, config):
        if not config.owner_field:
            return None
        return record.get(config.owner_field) or None

    def get_payload(self, record, config):
        return self.sanitizer.sanitize(record)

    def get_entity(self, record, config):
        # Tasks logged as calls surface as crm.call.*
        if config.object_type == "Task" and (
            record.get("TaskSubtype") == "Call" or record.get("CallType")
        ):
            return "call"
        return config.event_namespace


class HubSpotEventClassifier(EventClassifier):
    """Classifier for CRM v3 objects ({id, properties, createdAt, updatedAt, archived})."""

    source = "hubspot"
    removal_flag_key = "isArchived"

    def default_sanitizer(self) -> PropertySanitizer:
        return PropertySanitizer(drop_none=True)

    def _properties(self, record) -> Dict[str, Any]:
        properties = record.get("properties") or {}
        if not isinstance(properties, dict):
            raise TypeError(f"properties must be a mapping, got {type(properties).__name__}")
        return properties

    def get_record_id(self, record, config):
        record_id = record.get(config.id_field)
        if not record_id:
            raise ValueError(f"Record has no {config.id_field}")
        return str(record_id)

    def get_watermark(self, record, config):
        return parse_timestamp(
            record.get("updatedAt") or self._properties(record).get(config.date_field)
        )

    def get_created_time(self, record, config):
        created = record.get("createdAt") or self._properties(record).get(config.created_field)
        return parse_timestamp(created) if created else None

    def get_removal(self, record, config):
        if _is_true(record.get(config.deleted_field)):
            return RecordOutcome.ARCHIVED
        return None

    def get_actor_id(self, record, config):
        if not config.owner_field:
            return None
        return self._properties(record).get(config.owner_field) or None

    def get_payload(self, record, config):
        payload = self.sanitizer.sanitize(self._properties(record))
        payload["createdAt"] = record.get("createdAt")
        payload["updatedAt"] = record.get("updatedAt")
        return payload
