"""
Error Tracker for CRM Sync Operations.

Tracks record-level and page-level errors during a sync with context
for debugging.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


@dataclass
class RecordError:
    """Details about a record that failed classification."""
    object_type: str
    record_id: str
    error: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PageError:
    """Details about a page fetch that failed."""
    object_type: str
    error: str
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorSummary:
    """Summary of all errors during a sync."""
    record_errors: List[RecordError]
    page_errors: List[PageError]
    total_record_errors: int
    total_page_errors: int

    def get_error_messages(self, limit: int = 15) -> List[str]:
        """
        Get formatted error messages for API responses.

        Page errors come first since they stop an object type entirely.

        Args:
            limit: Maximum number of error messages to return

        Returns:
            List of formatted error messages
        """
        messages = [f"{err.object_type} page: {err.error}" for err in self.page_errors]

        remaining = limit - len(messages)
        for err in self.record_errors[:max(remaining, 0)]:
            messages.append(f"{err.object_type} {err.record_id}: {err.error}")

        return messages[:limit]


class ErrorTracker:
    """
    Tracks errors during CRM sync operations.

    Record errors are non-fatal (the page continues); page errors abort the
    current sync_object call.
    """

    def __init__(self):
        """Initialize error tracker."""
        self.record_errors: List[RecordError] = []
        self.page_errors: List[PageError] = []

    def track_record_error(
        self,
        object_type: str,
        record_id: str,
        error: Exception,
        context: Dict[str, Any] = None
    ):
        """
        Track a record that could not be classified.

        Args:
            object_type: CRM object type (e.g., "Account", "contacts")
            record_id: Source record id ("unknown" if the id itself is missing)
            error: Exception that occurred
            context: Additional context (e.g., raw field values)
        """
        self.record_errors.append(RecordError(
            object_type=object_type,
            record_id=record_id,
            error=str(error),
            context=context or {}
        ))

        logger.warning(
            f"⚠️ Record error: {object_type} {record_id}: {error}",
            extra={"object_type": object_type, "record_id": record_id}
        )

    def track_page_error(
        self,
        object_type: str,
        error: Exception,
        context: Dict[str, Any] = None
    ):
        """
        Track a failed page fetch.

        Args:
            object_type: CRM object type
            error: Exception raised by the adapter or the sink
            context: Additional context (e.g., watermark the page started at)
        """
        self.page_errors.append(PageError(
            object_type=object_type,
            error=str(error),
            context=context or {}
        ))

        logger.error(
            f"❌ Page error: {object_type}: {error}",
            exc_info=error,
            extra={"object_type": object_type, "context": context}
        )

    def get_summary(self) -> ErrorSummary:
        """
        Get error summary.

        Returns:
            ErrorSummary with all tracked errors
        """
        return ErrorSummary(
            record_errors=list(self.record_errors),
            page_errors=list(self.page_errors),
            total_record_errors=len(self.record_errors),
            total_page_errors=len(self.page_errors)
        )

    def has_errors(self) -> bool:
        """Check if any errors were tracked."""
        return len(self.record_errors) > 0 or len(self.page_errors) > 0

    def clear(self):
        """Clear all tracked errors."""
        self.record_errors.clear()
        self.page_errors.clear()
