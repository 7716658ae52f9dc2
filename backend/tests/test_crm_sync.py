"""
Tests for CRM Sync Services.

Unit tests for the sync building blocks and the shared data model.
"""

from datetime import datetime, timezone

import pytest

from changefeed.models.sync import (
    CheckpointStatus,
    MoreHint,
    ObjectSyncConfig,
    PageQuery,
    PageResult,
    RecordOutcome,
    RunStats,
    SyncCheckpoint,
    SyncStatusSummary,
)
from changefeed.services.crm_sync import ErrorTracker, PropertySanitizer
from changefeed.utils.timestamps import (
    EPOCH,
    format_soql_datetime,
    parse_timestamp,
    to_epoch_millis,
)

from fakes import at


class TestPropertySanitizer:
    """Tests for PropertySanitizer."""

    def test_internal_keys_dropped_at_every_level(self):
        """Test that the Salesforce envelope is removed, including on lookups."""
        sanitizer = PropertySanitizer(internal_keys={"attributes"})
        props = {
            "attributes": {"type": "Account"},
            "Id": "001",
            "Owner": {"attributes": {"type": "User"}, "Name": "Jane Doe"},
        }

        result = sanitizer.sanitize(props)

        assert result == {"Id": "001", "Owner": {"Name": "Jane Doe"}}

    def test_sanitize_primitive(self):
        """Test that primitives pass through unchanged."""
        sanitizer = PropertySanitizer()
        props = {"name": "Test", "amount": 1000, "active": True}

        result = sanitizer.sanitize(props)

        assert result == props

    def test_none_values_kept_by_default(self):
        """Test that None values survive unless drop_none is set."""
        props = {"name": "Test", "email": None}

        assert PropertySanitizer().sanitize(props) == {"name": "Test", "email": None}
        assert PropertySanitizer(drop_none=True).sanitize(props) == {"name": "Test"}

    def test_dangerous_keys_blocked(self):
        """Test prototype pollution keys never reach event metadata."""
        sanitizer = PropertySanitizer()
        props = {"__proto__": {"admin": True}, "constructor": "x", "name": "ok"}

        result = sanitizer.sanitize(props)

        assert result == {"name": "ok"}

    def test_unknown_types_stringified(self):
        """Test that non-JSON values are converted to strings."""
        sanitizer = PropertySanitizer()
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)

        result = sanitizer.sanitize({"when": when, "tags": ["a", None]})

        assert result["when"] == str(when)
        assert result["tags"] == ["a", None]

    def test_sanitize_empty(self):
        """Test that None payloads become empty dicts."""
        assert PropertySanitizer().sanitize(None) == {}


class TestErrorTracker:
    """Tests for ErrorTracker."""

    def test_track_record_error(self):
        """Test tracking record errors."""
        tracker = ErrorTracker()

        tracker.track_record_error("Account", "001", ValueError("Record has no Id"))

        summary = tracker.get_summary()
        assert summary.total_record_errors == 1
        assert summary.record_errors[0].record_id == "001"
        assert summary.record_errors[0].object_type == "Account"

    def test_track_page_error(self):
        """Test tracking page errors."""
        tracker = ErrorTracker()

        tracker.track_page_error("Account", Exception("503"), context={"start_time": "x"})

        summary = tracker.get_summary()
        assert summary.total_page_errors == 1
        assert summary.page_errors[0].context == {"start_time": "x"}

    def test_page_errors_listed_first(self):
        """Test message ordering and limit."""
        tracker = ErrorTracker()
        for i in range(20):
            tracker.track_record_error("Account", str(i), Exception("bad"))
        tracker.track_page_error("Account", Exception("down"))

        messages = tracker.get_summary().get_error_messages(limit=5)

        assert len(messages) == 5
        assert messages[0] == "Account page: down"
        assert messages[1] == "Account 0: bad"

    def test_has_errors_and_clear(self):
        """Test error detection and clearing."""
        tracker = ErrorTracker()

        assert not tracker.has_errors()

        tracker.track_record_error("Account", "001", Exception("Test"))
        assert tracker.has_errors()

        tracker.clear()
        assert not tracker.has_errors()


class TestRunStats:
    """Tests for outcome tallies and status derivation."""

    def test_from_outcomes(self):
        stats = RunStats.from_outcomes([
            RecordOutcome.CREATED,
            RecordOutcome.UPDATED,
            RecordOutcome.UPDATED,
            RecordOutcome.DELETED,
            RecordOutcome.ARCHIVED,
            RecordOutcome.ERROR,
        ])

        assert stats.to_dict() == {
            "processed": 6,
            "created": 1,
            "updated": 2,
            "deleted": 1,
            "archived": 1,
            "errors": 1,
        }

    def test_addition(self):
        total = RunStats(processed=2, created=2) + RunStats(processed=1, errors=1)

        assert total.processed == 3
        assert total.created == 2
        assert total.errors == 1

    @pytest.mark.parametrize(
        "processed,errors,expected",
        [
            (0, 0, CheckpointStatus.SUCCESS),
            (5, 0, CheckpointStatus.SUCCESS),
            (5, 2, CheckpointStatus.PARTIAL),
            (5, 5, CheckpointStatus.FAILED),
        ],
    )
    def test_derive_status(self, processed, errors, expected):
        assert RunStats(processed=processed, errors=errors).derive_status() is expected


class TestPageContract:
    """Tests for PageQuery / PageResult."""

    def test_unknown_hint_uses_page_fill(self):
        page = PageResult(records=[{}, {}])

        assert page.has_more(2) is True
        assert page.has_more(3) is False

    def test_from_config_copies_query_fields(self):
        config = ObjectSyncConfig(
            object_type="Lead",
            batch_size=100,
            fields=["Id", "SystemModstamp"],
            date_field="SystemModstamp",
            order_field="SystemModstamp",
            additional_filters="IsConverted = false",
            use_bulk_api=True,
        )

        spec = PageQuery.from_config(config, EPOCH, 50, include_deleted=True)

        assert spec.fields == ("Id", "SystemModstamp")
        assert spec.limit == 50
        assert spec.additional_filters == "IsConverted = false"
        assert spec.include_deleted is True
        assert spec.use_bulk_api is True
        assert spec.cursor is None

    def test_definite_hints(self):
        assert PageResult(records=[], more_hint=MoreHint.DEFINITELY_MORE).has_more(10) is True
        assert PageResult(records=[{}] * 10, more_hint=MoreHint.DEFINITELY_DONE).has_more(10) is False


class TestSyncStatusSummary:
    """Tests for the checkpoint roll-up."""

    def test_empty_is_healthy(self):
        summary = SyncStatusSummary.from_checkpoints([])

        assert summary.objects == []
        assert summary.last_sync is None
        assert summary.total_records == 0
        assert summary.status == "healthy"

    def test_failed_wins_over_partial(self):
        later = datetime(2024, 2, 1, tzinfo=timezone.utc)
        summary = SyncStatusSummary.from_checkpoints([
            SyncCheckpoint(object_type="Account", record_count=4, status=CheckpointStatus.PARTIAL),
            SyncCheckpoint(object_type="Lead", last_sync_time=later, status=CheckpointStatus.FAILED),
        ])

        assert summary.status == "failed"
        assert summary.total_records == 4
        assert summary.last_sync == later

    def test_checkpoint_to_dict(self):
        checkpoint = SyncCheckpoint(object_type="Account", last_record_id="001", record_count=2)

        assert checkpoint.to_dict() == {
            "object_type": "Account",
            "last_sync_time": "1970-01-01T00:00:00+00:00",
            "last_record_id": "001",
            "record_count": 2,
            "status": "success",
            "error_message": None,
            "cursor": None,
            "cursor_time": None,
        }

    def test_resume_point_prefers_open_cursor(self):
        plain = SyncCheckpoint(object_type="contacts", last_sync_time=at(30))
        open_chain = SyncCheckpoint(
            object_type="contacts", last_sync_time=at(30), cursor="100", cursor_time=at(5)
        )

        assert plain.resume_point() == (at(30), None)
        assert open_chain.resume_point() == (at(5), "100")


class TestTimestamps:
    """Tests for watermark parsing and formatting."""

    @pytest.mark.parametrize(
        "raw",
        [
            "2024-01-05T10:00:00.000+0000",
            "2024-01-05T10:00:00Z",
            "2024-01-05T11:00:00+01:00",
            1704448800000,
            "1704448800000",
        ],
    )
    def test_parse_shapes(self, raw):
        assert parse_timestamp(raw) == datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)

    def test_naive_datetime_taken_as_utc(self):
        assert parse_timestamp(datetime(2024, 1, 5)).tzinfo is not None

    def test_format_soql_datetime(self):
        value = datetime(2024, 1, 5, 10, 0, 0, 123456, tzinfo=timezone.utc)

        assert format_soql_datetime(value) == "2024-01-05T10:00:00.123Z"

    def test_to_epoch_millis(self):
        assert to_epoch_millis(datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)) == 1704448800000
        assert to_epoch_millis(EPOCH) == 0
