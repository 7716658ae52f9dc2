"""
Test doubles shared by the sync engine tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from changefeed.core.interfaces.crm import SourceAdapter
from changefeed.core.interfaces.storage import EventSink
from changefeed.integrations.errors import SourceAPIError
from changefeed.services.checkpoint_store import InMemoryCheckpointStore
from changefeed.models.sync import MoreHint, ObjectSyncConfig, PageQuery, PageResult
from changefeed.utils.timestamps import parse_timestamp

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

ACCOUNT_CONFIG = ObjectSyncConfig(
    object_type="Account",
    batch_size=2,
    fields=["Id", "Name", "OwnerId", "IsDeleted", "CreatedDate", "SystemModstamp"],
    date_field="SystemModstamp",
    order_field="SystemModstamp",
)


def at(minutes: int) -> datetime:
    """Watermark `minutes` after BASE_TIME."""
    return BASE_TIME + timedelta(minutes=minutes)


def sf_record(
    record_id: str,
    minutes: int,
    created_minutes: Optional[int] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """
    Salesforce-shaped record with its watermark at at(minutes).

    Created a day earlier unless created_minutes is given, so it
    classifies as an update by default.
    """
    created = at(created_minutes) if created_minutes is not None else at(minutes) - timedelta(days=1)
    record = {
        "attributes": {"type": "Account", "url": f"/services/data/v59.0/sobjects/Account/{record_id}"},
        "Id": record_id,
        "Name": f"Account {record_id}",
        "OwnerId": "005OWNER",
        "IsDeleted": False,
        "CreatedDate": created.strftime("%Y-%m-%dT%H:%M:%S.000+0000"),
        "SystemModstamp": at(minutes).strftime("%Y-%m-%dT%H:%M:%S.000+0000"),
    }
    record.update(extra)
    return record


class ListAdapter(SourceAdapter):
    """
    Serves records from an in-memory list the way a SOQL source would:
    watermark > start_time, ascending, at most `limit` per page.
    """

    def __init__(
        self,
        records: List[Dict[str, Any]],
        date_field: str = "SystemModstamp",
        fail_on_calls: Iterable[int] = (),
        more_hint: MoreHint = MoreHint.UNKNOWN,
    ):
        self.records = records
        self.date_field = date_field
        self.fail_on_calls = set(fail_on_calls)
        self.more_hint = more_hint
        self.calls: List[PageQuery] = []

    def get_provider_name(self) -> str:
        return "fake"

    async def query(self, spec: PageQuery) -> PageResult:
        self.calls.append(spec)
        if len(self.calls) in self.fail_on_calls:
            raise SourceAPIError("Salesforce API error: 503 - SERVER_UNAVAILABLE", status_code=503)

        matching = [
            record for record in self.records
            if parse_timestamp(record[self.date_field]) > spec.start_time
        ]
        matching.sort(key=lambda record: parse_timestamp(record[self.date_field]))
        return PageResult(records=matching[:spec.limit], more_hint=self.more_hint)


class FailingSink(EventSink):
    """Sink that rejects every batch."""

    def __init__(self):
        self.attempts = 0

    async def emit(self, events) -> None:
        self.attempts += 1
        raise RuntimeError("sink unavailable")


class OffsetAdapter(ListAdapter):
    """
    Serves records the way an offset-token source does: watermark >
    start_time, ascending, and a numeric cursor into that result set.
    Records sharing a watermark keep their list order.
    """

    async def query(self, spec: PageQuery) -> PageResult:
        self.calls.append(spec)
        if len(self.calls) in self.fail_on_calls:
            raise SourceAPIError("HubSpot API error: 502 - Bad Gateway", status_code=502)

        matching = [
            record for record in self.records
            if parse_timestamp(record[self.date_field]) > spec.start_time
        ]
        matching.sort(key=lambda record: parse_timestamp(record[self.date_field]))

        offset = int(spec.cursor) if spec.cursor else 0
        page = matching[offset:offset + spec.limit]
        end = offset + len(page)
        if end < len(matching):
            return PageResult(records=page, more_hint=MoreHint.DEFINITELY_MORE, next_cursor=str(end))
        return PageResult(records=page, more_hint=MoreHint.DEFINITELY_DONE)


class UnreadableCheckpointStore(InMemoryCheckpointStore):
    """Store whose reads fail for the given object types."""

    def __init__(self, broken: Iterable[str]):
        super().__init__()
        self.broken = set(broken)

    async def get(self, object_type: str):
        if object_type in self.broken:
            raise RuntimeError("db down")
        return await super().get(object_type)
