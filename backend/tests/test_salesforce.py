"""
Tests for the Salesforce integration.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from changefeed.integrations.salesforce.adapter import SalesforceSourceAdapter, build_soql
from changefeed.integrations.salesforce.client import (
    SalesforceAPIError,
    SalesforceClient,
    SalesforceRateLimitError,
)
from changefeed.integrations.salesforce.provider import SalesforceCRMProvider
from changefeed.models.sync import MoreHint, PageQuery
from changefeed.services.crm_sync import IncrementalSyncOrchestrator
from changefeed.utils.timestamps import EPOCH

from fakes import ACCOUNT_CONFIG, at, sf_record

INSTANCE = "https://acme.my.salesforce.com"
API = "/services/data/v59.0"


def make_client(handler, **kwargs) -> SalesforceClient:
    kwargs.setdefault("retry_wait_seconds", 0)
    return SalesforceClient(
        instance_url=INSTANCE,
        access_token="token-123",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def page_spec(**overrides) -> PageQuery:
    values = dict(
        object_type="Account",
        fields=("Id", "Name", "SystemModstamp"),
        date_field="SystemModstamp",
        order_field="SystemModstamp",
        start_time=at(0),
        limit=2,
    )
    values.update(overrides)
    return PageQuery(**values)


class TestBuildSoql:
    """Tests for the incremental SOQL text."""

    def test_basic_query(self):
        assert build_soql(page_spec(fields=("Id", "Name"))) == (
            "SELECT Id, Name FROM Account "
            "WHERE SystemModstamp > 2024-01-01T00:00:00.000Z "
            "ORDER BY SystemModstamp ASC LIMIT 2"
        )

    def test_additional_filters_are_parenthesized(self):
        soql = build_soql(page_spec(additional_filters="Type = 'Customer' OR Type = 'Partner'"))

        assert "WHERE SystemModstamp > 2024-01-01T00:00:00.000Z AND (Type = 'Customer' OR Type = 'Partner')" in soql

    def test_bulk_query_has_no_limit(self):
        assert "LIMIT" not in build_soql(page_spec(), with_limit=False)

    def test_epoch_start(self):
        assert "SystemModstamp > 1970-01-01T00:00:00.000Z" in build_soql(page_spec(start_time=EPOCH))


@pytest.mark.asyncio
class TestSalesforceClient:
    """Tests for transport, retries and error mapping."""

    async def test_bearer_auth_and_query_params(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"totalSize": 0, "done": True, "records": []})

        client = make_client(handler)
        await client.query("SELECT Id FROM Account")

        assert seen[0].headers["Authorization"] == "Bearer token-123"
        assert seen[0].url.path == f"{API}/query"
        assert seen[0].url.params["q"] == "SELECT Id FROM Account"
        await client.close()

    async def test_rate_limit_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, json=[{"errorCode": "REQUEST_LIMIT_EXCEEDED", "message": "slow down"}])
            return httpx.Response(200, json={"done": True, "records": []})

        client = make_client(handler, max_retries=2)
        result = await client.query("SELECT Id FROM Account")

        assert result["records"] == []
        assert len(calls) == 2

    async def test_rate_limit_raises_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json=[{"errorCode": "REQUEST_LIMIT_EXCEEDED", "message": "slow down"}])

        client = make_client(handler, max_retries=1)

        with pytest.raises(SalesforceRateLimitError) as exc_info:
            await client.query("SELECT Id FROM Account")

        assert len(calls) == 2
        assert exc_info.value.status_code == 429

    async def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json=[{"errorCode": "MALFORMED_QUERY", "message": "unexpected token"}])

        client = make_client(handler, max_retries=3)

        with pytest.raises(SalesforceAPIError) as exc_info:
            await client.query("SELEC Id")

        assert len(calls) == 1
        assert exc_info.value.status_code == 400
        assert "MALFORMED_QUERY" in str(exc_info.value)

    async def test_network_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler, max_retries=1)

        with pytest.raises(SalesforceAPIError) as exc_info:
            await client.query("SELECT Id FROM Account")

        assert len(calls) == 2
        assert exc_info.value.status_code is None

    async def test_malformed_json_raises(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(SalesforceAPIError, match="Malformed JSON"):
            await client.query("SELECT Id FROM Account")

    async def test_bulk_results_parse_csv_and_locator(self):
        csv_body = "Id,Name,IsDeleted\n001A,Acme,false\n001B,,true\n"

        def handler(request):
            assert request.headers["Accept"] == "text/csv"
            assert request.url.params["maxRecords"] == "50"
            return httpx.Response(
                200,
                text=csv_body,
                headers={"Sforce-Locator": "null", "Sforce-NumberOfRecords": "2"},
            )

        client = make_client(handler)
        chunk = await client.get_query_results("750J", max_records=50)

        assert chunk.records == [
            {"Id": "001A", "Name": "Acme", "IsDeleted": "false"},
            {"Id": "001B", "Name": None, "IsDeleted": "true"},
        ]
        assert chunk.locator is None
        assert chunk.number_of_records == 2

    async def test_failed_bulk_job_raises(self):
        client = make_client(
            lambda request: httpx.Response(200, json={"id": "750J", "state": "Failed", "errorMessage": "bad field"})
        )

        with pytest.raises(SalesforceAPIError, match="bad field"):
            await client.wait_for_query_job("750J", poll_interval=0)


@pytest.mark.asyncio
class TestSalesforceSourceAdapter:
    """Tests for SOQL and bulk pagination."""

    async def test_soql_page(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "totalSize": 2,
                "done": True,
                "records": [sf_record("001A", 10), sf_record("001B", 20)],
            })

        adapter = SalesforceSourceAdapter(make_client(handler))
        page = await adapter.query(page_spec())

        assert [r["Id"] for r in page.records] == ["001A", "001B"]
        assert page.more_hint is MoreHint.UNKNOWN
        assert page.total_hint == 2
        assert seen[0].url.params["q"] == build_soql(page_spec())

    async def test_include_deleted_uses_query_all(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(200, json={"done": True, "records": []})

        adapter = SalesforceSourceAdapter(make_client(handler))
        await adapter.query(page_spec(include_deleted=True))

        assert seen == [f"{API}/queryAll"]

    async def test_follows_next_records_url_within_page(self):
        def handler(request):
            if request.url.path.endswith("/query"):
                return httpx.Response(200, json={
                    "done": False,
                    "nextRecordsUrl": f"{API}/query/01gX-1",
                    "records": [sf_record("001A", 10)],
                })
            assert request.url.path == f"{API}/query/01gX-1"
            return httpx.Response(200, json={"done": True, "records": [sf_record("001B", 20)]})

        adapter = SalesforceSourceAdapter(make_client(handler))
        page = await adapter.query(page_spec())

        assert [r["Id"] for r in page.records] == ["001A", "001B"]

    async def test_missing_records_array_raises(self):
        adapter = SalesforceSourceAdapter(
            make_client(lambda request: httpx.Response(200, json={"done": True}))
        )

        with pytest.raises(SalesforceAPIError, match="no records array"):
            await adapter.query(page_spec())

    async def test_bulk_job_is_read_chunk_by_chunk(self):
        created_jobs = []

        def handler(request):
            path = request.url.path
            if request.method == "POST":
                body = json.loads(request.content)
                created_jobs.append(body)
                return httpx.Response(200, json={"id": "750J", "state": "UploadComplete"})
            if path.endswith("/results"):
                if request.url.params.get("locator") == "LOC1":
                    return httpx.Response(
                        200,
                        text="Id,SystemModstamp\n001C,2024-01-01T00:30:00.000+0000\n",
                        headers={"Sforce-Locator": "null"},
                    )
                return httpx.Response(
                    200,
                    text=(
                        "Id,SystemModstamp\n"
                        "001A,2024-01-01T00:10:00.000+0000\n"
                        "001B,2024-01-01T00:20:00.000+0000\n"
                    ),
                    headers={"Sforce-Locator": "LOC1", "Sforce-NumberOfRecords": "2"},
                )
            return httpx.Response(200, json={"id": "750J", "state": "JobComplete"})

        adapter = SalesforceSourceAdapter(make_client(handler), bulk_poll_interval=0)

        first = await adapter.query(page_spec(use_bulk_api=True, start_time=EPOCH))
        second = await adapter.query(page_spec(use_bulk_api=True, start_time=at(20)))

        assert [r["Id"] for r in first.records] == ["001A", "001B"]
        assert first.more_hint is MoreHint.DEFINITELY_MORE
        # The locator stays inside the adapter; the caller resumes by watermark
        assert first.next_cursor is None
        assert [r["Id"] for r in second.records] == ["001C"]
        assert second.more_hint is MoreHint.DEFINITELY_DONE
        assert len(created_jobs) == 1
        assert created_jobs[0]["operation"] == "query"
        assert "LIMIT" not in created_jobs[0]["query"]

    async def test_bulk_job_discarded_when_resume_point_moves(self):
        created_jobs = []

        def handler(request):
            if request.method == "POST":
                created_jobs.append(json.loads(request.content))
                return httpx.Response(200, json={"id": f"750J{len(created_jobs)}"})
            if request.url.path.endswith("/results"):
                return httpx.Response(
                    200,
                    text="Id,SystemModstamp\n001A,2024-01-01T00:10:00.000+0000\n",
                    headers={"Sforce-Locator": "LOC1"},
                )
            return httpx.Response(200, json={"state": "JobComplete"})

        adapter = SalesforceSourceAdapter(make_client(handler), bulk_poll_interval=0)

        await adapter.query(page_spec(use_bulk_api=True, start_time=EPOCH))
        # A failed page left the caller at the old watermark
        await adapter.query(page_spec(use_bulk_api=True, start_time=EPOCH, include_deleted=True))

        assert len(created_jobs) == 2
        assert created_jobs[1]["operation"] == "queryAll"


@pytest.mark.asyncio
class TestSalesforceCRMProvider:
    """Tests for the provider bundle and replication endpoints."""

    def make_provider(self, handler) -> SalesforceCRMProvider:
        return SalesforceCRMProvider(
            instance_url=INSTANCE,
            access_token="token-123",
            client=make_client(handler, max_retries=0),
        )

    async def test_check_connection(self):
        def handler(request):
            assert request.url.path == "/services/oauth2/userinfo"
            return httpx.Response(200, json={"organization_id": "00D1"})

        assert await self.make_provider(handler).check_connection() is True

    async def test_check_connection_rejected_token(self):
        provider = self.make_provider(
            lambda request: httpx.Response(401, json=[{"errorCode": "INVALID_SESSION_ID", "message": "expired"}])
        )

        assert await provider.check_connection() is False

    async def test_get_deleted_events(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "deletedRecords": [
                    {"id": "001A", "deletedDate": "2024-01-01T00:15:00.000+0000"},
                    {"id": "001B", "deletedDate": None},
                ],
            })

        events = await self.make_provider(handler).get_deleted_events("Account", at(0), at(60), "org_1")

        assert seen[0].url.path == f"{API}/sobjects/Account/deleted/"
        assert seen[0].url.params["start"] == "2024-01-01T00:00:00.000Z"
        assert seen[0].url.params["end"] == "2024-01-01T01:00:00.000Z"
        assert len(events) == 1
        assert events[0].type == "crm.account.deleted"
        assert events[0].timestamp == at(15)
        assert events[0].metadata["isDeleted"] is True

    async def test_get_deleted_events_swallows_api_errors(self):
        provider = self.make_provider(lambda request: httpx.Response(500, text="oops"))

        assert await provider.get_deleted_events("Account", at(0), at(60), "org_1") == []

    async def test_get_updated_record_ids(self):
        provider = self.make_provider(
            lambda request: httpx.Response(200, json={"ids": ["001A", "001B"]})
        )

        assert await provider.get_updated_record_ids("Account", at(0), at(60)) == ["001A", "001B"]

    async def test_orchestrated_sync_over_soql(self):
        queries = []

        def handler(request):
            queries.append(request.url.params["q"])
            if "2024-01-01T00:20:00.000Z" in queries[-1]:
                return httpx.Response(200, json={"done": True, "records": [sf_record("001C", 30)]})
            return httpx.Response(200, json={
                "done": True,
                "records": [sf_record("001A", 10), sf_record("001B", 20)],
            })

        provider = self.make_provider(handler)
        orchestrator = IncrementalSyncOrchestrator(
            adapter=provider.get_adapter(),
            classifier=provider.get_classifier(),
            configs={"Account": ACCOUNT_CONFIG},
            organization_id="org_1",
        )

        result = await orchestrator.sync_all(object_types=["Account"])

        assert [e.target_id for e in result.events] == ["001A", "001B", "001C"]
        assert result.checkpoints["Account"].last_sync_time == at(30)
        assert len(queries) == 2
        await provider.close()
