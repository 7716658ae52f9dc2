"""
Salesforce REST API Client.
Handles bearer authentication, SOQL queries, Bulk API 2.0 query jobs and
the replication (getDeleted / getUpdated) endpoints.
"""

import asyncio
import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from changefeed.integrations.errors import SourceAPIError, SourceRateLimitError, is_retryable
from changefeed.utils.timestamps import format_soql_datetime

logger = logging.getLogger(__name__)


class SalesforceAPIError(SourceAPIError):
    """Raised when Salesforce API returns an error."""
    pass


class SalesforceRateLimitError(SalesforceAPIError, SourceRateLimitError):
    """Raised when Salesforce answers 429 (REQUEST_LIMIT_EXCEEDED)."""
    pass


@dataclass
class BulkQueryPage:
    """One chunk of Bulk API 2.0 query results."""
    records: List[Dict[str, Any]]
    locator: Optional[str]
    number_of_records: int


class SalesforceClient:
    """
    Salesforce REST API Client.

    Expects a ready access token (token exchange and refresh happen
    elsewhere). Transient failures (network, 429, 5xx) are retried with
    exponential backoff; everything else raises SalesforceAPIError.
    """

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = "v59.0",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Salesforce client.

        Args:
            instance_url: Org instance URL (e.g., https://acme.my.salesforce.com)
            access_token: OAuth access token
            api_version: REST API version
            timeout: HTTP request timeout in seconds
            max_retries: Retries after the first attempt for transient errors
            retry_wait_seconds: Backoff multiplier (0 disables waiting)
            transport: Custom httpx transport (tests)
        """
        self.instance_url = instance_url.rstrip("/")
        self.api_version = api_version
        self.base_url = f"{self.instance_url}/services/data/{api_version}"

        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

        self._send = retry(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(multiplier=retry_wait_seconds, max=30),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._send_once)

        logger.info(f"SalesforceClient initialized (instance: {self.instance_url}, api: {api_version})")

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        # nextRecordsUrl comes back as an absolute path
        if endpoint.startswith("/services/"):
            return f"{self.instance_url}{endpoint}"
        return f"{self.base_url}{endpoint}"

    async def _send_once(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method=method,
                url=self._url(endpoint),
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.RequestError as e:
            raise SalesforceAPIError(f"Network error: {e}") from e

        if response.status_code >= 400:
            error_msg = f"Salesforce API error: {response.status_code} - {self._error_detail(response)}"
            logger.error(error_msg)
            if response.status_code == 429:
                raise SalesforceRateLimitError(error_msg, status_code=429)
            raise SalesforceAPIError(error_msg, status_code=response.status_code)

        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        # Salesforce errors are a list of {"message", "errorCode"}
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, list) and body and isinstance(body[0], dict):
            first = body[0]
            return f"{first.get('errorCode', 'ERROR')}: {first.get('message', '')}"
        return response.text

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Makes an authenticated JSON request to the Salesforce REST API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path below /services/data/<version> (e.g., "/query"),
                an absolute /services/... path, or a full URL
            params: Query parameters
            json: JSON body for POST/PATCH

        Returns:
            API response as dictionary

        Raises:
            SalesforceAPIError: If API returns an error
        """
        response = await self._send(method, endpoint, params=params, json=json)

        if not response.text or response.text.strip() == "":
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise SalesforceAPIError(f"Malformed JSON response from {endpoint}: {e}") from e

    # ------------------------------------------------------------------
    # SOQL
    # ------------------------------------------------------------------

    async def query(self, soql: str) -> Dict[str, Any]:
        """Execute SOQL query. Returns {totalSize, done, records, nextRecordsUrl?}."""
        logger.debug(f"SOQL: {soql}")
        return await self.request("GET", "/query", params={"q": soql})

    async def query_all(self, soql: str) -> Dict[str, Any]:
        """Execute SOQL via queryAll, which includes deleted and archived rows."""
        logger.debug(f"SOQL (queryAll): {soql}")
        return await self.request("GET", "/queryAll", params={"q": soql})

    async def query_more(self, next_records_url: str) -> Dict[str, Any]:
        """Get next batch of a query result."""
        return await self.request("GET", next_records_url)

    # ------------------------------------------------------------------
    # Bulk API 2.0
    # ------------------------------------------------------------------

    async def create_query_job(self, soql: str, include_deleted: bool = False) -> Dict[str, Any]:
        """
        Create a Bulk API 2.0 query job.

        Returns:
            Job info, including "id" and "state"
        """
        logger.debug(f"Bulk SOQL: {soql}")
        return await self.request(
            "POST",
            "/jobs/query",
            json={
                "operation": "queryAll" if include_deleted else "query",
                "query": soql,
                "contentType": "CSV",
                "columnDelimiter": "COMMA",
                "lineEnding": "LF",
            },
        )

    async def get_query_job(self, job_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/jobs/query/{job_id}")

    async def wait_for_query_job(
        self,
        job_id: str,
        poll_interval: float = 2.0,
        timeout: float = 600.0,
    ) -> Dict[str, Any]:
        """
        Poll a query job until it completes.

        Raises:
            SalesforceAPIError: If the job fails, is aborted or times out
        """
        waited = 0.0
        while True:
            job = await self.get_query_job(job_id)
            state = job.get("state")

            if state == "JobComplete":
                return job
            if state in ("Failed", "Aborted"):
                raise SalesforceAPIError(
                    f"Bulk query job {job_id} {state.lower()}: {job.get('errorMessage', '')}"
                )
            if waited >= timeout:
                raise SalesforceAPIError(f"Bulk query job {job_id} not complete after {timeout:.0f}s")

            await asyncio.sleep(poll_interval)
            waited += poll_interval

    async def get_query_results(
        self,
        job_id: str,
        locator: Optional[str] = None,
        max_records: Optional[int] = None,
    ) -> BulkQueryPage:
        """
        Fetch one chunk of CSV results.

        Args:
            job_id: Completed query job id
            locator: Sforce-Locator of the previous chunk (None = first chunk)
            max_records: Chunk size

        Returns:
            BulkQueryPage. locator is None when no chunk follows.
        """
        params: Dict[str, Any] = {}
        if locator:
            params["locator"] = locator
        if max_records:
            params["maxRecords"] = max_records

        response = await self._send(
            "GET",
            f"/jobs/query/{job_id}/results",
            params=params,
            headers={"Accept": "text/csv"},
        )

        next_locator = response.headers.get("Sforce-Locator")
        if not next_locator or next_locator == "null":
            next_locator = None

        records = self._parse_csv(response.text)
        number_of_records = int(response.headers.get("Sforce-NumberOfRecords", len(records)))

        return BulkQueryPage(records=records, locator=next_locator, number_of_records=number_of_records)

    @staticmethod
    def _parse_csv(text: str) -> List[Dict[str, Any]]:
        if not text.strip():
            return []
        reader = csv.DictReader(io.StringIO(text))
        # Bulk CSV encodes null as an empty field
        return [
            {key: (value if value != "" else None) for key, value in row.items()}
            for row in reader
        ]

    # ------------------------------------------------------------------
    # Replication API
    # ------------------------------------------------------------------

    async def get_deleted(self, object_type: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """
        Records deleted in [start, end].

        Returns:
            {"deletedRecords": [{"id", "deletedDate"}], "earliestDateAvailable", "latestDateCovered"}
        """
        return await self.request(
            "GET",
            f"/sobjects/{object_type}/deleted/",
            params={"start": format_soql_datetime(start), "end": format_soql_datetime(end)},
        )

    async def get_updated(self, object_type: str, start: datetime, end: datetime) -> Dict[str, Any]:
        """
        Ids of records updated in [start, end].

        Returns:
            {"ids": [...], "latestDateCovered"}
        """
        return await self.request(
            "GET",
            f"/sobjects/{object_type}/updated/",
            params={"start": format_soql_datetime(start), "end": format_soql_datetime(end)},
        )

    async def get_user_info(self) -> Dict[str, Any]:
        """Get the authenticated user's identity (used as a connection check)."""
        return await self.request("GET", f"{self.instance_url}/services/oauth2/userinfo")

    async def close(self):
        """Closes the HTTP client."""
        await self._client.aclose()
        logger.info("SalesforceClient closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
