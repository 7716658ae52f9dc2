"""
HubSpot CRM v3 API Client.
Handles bearer authentication and the CRM search endpoint.
"""

import logging
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

logger = logging.getLogger(__name__)


class HubSpotAPIError(SourceAPIError):
    """Raised when HubSpot API returns an error."""
    pass


class HubSpotRateLimitError(HubSpotAPIError, SourceRateLimitError):
    """Raised when HubSpot answers 429 (secondly or daily limit)."""
    pass


class HubSpotClient:
    """
    HubSpot CRM REST API Client.

    Uses a private-app or OAuth access token. Search requests are limited
    to a few per second per account, so 429s are retried with backoff.
    """

    def __init__(
        self,
        access_token: str,
        api_base_url: str = "https://api.hubapi.com",
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_wait_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HubSpot client.

        Args:
            access_token: HubSpot access token
            api_base_url: API base URL
            timeout: HTTP request timeout in seconds
            max_retries: Retries after the first attempt for transient errors
            retry_wait_seconds: Backoff multiplier (0 disables waiting)
            transport: Custom httpx transport (tests)
        """
        self.api_base_url = api_base_url.rstrip("/")

        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

        self._request_with_retry = retry(
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(multiplier=retry_wait_seconds, max=30),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._request_once)

        logger.info(f"HubSpotClient initialized (url: {self.api_base_url})")

    async def _request_once(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = endpoint if endpoint.startswith("http") else f"{self.api_base_url}{endpoint}"

        try:
            response = await self._client.request(method=method, url=url, params=params, json=json)
        except httpx.RequestError as e:
            raise HubSpotAPIError(f"Network error: {e}") from e

        if response.status_code >= 400:
            detail = response.text
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    detail = f"{body.get('category', 'ERROR')}: {body['message']}"
            except ValueError:
                pass

            error_msg = f"HubSpot API error: {response.status_code} - {detail}"
            logger.error(error_msg)
            if response.status_code == 429:
                raise HubSpotRateLimitError(error_msg, status_code=429)
            raise HubSpotAPIError(error_msg, status_code=response.status_code)

        if not response.text or response.text.strip() == "":
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise HubSpotAPIError(f"Malformed JSON response from {endpoint}: {e}") from e

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Makes an authenticated request to HubSpot API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (e.g., "/crm/v3/objects/contacts/search")
            params: Query parameters
            json: JSON body for POST

        Returns:
            API response as dictionary

        Raises:
            HubSpotAPIError: If API returns an error
        """
        return await self._request_with_retry(method, endpoint, params=params, json=json)

    async def search(self, object_type: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        CRM search.

        Args:
            object_type: Object type path segment (e.g., "contacts", "companies")
            body: Search body (filterGroups, sorts, properties, limit, after)

        Returns:
            {"total", "results": [...], "paging": {"next": {"after"}}?}
        """
        logger.debug(f"HubSpot search {object_type}: {body}")
        return await self.request("POST", f"/crm/v3/objects/{object_type}/search", json=body)

    async def get_owners(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Fetches all owners (users that can own records), following paging."""
        owners: List[Dict[str, Any]] = []
        after: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"limit": limit}
            if after:
                params["after"] = after
            data = await self.request("GET", "/crm/v3/owners", params=params)
            owners.extend(data.get("results", []))
            after = (data.get("paging") or {}).get("next", {}).get("after")
            if not after:
                break

        return owners

    async def get_account_info(self) -> Dict[str, Any]:
        """Account details (used as a connection check)."""
        return await self.request("GET", "/account-info/v3/details")

    async def close(self):
        """Closes the HTTP client."""
        await self._client.aclose()
        logger.info("HubSpotClient closed")

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
