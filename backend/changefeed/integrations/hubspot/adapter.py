"""
HubSpot Source Adapter.

Offset-token shape: the search request carries a GT filter on the
watermark property, an ascending sort, a page size and an optional
"after" token; the response carries results[] and paging.next.after.

The token is handed back as next_cursor so a page chain that runs through
records sharing one hs_lastmodifieddate is followed to its end from the
same start_time.
"""

import logging
from typing import Any, Dict

from changefeed.core.interfaces.crm import SourceAdapter
from changefeed.integrations.hubspot.client import HubSpotAPIError, HubSpotClient
from changefeed.integrations.hubspot.schema import HUBSPOT_MAX_PAGE_SIZE, HUBSPOT_SEARCH_RESULT_LIMIT
from changefeed.models.sync import MoreHint, PageQuery, PageResult
from changefeed.utils.timestamps import to_epoch_millis

logger = logging.getLogger(__name__)


def build_search_body(spec: PageQuery) -> Dict[str, Any]:
    """Search request body for one page."""
    body: Dict[str, Any] = {
        "filterGroups": [
            {
                "filters": [
                    {
                        "propertyName": spec.date_field,
                        "operator": "GT",
                        "value": str(to_epoch_millis(spec.start_time)),
                    }
                ]
            }
        ],
        "sorts": [{"propertyName": spec.order_field, "direction": "ASCENDING"}],
        "properties": list(spec.fields),
        "limit": min(spec.limit, HUBSPOT_MAX_PAGE_SIZE),
    }
    if spec.cursor:
        body["after"] = spec.cursor
    return body


class HubSpotSourceAdapter(SourceAdapter):
    """
    Paginated query adapter over HubSpotClient.

    The search endpoint never returns archived records, so include_deleted
    has no effect here; archived records only show up through list reads.
    """

    def __init__(self, client: HubSpotClient):
        self.client = client

    def get_provider_name(self) -> str:
        return "hubspot"

    async def query(self, spec: PageQuery) -> PageResult:
        if spec.additional_filters:
            logger.warning(
                f"⚠️ additional_filters are not supported by HubSpot search, ignoring for {spec.object_type}"
            )

        body = build_search_body(spec)
        data = await self.client.search(spec.object_type, body)

        results = data.get("results")
        if not isinstance(results, list):
            raise HubSpotAPIError(f"Malformed search response for {spec.object_type}: no results array")

        after = ((data.get("paging") or {}).get("next") or {}).get("after")

        if after and len(results) >= body["limit"]:
            more_hint = MoreHint.DEFINITELY_MORE
        else:
            more_hint = MoreHint.DEFINITELY_DONE
            after = None

        if after and not self._within_result_window(after, body["limit"]):
            # Past the search window the caller resumes by watermark instead
            logger.info(
                f"🔄 {spec.object_type}: search window exhausted at offset {after}, "
                f"continuing from the latest watermark"
            )
            after = None

        logger.debug(f"HubSpot page for {spec.object_type}: {len(results)} records, after={after}")

        return PageResult(
            records=results,
            more_hint=more_hint,
            next_cursor=after,
            total_hint=data.get("total"),
        )

    @staticmethod
    def _within_result_window(after: str, limit: int) -> bool:
        try:
            return int(after) + limit <= HUBSPOT_SEARCH_RESULT_LIMIT
        except ValueError:
            return True

    async def close(self) -> None:
        await self.client.close()
