"""
Salesforce CRM Provider Implementation.

Bundles client, adapter, classifier and object configs, and exposes the
replication API (getDeleted / getUpdated) for reconciliation runs.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from changefeed.core.interfaces.crm import CRMSource
from changefeed.integrations.salesforce.adapter import SalesforceSourceAdapter
from changefeed.integrations.salesforce.client import SalesforceAPIError, SalesforceClient
from changefeed.integrations.salesforce.schema import SALESFORCE_SYNC_CONFIGS
from changefeed.models.sync import ExtractedEvent, ObjectSyncConfig
from changefeed.services.crm_sync.event_classifier import SalesforceEventClassifier
from changefeed.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)


class SalesforceCRMProvider(CRMSource):
    """
    Salesforce integration.

    Delegates to specialized modules:
    - client.py: REST, Bulk 2.0 and replication endpoints
    - adapter.py: SOQL and locator pagination
    - schema.py: Object sync configs
    """

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = "v59.0",
        timeout: float = 30.0,
        max_retries: int = 3,
        configs: Optional[Dict[str, ObjectSyncConfig]] = None,
        client: Optional[SalesforceClient] = None,
    ):
        """Initialize Salesforce provider."""
        self.client = client or SalesforceClient(
            instance_url=instance_url,
            access_token=access_token,
            api_version=api_version,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.adapter = SalesforceSourceAdapter(self.client)
        self.classifier = SalesforceEventClassifier()
        self.configs = dict(configs or SALESFORCE_SYNC_CONFIGS)

        logger.info(f"SalesforceCRMProvider initialized ({len(self.configs)} object types)")

    def get_provider_name(self) -> str:
        return "salesforce"

    def get_sync_configs(self) -> Dict[str, ObjectSyncConfig]:
        return self.configs

    def get_adapter(self) -> SalesforceSourceAdapter:
        return self.adapter

    def get_classifier(self) -> SalesforceEventClassifier:
        return self.classifier

    async def check_connection(self) -> bool:
        """
        Verifies Salesforce connection via the userinfo endpoint.

        Returns:
            True if the token is accepted, False otherwise
        """
        logger.info("🔍 Checking Salesforce connection...")
        try:
            info = await self.client.get_user_info()
            logger.info(f"✅ Salesforce connection OK (org: {info.get('organization_id', 'unknown')})")
            return True
        except SalesforceAPIError as e:
            logger.error(f"❌ Salesforce connection check failed: {e}")
            return False

    def _namespace(self, object_type: str) -> str:
        config = self.configs.get(object_type)
        return config.event_namespace if config else object_type.lower()

    async def get_deleted_events(
        self,
        object_type: str,
        start: datetime,
        end: datetime,
        organization_id: str,
    ) -> List[ExtractedEvent]:
        """
        Deleted-record events from the getDeleted API.

        Covers hard deletes and records already purged from the recycle
        bin, which queryAll no longer returns. Salesforce only keeps
        about 15 days of deletion history.

        Returns:
            crm.<object>.deleted events, empty list on failure
        """
        try:
            result = await self.client.get_deleted(object_type, start, end)
        except SalesforceAPIError as e:
            logger.warning(f"⚠️ Failed to get deleted records for {object_type}: {e}")
            return []

        events = []
        namespace = self._namespace(object_type)

        for deleted in result.get("deletedRecords") or []:
            record_id = deleted.get("id")
            try:
                timestamp = parse_timestamp(deleted.get("deletedDate"))
            except ValueError as e:
                logger.warning(f"⚠️ Skipping deleted {object_type} {record_id}: {e}")
                continue
            if not record_id:
                continue

            events.append(ExtractedEvent(
                type=f"crm.{namespace}.deleted",
                timestamp=timestamp,
                target_id=record_id,
                metadata={
                    "source": "salesforce",
                    "organizationId": organization_id,
                    "objectType": object_type,
                    "recordId": record_id,
                    "isDeleted": True,
                    "deletedDate": deleted.get("deletedDate"),
                },
            ))

        logger.info(f"🗑️ {object_type}: {len(events)} deleted records between {start.isoformat()} and {end.isoformat()}")
        return events

    async def get_updated_record_ids(
        self,
        object_type: str,
        start: datetime,
        end: datetime,
    ) -> List[str]:
        """
        Ids updated in [start, end] from the getUpdated API.

        Returns:
            Record ids, empty list on failure
        """
        try:
            result = await self.client.get_updated(object_type, start, end)
        except SalesforceAPIError as e:
            logger.warning(f"⚠️ Failed to get updated record ids for {object_type}: {e}")
            return []
        return list(result.get("ids") or [])
