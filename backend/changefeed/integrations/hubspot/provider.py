"""
HubSpot CRM Provider Implementation.
"""

import logging
from typing import Dict, List, Optional

from changefeed.core.interfaces.crm import CRMSource
from changefeed.integrations.hubspot.adapter import HubSpotSourceAdapter
from changefeed.integrations.hubspot.client import HubSpotAPIError, HubSpotClient
from changefeed.integrations.hubspot.schema import HUBSPOT_SYNC_CONFIGS
from changefeed.models.sync import ObjectSyncConfig
from changefeed.services.crm_sync.event_classifier import HubSpotEventClassifier

logger = logging.getLogger(__name__)


class HubSpotCRMProvider(CRMSource):
    """HubSpot integration over the CRM v3 search API."""

    def __init__(
        self,
        access_token: str,
        api_base_url: str = "https://api.hubapi.com",
        timeout: float = 30.0,
        max_retries: int = 3,
        configs: Optional[Dict[str, ObjectSyncConfig]] = None,
        client: Optional[HubSpotClient] = None,
    ):
        """Initialize HubSpot provider."""
        self.client = client or HubSpotClient(
            access_token=access_token,
            api_base_url=api_base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.adapter = HubSpotSourceAdapter(self.client)
        self.classifier = HubSpotEventClassifier()
        self.configs = dict(configs or HUBSPOT_SYNC_CONFIGS)

        logger.info(f"HubSpotCRMProvider initialized ({len(self.configs)} object types)")

    def get_provider_name(self) -> str:
        return "hubspot"

    def get_sync_configs(self) -> Dict[str, ObjectSyncConfig]:
        return self.configs

    def get_adapter(self) -> HubSpotSourceAdapter:
        return self.adapter

    def get_classifier(self) -> HubSpotEventClassifier:
        return self.classifier

    async def check_connection(self) -> bool:
        """
        Verifies HubSpot connection via the account-info endpoint.

        Returns:
            True if the token is accepted, False otherwise
        """
        logger.info("🔍 Checking HubSpot connection...")
        try:
            info = await self.client.get_account_info()
            logger.info(f"✅ HubSpot connection OK (portal: {info.get('portalId', 'unknown')})")
            return True
        except HubSpotAPIError as e:
            logger.error(f"❌ HubSpot connection check failed: {e}")
            return False

    async def get_owner_names(self) -> Dict[str, str]:
        """
        Owner id -> display name, for resolving event actor ids.

        Returns:
            Mapping of owner id to "First Last" (or email), empty on failure
        """
        try:
            owners: List[dict] = await self.client.get_owners()
        except HubSpotAPIError as e:
            logger.warning(f"⚠️ Failed to fetch HubSpot owners: {e}")
            return {}

        names = {}
        for owner in owners:
            full_name = " ".join(
                part for part in (owner.get("firstName"), owner.get("lastName")) if part
            )
            names[str(owner.get("id"))] = full_name or owner.get("email") or str(owner.get("id"))
        return names
