"""
CRM Provider Factory.
Loads the configured CRM source and wires the sync engine around it.
"""

import logging
from functools import lru_cache
from typing import Optional

from changefeed.core.config import Settings, get_settings
from changefeed.core.interfaces.crm import CRMSource
from changefeed.core.interfaces.storage import CheckpointStore, EventSink

logger = logging.getLogger(__name__)


class CRMProviderError(Exception):
    """Raised when CRM provider cannot be loaded or initialized."""
    pass


@lru_cache
def get_crm_provider() -> Optional[CRMSource]:
    """
    Factory function to get the configured CRM provider.

    Reads ACTIVE_CRM_PROVIDER from settings and loads the corresponding
    provider implementation.

    Returns:
        Configured CRM provider instance, or None if no provider is active

    Raises:
        CRMProviderError: If provider is configured but cannot be loaded

    Example:
        >>> provider = get_crm_provider()
        >>> if provider:
        ...     if await provider.check_connection():
        ...         orchestrator = build_orchestrator(provider)
    """
    settings = get_settings()

    active_provider = settings.active_crm_provider.lower() if settings.active_crm_provider else None

    if not active_provider or active_provider == "none":
        logger.info("ℹ️ No CRM provider configured")
        return None

    logger.info(f"🔌 Loading CRM provider: {active_provider}")

    try:
        if active_provider == "salesforce":
            return _load_salesforce_provider(settings)

        elif active_provider == "hubspot":
            return _load_hubspot_provider(settings)

        else:
            raise CRMProviderError(
                f"Unknown CRM provider: {active_provider}. "
                f"Supported providers: salesforce, hubspot"
            )

    except CRMProviderError:
        raise
    except Exception as e:
        logger.error(f"❌ Failed to load CRM provider '{active_provider}': {e}")
        raise CRMProviderError(f"Failed to load CRM provider: {e}") from e


def _load_salesforce_provider(settings: Settings) -> CRMSource:
    """
    Loads Salesforce provider.

    Raises:
        CRMProviderError: If Salesforce credentials are missing
    """
    if not settings.salesforce_instance_url:
        raise CRMProviderError("SALESFORCE_INSTANCE_URL not configured")

    if not settings.salesforce_access_token:
        raise CRMProviderError("SALESFORCE_ACCESS_TOKEN not configured")

    # Import here to avoid loading integration code if not needed
    from changefeed.integrations.salesforce import SalesforceCRMProvider

    logger.info("✅ Initializing Salesforce provider")

    return SalesforceCRMProvider(
        instance_url=settings.salesforce_instance_url,
        access_token=settings.salesforce_access_token,
        api_version=settings.salesforce_api_version,
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )


def _load_hubspot_provider(settings: Settings) -> CRMSource:
    """
    Loads HubSpot provider.

    Raises:
        CRMProviderError: If the HubSpot token is missing
    """
    if not settings.hubspot_access_token:
        raise CRMProviderError("HUBSPOT_ACCESS_TOKEN not configured")

    from changefeed.integrations.hubspot import HubSpotCRMProvider

    logger.info("✅ Initializing HubSpot provider")

    return HubSpotCRMProvider(
        access_token=settings.hubspot_access_token,
        api_base_url=settings.hubspot_api_base_url,
        timeout=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
    )


def build_checkpoint_store(settings: Optional[Settings] = None) -> CheckpointStore:
    """
    Builds the checkpoint store named by CHECKPOINT_STORE.

    Raises:
        CRMProviderError: On an unknown store kind
    """
    settings = settings or get_settings()
    kind = settings.checkpoint_store.lower()

    if kind == "memory":
        from changefeed.services.checkpoint_store import InMemoryCheckpointStore
        logger.warning("⚠️ Using in-memory checkpoint store, progress is lost on restart")
        return InMemoryCheckpointStore()

    if kind == "database":
        from changefeed.db.session import get_session_maker
        from changefeed.services.checkpoint_store import SQLCheckpointStore
        return SQLCheckpointStore(get_session_maker())

    raise CRMProviderError(f"Unknown checkpoint store: {kind}. Supported: memory, database")


def build_event_sink(settings: Optional[Settings] = None) -> EventSink:
    """
    Builds the event sink named by EVENT_SINK.

    Raises:
        CRMProviderError: On an unknown sink kind or a webhook without URL
    """
    settings = settings or get_settings()
    kind = settings.event_sink.lower()

    from changefeed.services.event_sink import InMemoryEventSink, WebhookEventSink

    if kind == "memory":
        return InMemoryEventSink()

    if kind == "webhook":
        if not settings.event_sink_url:
            raise CRMProviderError("EVENT_SINK_URL not configured")
        return WebhookEventSink(settings.event_sink_url, timeout=settings.http_timeout_seconds)

    raise CRMProviderError(f"Unknown event sink: {kind}. Supported: memory, webhook")


def build_orchestrator(
    provider: CRMSource,
    checkpoint_store: Optional[CheckpointStore] = None,
    event_sink: Optional[EventSink] = None,
    settings: Optional[Settings] = None,
):
    """Wires an IncrementalSyncOrchestrator around a provider."""
    from changefeed.services.crm_sync.sync_orchestrator import IncrementalSyncOrchestrator

    settings = settings or get_settings()
    return IncrementalSyncOrchestrator(
        adapter=provider.get_adapter(),
        classifier=provider.get_classifier(),
        configs=provider.get_sync_configs(),
        organization_id=settings.organization_id,
        checkpoint_store=checkpoint_store,
        event_sink=event_sink,
        max_records_per_object=settings.sync_max_records_per_object,
    )


def clear_crm_provider_cache() -> None:
    """
    Clears the cached CRM provider instance.

    Useful for testing or when credentials are updated at runtime.
    """
    logger.info("🔄 Clearing CRM provider cache")
    get_crm_provider.cache_clear()


def is_crm_available() -> bool:
    """
    Quick check if a CRM provider is configured and available.

    Returns:
        True if a CRM provider is active, False otherwise
    """
    try:
        provider = get_crm_provider()
        return provider is not None
    except CRMProviderError as e:
        logger.error(f"❌ CRM availability check failed: {e}")
        return False
