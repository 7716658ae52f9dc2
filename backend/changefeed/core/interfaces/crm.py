"""
Abstract CRM Source Interfaces.
Defines the contracts that all CRM integrations must implement.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict

from changefeed.models.sync import ObjectSyncConfig, PageQuery, PageResult

if TYPE_CHECKING:
    from changefeed.services.crm_sync.event_classifier import EventClassifier


class SourceAdapter(ABC):
    """
    Paginated query primitive over one external CRM.

    Every pagination shape (SOQL watermark paging, search offset tokens,
    bulk locators) is driven through the same question: "give me up to N
    records with watermark > T, ascending".
    """

    @abstractmethod
    async def query(self, spec: PageQuery) -> PageResult:
        """
        Fetches one page of records.

        Records MUST be sorted ascending by spec.order_field. Adapters raise
        on transport, auth, quota or malformed-response failures; the
        orchestrator turns those into a failed checkpoint.

        Args:
            spec: What to fetch (object type, fields, watermark, page size)

        Returns:
            PageResult with raw records and a continuation hint

        Example:
            >>> page = await adapter.query(PageQuery.from_config(config, start, 200))
            >>> page.has_more(200)
            True
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """
        Returns the source name stamped into event metadata.

        Returns:
            Provider name (e.g., "salesforce", "hubspot")
        """
        pass

    async def close(self) -> None:
        """Releases transport resources. Adapters without any keep the default."""
        return None


class CRMSource(ABC):
    """
    Bundle of everything the sync engine needs from one CRM system.

    This interface ensures that all CRM providers expose a consistent
    surface, allowing the sync engine to remain agnostic to the source.
    """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Returns the provider name (e.g., "salesforce", "hubspot")."""
        pass

    @abstractmethod
    def get_sync_configs(self) -> Dict[str, ObjectSyncConfig]:
        """
        Returns the compiled-in sync configuration per object type.

        Example:
            >>> list(provider.get_sync_configs())
            ["Account", "Contact", "Lead", "Opportunity", "Case", "Task", "Event"]
        """
        pass

    @abstractmethod
    def get_adapter(self) -> SourceAdapter:
        """Returns the paginated query adapter for this source."""
        pass

    @abstractmethod
    def get_classifier(self) -> "EventClassifier":
        """Returns the record classifier for this source."""
        pass

    @abstractmethod
    async def check_connection(self) -> bool:
        """
        Verifies that the CRM API is reachable and credentials are valid.

        Returns:
            True if connection successful, False otherwise
        """
        pass

    async def close(self) -> None:
        """Closes the underlying adapter."""
        await self.get_adapter().close()
