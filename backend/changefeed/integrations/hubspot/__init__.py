"""
HubSpot integration.
"""

from .client import HubSpotAPIError, HubSpotClient, HubSpotRateLimitError
from .adapter import HubSpotSourceAdapter
from .provider import HubSpotCRMProvider
from .schema import HUBSPOT_SYNC_CONFIGS

__all__ = [
    "HubSpotAPIError",
    "HubSpotClient",
    "HubSpotRateLimitError",
    "HubSpotSourceAdapter",
    "HubSpotCRMProvider",
    "HUBSPOT_SYNC_CONFIGS",
]
