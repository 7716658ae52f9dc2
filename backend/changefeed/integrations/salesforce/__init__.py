"""
Salesforce integration.
"""

from .client import SalesforceAPIError, SalesforceClient, SalesforceRateLimitError
from .adapter import SalesforceSourceAdapter
from .provider import SalesforceCRMProvider
from .schema import SALESFORCE_SYNC_CONFIGS

__all__ = [
    "SalesforceAPIError",
    "SalesforceClient",
    "SalesforceRateLimitError",
    "SalesforceSourceAdapter",
    "SalesforceCRMProvider",
    "SALESFORCE_SYNC_CONFIGS",
]
