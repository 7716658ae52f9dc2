"""
Source API errors shared by all CRM clients.
"""

from typing import Optional


class SourceAPIError(Exception):
    """Raised when a CRM API call fails (HTTP error or network error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Network errors, rate limits and server errors are worth retrying."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class SourceRateLimitError(SourceAPIError):
    """Raised on HTTP 429."""
    pass


def is_retryable(error: BaseException) -> bool:
    """Retry predicate for tenacity."""
    return isinstance(error, SourceAPIError) and error.retryable
