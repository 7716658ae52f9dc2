"""
Property Sanitizer for CRM Records.

Normalizes raw record payloads into event metadata, including:
- Removal of wire-envelope keys (e.g. Salesforce "attributes")
- Nested lookup objects sanitized recursively
- Type normalization for non-JSON values
"""

import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

# =============================================================================
# Security: Prototype Pollution Prevention
# =============================================================================

# Keys that could enable prototype pollution attacks in JavaScript consumers
# of the event stream. They never carry CRM data.
DANGEROUS_KEYS = {
    '__proto__',       # Direct prototype access
    'constructor',     # Constructor access
    'prototype',       # Prototype chain access
    '__defineGetter__',
    '__defineSetter__',
    '__lookupGetter__',
    '__lookupSetter__',
}


class PropertySanitizer:
    """
    Sanitizes raw CRM records for downstream event metadata.

    Event metadata must be JSON-serializable and must not leak transport
    envelopes. Values are otherwise passed through unchanged so that the
    event carries the full record payload.
    """

    def __init__(
        self,
        internal_keys: Optional[Iterable[str]] = None,
        drop_none: bool = False,
    ):
        """
        Initialize property sanitizer.

        Args:
            internal_keys: Wire-only keys to drop at every nesting level
            drop_none: Skip keys whose value is None
        """
        self.internal_keys = frozenset(internal_keys or ())
        self.drop_none = drop_none

    def sanitize(self, props: Dict[str, Any] | None) -> Dict[str, Any]:
        """
        Sanitize a record payload.

        Args:
            props: Raw record from the CRM (can be None)

        Returns:
            Sanitized payload, empty dict if props is None

        Example:
            >>> sanitizer = PropertySanitizer(internal_keys={"attributes"})
            >>> raw = {"attributes": {"type": "Account"}, "Id": "001", "Name": "Acme"}
            >>> sanitizer.sanitize(raw)
            {"Id": "001", "Name": "Acme"}
        """
        if not props:
            return {}

        sanitized = {}

        for key, value in props.items():
            # Security: Skip dangerous keys (prototype pollution prevention)
            if key in DANGEROUS_KEYS:
                logger.warning(f"Blocked dangerous key: '{key}' (prototype pollution prevention)")
                continue

            if key in self.internal_keys:
                continue

            if value is None:
                if not self.drop_none:
                    sanitized[key] = None
                continue

            sanitized[key] = self._sanitize_value(key, value)

        return sanitized

    def _sanitize_value(self, key: str, value: Any) -> Any:
        """
        Sanitize a single value.

        Nested objects (Salesforce relationship lookups such as Owner.Name)
        are sanitized with the same rules; lists are sanitized element-wise.
        """
        if isinstance(value, dict):
            return self.sanitize(value)

        if isinstance(value, list):
            return [
                self._sanitize_value(key, item)
                for item in value
                if item is not None or not self.drop_none
            ]

        if value is None or isinstance(value, (str, int, float, bool)):
            return value

        # Unknown type: convert to string
        logger.debug(f"Converting unknown type {type(value)} to string for field {key}")
        return str(value)
