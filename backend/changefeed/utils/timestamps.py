"""
Timestamp Utilities for CRM Watermarks.

Parses the timestamp shapes CRM APIs return and formats watermarks
for the query languages that filter on them.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Salesforce returns offsets without a colon: 2024-01-05T10:00:00.000+0000
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: Any) -> datetime:
    """
    Parses a CRM timestamp into an aware UTC datetime.

    Accepts:
    - datetime instances (naive values are taken as UTC)
    - ISO 8601 strings, including "Z" and "+0000" offsets
    - epoch milliseconds (int, float or digit-only string)

    Args:
        value: Raw timestamp value from a record

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If the value is missing or cannot be parsed
    """
    if value is None or value == "":
        raise ValueError("Timestamp value is missing")

    if isinstance(value, datetime):
        parsed = value

    elif isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")

    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            parsed = datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            text = _COMPACT_OFFSET.sub(r"\1:\2", text)
            parsed = datetime.fromisoformat(text)

    else:
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def format_soql_datetime(value: datetime) -> str:
    """
    Formats a watermark as a SOQL datetime literal.

    SOQL datetime literals are unquoted and carry millisecond precision,
    e.g. 2024-01-05T10:00:00.000Z.
    """
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S") + f".{utc.microsecond // 1000:03d}Z"


def to_epoch_millis(value: datetime) -> int:
    """Converts a watermark to epoch milliseconds (HubSpot filter values)."""
    return (value.astimezone(timezone.utc) - EPOCH) // timedelta(milliseconds=1)
