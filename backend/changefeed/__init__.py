"""CRM Changefeed: incremental CRM sync and checkpoint engine."""

__version__ = "0.1.0"
