"""
Application configuration using Pydantic Settings.
Loads environment variables from .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_env: str = Field(default="development", alias="APP_ENV")
    app_debug: bool = Field(default=False, alias="APP_DEBUG")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # -------------------------------------------------------------------------
    # CRM Source (Plugin System)
    # -------------------------------------------------------------------------
    active_crm_provider: str | None = Field(
        default="none",
        alias="ACTIVE_CRM_PROVIDER",
        description="Active CRM provider: 'salesforce', 'hubspot', or 'none'",
    )
    organization_id: str = Field(
        default="default",
        alias="ORGANIZATION_ID",
        description="Tenant id stamped into every extracted event",
    )

    # Salesforce (access token is obtained outside this service)
    salesforce_instance_url: str | None = Field(
        default=None,
        alias="SALESFORCE_INSTANCE_URL",
        description="Org instance URL, e.g. https://acme.my.salesforce.com",
    )
    salesforce_access_token: str | None = Field(
        default=None,
        alias="SALESFORCE_ACCESS_TOKEN",
    )
    salesforce_api_version: str = Field(
        default="v59.0",
        alias="SALESFORCE_API_VERSION",
    )

    # HubSpot
    hubspot_access_token: str | None = Field(
        default=None,
        alias="HUBSPOT_ACCESS_TOKEN",
    )
    hubspot_api_base_url: str = Field(
        default="https://api.hubapi.com",
        alias="HUBSPOT_API_BASE_URL",
    )

    # -------------------------------------------------------------------------
    # HTTP transport
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS")
    http_max_retries: int = Field(
        default=3,
        alias="HTTP_MAX_RETRIES",
        description="Retries per request on 429/5xx/network errors (0 = no retry)",
    )

    # -------------------------------------------------------------------------
    # Sync engine
    # -------------------------------------------------------------------------
    sync_max_records_per_object: int = Field(
        default=10000,
        alias="SYNC_MAX_RECORDS_PER_OBJECT",
        description="Accumulated-event cap per object type in one sync_all pass",
    )
    sync_max_concurrency: int = Field(
        default=1,
        alias="SYNC_MAX_CONCURRENCY",
        description="Object types synchronized in parallel (1 = sequential)",
    )
    sync_include_deleted: bool = Field(default=False, alias="SYNC_INCLUDE_DELETED")

    # -------------------------------------------------------------------------
    # Checkpoint store
    # -------------------------------------------------------------------------
    checkpoint_store: str = Field(
        default="memory",
        alias="CHECKPOINT_STORE",
        description="'memory' or 'database'",
    )
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")
    postgres_db: str = Field(default="changefeed", alias="POSTGRES_DB")
    postgres_user: str = Field(default="postgres", alias="POSTGRES_USER")
    postgres_password: str = Field(default="postgres", alias="POSTGRES_PASSWORD")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    @property
    def async_database_url(self) -> str:
        """Build async database URL for SQLAlchemy."""
        if self.database_url:
            # Ensure we use the async driver
            url = self.database_url
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+psycopg://", 1)
            return url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Event sink
    # -------------------------------------------------------------------------
    event_sink: str = Field(
        default="memory",
        alias="EVENT_SINK",
        description="'memory' or 'webhook'",
    )
    event_sink_url: str | None = Field(default=None, alias="EVENT_SINK_URL")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Note: Settings are cached! If you change .env, restart the server.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Call this if you need to reload settings."""
    get_settings.cache_clear()
