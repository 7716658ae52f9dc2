"""
Health Endpoint for Monitoring.
"""

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel

from changefeed.core.config import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    environment: str
    provider: str | None = None
    provider_error: str | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Liveness check.

    Reports "degraded" when a provider was requested but failed to load,
    so that the process stays up while the misconfiguration is visible.
    """
    provider = getattr(request.app.state, "provider", None)
    provider_error = getattr(request.app.state, "provider_error", None)

    return HealthResponse(
        status="degraded" if provider_error else "healthy",
        environment=get_settings().app_env,
        provider=provider.get_provider_name() if provider else None,
        provider_error=provider_error,
    )
