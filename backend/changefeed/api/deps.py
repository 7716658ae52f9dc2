"""
Request dependencies shared by the endpoints.
"""

from fastapi import HTTPException, Request, status

from changefeed.services.crm_sync.sync_orchestrator import IncrementalSyncOrchestrator


def get_orchestrator(request: Request) -> IncrementalSyncOrchestrator:
    """
    The orchestrator wired at startup.

    Raises:
        HTTPException 503: If no CRM provider is configured
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No CRM provider configured. Set ACTIVE_CRM_PROVIDER.",
        )
    return orchestrator
