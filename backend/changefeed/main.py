"""
CRM Changefeed - FastAPI Application Entry Point

Incremental, checkpointed sync of CRM records into a replayable event stream.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from changefeed.api.endpoints import checkpoints, health, sync, sync_status
from changefeed.core.config import Settings, get_settings
from changefeed.services.crm_factory import (
    CRMProviderError,
    build_checkpoint_store,
    build_event_sink,
    build_orchestrator,
    get_crm_provider,
)

settings = get_settings()
logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Root logger at LOG_LEVEL; module loggers inherit it."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


async def init_checkpoint_tables():
    """Create the checkpoint table when the database store is configured."""
    from changefeed.db.session import get_async_engine
    from changefeed.services.checkpoint_store import create_tables

    await create_tables(get_async_engine())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Wires provider, checkpoint store, event sink and orchestrator.
    """
    configure_logging(settings)

    logger.info("🚀 Starting CRM Changefeed...")
    logger.info(f"Environment: {settings.app_env}")

    app.state.provider = None
    app.state.provider_error = None
    app.state.orchestrator = None
    event_sink = None

    try:
        provider = get_crm_provider()
    except CRMProviderError as e:
        # Stay up so /health can report the misconfiguration
        logger.error(f"❌ {e}")
        app.state.provider_error = str(e)
        provider = None

    if provider is not None:
        if settings.checkpoint_store.lower() == "database":
            await init_checkpoint_tables()

        checkpoint_store = build_checkpoint_store(settings)
        event_sink = build_event_sink(settings)

        if not await provider.check_connection():
            # Connection issues might be temporary
            logger.warning(f"⚠️ {provider.get_provider_name()} connection check failed")

        app.state.provider = provider
        app.state.orchestrator = build_orchestrator(provider, checkpoint_store, event_sink, settings)
        logger.info(f"✅ Sync engine ready ({provider.get_provider_name()})")

    logger.info("✅ Startup complete! Ready to accept requests.")

    yield

    logger.info("👋 Shutting down CRM Changefeed...")
    if event_sink is not None:
        await event_sink.close()
    if provider is not None:
        await provider.close()
    if settings.checkpoint_store.lower() == "database" and provider is not None:
        from changefeed.db.session import get_async_engine
        await get_async_engine().dispose()
    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="CRM Changefeed",
    description="Incremental CRM sync and checkpoint engine",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Include API routers
app.include_router(health.router, tags=["Health"])
app.include_router(sync_status.router, prefix="/api/v1", tags=["Monitoring"])
app.include_router(sync.router, prefix="/api/v1", tags=["Sync"])
app.include_router(checkpoints.router, prefix="/api/v1", tags=["Checkpoints"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "changefeed.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
