"""
HemoTrack API Main Application

FastAPI application exposing the transfusion workflow and admission
tracking services.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request

from hemotrack import __version__
from hemotrack.api.errors import register_exception_handlers
from hemotrack.api.routes import admissions_router, transfusions_router
from hemotrack.config import get_settings
from hemotrack.db.store import InMemoryRecordStore, RecordStore
from hemotrack.notifications.activity import ActivityEmitter
from hemotrack.observability.logging import configure_logging
from hemotrack.progress.tracking import AdmissionTrackingService
from hemotrack.security.audit import AuditLogger
from hemotrack.workflow.service import TransfusionService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    settings = get_settings()

    logger.info(
        "Starting HemoTrack API",
        env=settings.app.env,
        debug=settings.app.debug,
        activity_webhook=settings.activity.webhook_url is not None,
    )

    yield

    logger.info("Shutting down HemoTrack API")
    await app.state.activity.drain()


def create_app(
    store: RecordStore | None = None,
    activity: ActivityEmitter | None = None,
    audit: AuditLogger | None = None,
) -> FastAPI:
    """
    Build the application around a record store.

    Args:
        store: Record store; defaults to a fresh in-memory store
        activity: Activity emitter; defaults to one built from settings
        audit: Audit logger shared by both services
    """
    configure_logging()

    store = store or InMemoryRecordStore()
    activity = activity or ActivityEmitter.from_settings()
    audit = audit or AuditLogger()

    app = FastAPI(
        title="HemoTrack API",
        description="Blood transfusion workflow and admission progress tracking",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.store = store
    app.state.activity = activity
    app.state.audit = audit
    app.state.transfusions = TransfusionService(store, audit=audit, activity=activity)
    app.state.tracking = AdmissionTrackingService(store, activity=activity, audit=audit)

    register_exception_handlers(app)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Liveness check."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": get_settings().app.env,
        }

    app.include_router(transfusions_router, prefix="/v1")
    app.include_router(admissions_router, prefix="/v1")

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "hemotrack.api.main:app",
        host=settings.app.api_host,
        port=settings.app.api_port,
        reload=settings.app.api_reload,
    )


if __name__ == "__main__":
    run()
