"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from trailsync.api import deps
from trailsync.api.routes import activities, sync as sync_routes
from trailsync.config import get_settings

logger = logging.getLogger(__name__)


def create_app(auto_sync: Optional[bool] = None) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        auto_sync: Start periodic sync on startup. Defaults to the
            AUTO_SYNC_ENABLED setting.
    """
    settings = get_settings()
    if auto_sync is None:
        auto_sync = settings.auto_sync_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if auto_sync:
            orchestrator = deps.get_orchestrator()
            if orchestrator.settings_store.get_auto_sync_enabled(default=True):
                orchestrator.start_auto_sync(settings.auto_sync_interval_minutes)
        yield
        await deps.close_orchestrator()

    app = FastAPI(
        title="TrailSync API",
        description="Offline-first activity store with sync to the authoritative backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(activities.router, prefix="/activities", tags=["activities"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "ok"}

    return app


# Module-level app instance for uvicorn
app = create_app()
