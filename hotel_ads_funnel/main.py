"""
Hotel Ads Metrics API

Read-only FastAPI backend exposing stored period summaries and
current-period cache snapshots to the dashboard.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .routers import metrics
from .services.store import SummaryStore

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def get_allowed_origins(settings: Settings) -> list[str]:
    """CORS origins: local dashboard dev servers plus CORS_ORIGINS."""
    origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    origins.extend(o for o in settings.CORS_ORIGINS if o not in origins)
    return origins


def create_app(settings: Optional[Settings] = None, store: Optional[SummaryStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info("Starting Hotel Ads Metrics API")
        logger.info("CORS allowed origins: %s", get_allowed_origins(settings))
        yield
        logger.info("Shutting down")

    app = FastAPI(
        title="Hotel Ads Metrics API",
        description="Stored Meta / Google Ads funnel summaries per hotel client",
        version=VERSION,
        lifespan=lifespan,
    )

    if store is None:
        store = SummaryStore(settings.DATABASE_URL)
        store.create_all()
    app.state.store = store
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(metrics.router, prefix="/api/metrics", tags=["Metrics"])

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "healthy", "service": "Hotel Ads Metrics API"}

    @app.get("/api/health")
    async def health_check():
        """Detailed health check."""
        return {
            "status": "healthy",
            "version": VERSION,
            "endpoints": [
                "/api/metrics/clients",
                "/api/metrics/{client_id}/summaries",
                "/api/metrics/{client_id}/cache/{period_type}",
            ],
        }

    return app
