"""
Reviewsync FastAPI Application
==============================

Public read API over the synchronized review set.

Endpoints:
    GET  /api/health          - Health check
    GET  /api/reviews         - Served reviews (category, minRating, refresh, source)
    GET  /api/reviews/stats   - Mean rating + count
    GET  /api/oauth/status    - Business Profile authorization state
    GET  /api/oauth/init      - Consent URL
    GET  /api/oauth/callback  - Authorization code exchange
    POST /api/oauth/set-ids   - Account / location ids

Usage:
    uvicorn reviewsync.api.main:create_app --factory --port 8000

    Or with CLI:
    python -m reviewsync.api.main
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .. import __version__
from ..orchestrator.logging_config import setup_logging_from_settings
from .models import HealthResponse
from .oauth_routes import router as oauth_router
from .review_routes import router as review_router
from .services import ReviewServices, get_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager: builds services and runs the periodic refresh."""
    logger.info("Starting Reviewsync API...")

    if app.state.services is None:
        app.state.services = ReviewServices.from_settings()
    app.state.services.start()

    yield

    app.state.services.shutdown()
    logger.info("Shutting down Reviewsync API...")


def create_app(services: Optional[ReviewServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built services (built from settings at startup if None)
    """
    app = FastAPI(
        title="Reviewsync API",
        description="Multi-source customer review synchronization",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.include_router(review_router)
    app.include_router(oauth_router)

    @app.get("/api/health", response_model=HealthResponse)
    def health_check(request: Request):
        """Storage connectivity, enabled sources and scheduler state."""
        svc = get_services(request)
        storage = svc.store.backend.check_health()
        scheduler = svc.scheduler.get_status() if svc.scheduler else {"is_running": False}
        return HealthResponse(
            status="healthy" if storage["status"] == "connected" else "degraded",
            version=__version__,
            storage=storage["status"],
            storageBackend=storage.get("backend", svc.store.backend.name),
            sources=svc.refresher.registry.enabled_sources,
            scheduler=scheduler,
        )

    return app


def main():
    setup_logging_from_settings()
    uvicorn.run(
        "reviewsync.api.main:create_app",
        factory=True,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
