"""
Service container shared by the route modules.

Built once per app (lifespan or create_app) and stored on app.state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..orchestrator.refresh import ReviewRefresher
from ..orchestrator.scheduler import RefreshScheduler
from ..sources.oauth_tokens import OAuthTokenManager

logger = logging.getLogger(__name__)


@dataclass
class ReviewServices:
    refresher: ReviewRefresher
    token_manager: OAuthTokenManager
    oauth_service: str = "google_my_business"
    scheduler: Optional[RefreshScheduler] = None

    @property
    def store(self):
        return self.refresher.store

    @classmethod
    def from_settings(cls, settings=None) -> "ReviewServices":
        if settings is None:
            from ..data.config import get_settings
            settings = get_settings()

        refresher = ReviewRefresher.from_settings(settings)
        backend = refresher.store.backend
        scheduler = RefreshScheduler(refresher) if settings.refresh.enabled else None
        return cls(
            refresher=refresher,
            token_manager=OAuthTokenManager.from_settings(backend, settings=settings),
            oauth_service=settings.google_oauth.service_name,
            scheduler=scheduler,
        )

    def start(self):
        if self.scheduler is not None:
            self.scheduler.start()
        else:
            logger.info("Periodic review refresh disabled (SCHEDULER_ENABLED=false)")

    def shutdown(self):
        if self.scheduler is not None:
            self.scheduler.stop(wait=False)
        self.refresher.store.backend.close()


def get_services(request: Request) -> ReviewServices:
    """FastAPI dependency."""
    return request.app.state.services
