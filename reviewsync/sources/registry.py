"""
Adapter registry: which review sources run, decided once from configured
credentials.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

import requests

from ..data.data_models import ReviewSource
from ..storage.backends import StorageBackend
from .base import ReviewSourceAdapter, utc_now
from .dataforseo_client import DataForSeoGoogleAdapter, DataForSeoYelpAdapter
from .facebook_client import FacebookReviewAdapter
from .gmb_client import GoogleMyBusinessAdapter
from .oauth_tokens import OAuthTokenManager
from .places_client import PlacesReviewAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Ordered collection of enabled adapters, keyed by source."""

    def __init__(self, adapters: Optional[List[ReviewSourceAdapter]] = None):
        self._adapters: Dict[ReviewSource, ReviewSourceAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ReviewSourceAdapter) -> None:
        if adapter.source in self._adapters:
            raise ValueError(f"Adapter for {adapter.source.value} already registered")
        self._adapters[adapter.source] = adapter

    def get(self, source) -> Optional[ReviewSourceAdapter]:
        return self._adapters.get(ReviewSource(source))

    @property
    def adapters(self) -> List[ReviewSourceAdapter]:
        return list(self._adapters.values())

    @property
    def enabled_sources(self) -> List[str]:
        return [source.value for source in self._adapters]

    def __len__(self) -> int:
        return len(self._adapters)

    def __iter__(self):
        return iter(self.adapters)


def build_registry(
    settings=None,
    backend: Optional[StorageBackend] = None,
    session: Optional[requests.Session] = None,
    clock: Callable[[], datetime] = utc_now,
) -> AdapterRegistry:
    """
    Register an adapter for every provider whose credentials are configured.

    Args:
        settings: Settings (global settings if None)
        backend: StorageBackend for OAuth tokens (GMB is skipped without one)
        session: requests.Session used by every adapter; when None each adapter
            gets its own (adapters fetch concurrently)
        clock: Injected clock
    """
    if settings is None:
        from ..data.config import get_settings
        settings = get_settings()

    def common() -> dict:
        return {
            "session": session or requests.Session(),
            "timeout": settings.refresh.http_timeout,
            "clock": clock,
        }

    registry = AdapterRegistry()

    places = settings.places
    if places.is_configured:
        registry.register(PlacesReviewAdapter(places.api_key, places.place_id, **common()))

    dfs = settings.dataforseo
    if dfs.is_configured:
        if places.place_id:
            registry.register(DataForSeoGoogleAdapter(
                dfs.login, dfs.password, places.place_id,
                depth=dfs.google_depth, base_url=dfs.base_url, **common()
            ))
        if dfs.yelp_alias:
            registry.register(DataForSeoYelpAdapter(
                dfs.login, dfs.password, dfs.yelp_alias,
                depth=dfs.yelp_depth, base_url=dfs.base_url, **common()
            ))

    fb = settings.facebook
    if fb.is_configured:
        registry.register(FacebookReviewAdapter(
            fb.page_id, fb.access_token, graph_version=fb.graph_version, **common()
        ))

    oauth = settings.google_oauth
    if oauth.is_configured and backend is not None:
        gmb_options = common()
        manager = OAuthTokenManager.from_settings(backend, settings=settings, session=gmb_options["session"], clock=clock)
        registry.register(GoogleMyBusinessAdapter(manager, service_name=oauth.service_name, **gmb_options))

    if len(registry) == 0:
        logger.warning("No review sources configured; refreshes will fetch nothing")
    else:
        logger.info(f"Review sources enabled: {', '.join(registry.enabled_sources)}")
    return registry
