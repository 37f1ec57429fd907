"""
Reviewsync Review Sources
=========================

One adapter per provider, all behind ReviewSourceAdapter:

    places_api          PlacesReviewAdapter        (sync place details)
    dataforseo          DataForSeoGoogleAdapter    (async task queue)
    yelp                DataForSeoYelpAdapter      (async task queue)
    facebook            FacebookReviewAdapter      (paging.next)
    google_my_business  GoogleMyBusinessAdapter    (OAuth2, pageToken)
"""

from .base import (
    ReviewSourceAdapter,
    ProviderError,
    ProviderUnavailableError,
    MalformedResponseError,
    PartialFetchError,
)
from .oauth_tokens import OAuthTokenManager, AuthExpiredError, TokenNotFoundError
from .task_broker import AsyncTaskBroker
from .places_client import PlacesReviewAdapter
from .dataforseo_client import DataForSeoGoogleAdapter, DataForSeoYelpAdapter
from .facebook_client import FacebookReviewAdapter
from .gmb_client import GoogleMyBusinessAdapter
from .registry import AdapterRegistry, build_registry
