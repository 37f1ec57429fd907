"""
Shared test fixtures.

Every test runs with STORAGE_BACKEND=memory and a fresh settings cache, so
nothing here needs a database or network access.
"""

from datetime import datetime, timedelta, timezone

import pytest

from reviewsync.data.config import reset_settings
from reviewsync.storage.memory import InMemoryBackend
from reviewsync.storage.review_store import ReviewStore


# =============================================================================
# TEST DOUBLES
# =============================================================================

FROZEN_NOW = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeResponse:
    """Just enough of requests.Response for the provider clients."""

    def __init__(self, payload=None, status_code=200, text=None):
        self.payload = payload
        self.status_code = status_code
        self.text = text if text is not None else str(payload)

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """
    Stand-in for requests.Session.

    Routes are matched by HTTP method and URL substring, first match wins.
    Each route replays its responses in order and repeats the last one.
    A response that is an exception instance is raised instead.
    """

    def __init__(self):
        self.routes = []
        self.calls = []

    def add(self, method, url_part, *responses):
        self.routes.append([method.upper(), url_part, list(responses)])
        return self

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method.upper(), "url": url, **kwargs})
        for route_method, url_part, responses in self.routes:
            if route_method == method.upper() and url_part in url:
                response = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(response, Exception):
                    raise response
                return response
        raise AssertionError(f"Unexpected request: {method} {url}")

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def calls_to(self, url_part):
        return [c for c in self.calls if url_part in c["url"]]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def memory_settings(monkeypatch):
    """Isolate every test from the developer's .env."""
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    for key in (
        "GOOGLE_PLACES_API_KEY", "GOOGLE_PLACE_ID",
        "DATAFORSEO_LOGIN", "DATAFORSEO_PASSWORD", "YELP_BUSINESS_ALIAS",
        "FACEBOOK_PAGE_ID", "FACEBOOK_ACCESS_TOKEN",
        "GOOGLE_OAUTH_CLIENT_ID", "GOOGLE_OAUTH_CLIENT_SECRET",
        "REVIEWS_SOURCE_PRIORITY", "REVIEWS_MIN_RATING_FLOOR", "CORS_ORIGINS",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend, clock):
    return ReviewStore(backend, clock=clock)
