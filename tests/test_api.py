"""
Tests for the FastAPI read API and OAuth routes.

Usage:
    pytest tests/test_api.py -v
"""

from unittest.mock import Mock

from fastapi.testclient import TestClient

from reviewsync.api.main import create_app
from reviewsync.api.services import ReviewServices
from reviewsync.data.data_models import Review, ReviewSource, OAuthToken
from reviewsync.orchestrator.refresh import ReviewRefresher
from reviewsync.reviews.review_merger import ReviewMerger
from reviewsync.sources.base import ReviewSourceAdapter, ProviderUnavailableError
from reviewsync.sources.oauth_tokens import OAuthTokenManager, TOKEN_URL
from reviewsync.sources.registry import AdapterRegistry
from reviewsync.storage.memory import InMemoryBackend, MemoryTransaction
from reviewsync.storage.review_store import ReviewStore

from conftest import FakeResponse, FakeSession, FrozenClock


# =============================================================================
# TEST DATA
# =============================================================================

def make_review(text, rating=5, timestamp=100, source=ReviewSource.PLACES_API, categories=None):
    return Review(
        author_name="Hal",
        rating=rating,
        text=text,
        timestamp=timestamp,
        source=source,
        categories=categories or [],
    )


class StubAdapter(ReviewSourceAdapter):
    def __init__(self, source, reviews=None, error=None):
        super().__init__(session=object())
        self.source = source
        self.reviews = reviews or []
        self.error = error
        self.calls = 0

    def _fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.reviews)


class BrokenTransaction(MemoryTransaction):
    def insert_reviews(self, reviews):
        raise RuntimeError("connection lost")


def build_client(adapters, backend=None):
    clock = FrozenClock()
    backend = backend or InMemoryBackend()
    session = FakeSession()
    refresher = ReviewRefresher(
        ReviewStore(backend, clock=clock),
        AdapterRegistry(adapters),
        merger=ReviewMerger(rating_floor=None),
        clock=clock,
    )
    services = ReviewServices(
        refresher=refresher,
        token_manager=OAuthTokenManager(
            backend, "client-id", "secret",
            redirect_uri="http://localhost:8000/api/oauth/callback",
            session=session, clock=clock,
        ),
    )
    return TestClient(create_app(services=services)), services, session


# =============================================================================
# REVIEWS
# =============================================================================

class TestReviewRoutes:
    """Tests for GET /api/reviews and /api/reviews/stats."""

    def setup_method(self):
        self.adapter = StubAdapter(ReviewSource.PLACES_API, [
            make_review("Fixed the drain", timestamp=300, categories=["drain"]),
            make_review("Found the leak", rating=4, timestamp=200, categories=["leak"]),
            make_review("Slow", rating=3, timestamp=100),
        ])
        self.client, self.services, _ = build_client([self.adapter])

    def test_empty_store_refreshes_then_serves(self):
        response = self.client.get("/api/reviews")

        assert response.status_code == 200
        body = response.json()
        assert [r["text"] for r in body] == ["Fixed the drain", "Found the leak"]
        assert body[0]["authorName"] == "Hal"
        assert body[0]["source"] == "places_api"
        assert body[0]["id"]
        assert response.headers["Cache-Control"] == "public, max-age=1800, must-revalidate"
        assert self.adapter.calls == 1

    def test_second_read_does_not_refetch(self):
        self.client.get("/api/reviews")
        self.client.get("/api/reviews")
        assert self.adapter.calls == 1

    def test_min_rating_param(self):
        response = self.client.get("/api/reviews", params={"minRating": 3})
        assert len(response.json()) == 3

    def test_min_rating_outside_star_range(self):
        assert len(self.client.get("/api/reviews", params={"minRating": 0}).json()) == 3
        response = self.client.get("/api/reviews", params={"minRating": 9})
        assert response.status_code == 200
        assert response.json() == []

    def test_category_param(self):
        response = self.client.get("/api/reviews", params={"category": "leak"})
        assert [r["text"] for r in response.json()] == ["Found the leak"]

    def test_source_param(self):
        response = self.client.get("/api/reviews", params={"source": "yelp"})
        assert response.json() == []

    def test_unknown_source_rejected(self):
        assert self.client.get("/api/reviews", params={"source": "myspace"}).status_code == 422

    def test_forced_refresh_not_cached(self):
        self.client.get("/api/reviews")
        response = self.client.get("/api/reviews", params={"refresh": "true"})

        assert response.status_code == 200
        assert "Cache-Control" not in response.headers
        assert self.adapter.calls == 2

    def test_stats(self):
        self.client.get("/api/reviews")
        response = self.client.get("/api/reviews/stats")

        assert response.json() == {"ratingValue": "4.0", "reviewCount": 3}
        assert "max-age=1800" in response.headers["Cache-Control"]

    def test_stats_empty(self):
        response = self.client.get("/api/reviews/stats")
        assert response.json() == {"ratingValue": None, "reviewCount": 0}
        assert "max-age=300" in response.headers["Cache-Control"]


class TestRefreshFailures:
    """A failed refresh answers 500 and keeps the stored reviews."""

    def test_store_failure_returns_500(self):
        backend = InMemoryBackend()
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review("Kept review")])
        client, services, _ = build_client([adapter], backend=backend)
        client.get("/api/reviews")

        backend._new_transaction = lambda rows: BrokenTransaction(rows)
        response = client.get("/api/reviews", params={"refresh": "true"})

        assert response.status_code == 500
        assert "Review refresh failed" in response.json()["detail"]
        assert [r.text for r in services.store.list_reviews()] == ["Kept review"]

    def test_all_sources_failing_is_not_an_error(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, error=ProviderUnavailableError("down"))
        client, _, _ = build_client([adapter])

        response = client.get("/api/reviews")

        assert response.status_code == 200
        assert response.json() == []


# =============================================================================
# OAUTH
# =============================================================================

class TestOAuthRoutes:
    """Tests for /api/oauth/*."""

    def setup_method(self):
        self.client, self.services, self.session = build_client([])
        self.backend = self.services.store.backend

    def test_status_unauthenticated(self):
        response = self.client.get("/api/oauth/status")
        assert response.json() == {"isAuthenticated": False, "hasAccountId": False, "hasLocationId": False}

    def test_init_returns_consent_url(self):
        response = self.client.get("/api/oauth/init")
        assert response.status_code == 200
        assert "access_type=offline" in response.json()["authUrl"]

    def test_init_without_client_id(self):
        self.services.token_manager.client_id = ""
        assert self.client.get("/api/oauth/init").status_code == 500

    def test_callback_missing_code(self):
        assert self.client.get("/api/oauth/callback").status_code == 400

    def test_callback_stores_token(self):
        self.session.add("POST", TOKEN_URL, FakeResponse({"access_token": "a", "refresh_token": "r", "expires_in": 3600}))

        response = self.client.get("/api/oauth/callback", params={"code": "abc"})

        assert response.status_code == 200
        assert self.backend.get_token("google_my_business").access_token == "a"

    def test_callback_grant_failure(self):
        self.session.add("POST", TOKEN_URL, FakeResponse({"error": "invalid_grant"}, status_code=400))
        assert self.client.get("/api/oauth/callback", params={"code": "abc"}).status_code == 500

    def test_set_ids_requires_both(self):
        response = self.client.post("/api/oauth/set-ids", json={"accountId": "acc"})
        assert response.status_code == 400

    def test_set_ids_without_token(self):
        response = self.client.post("/api/oauth/set-ids", json={"accountId": "acc", "locationId": "loc"})
        assert response.status_code == 404

    def test_set_ids(self):
        self.backend.insert_token(OAuthToken(
            service="google_my_business", access_token="a", refresh_token="r",
            expiry_date=FrozenClock()(),
        ))

        response = self.client.post("/api/oauth/set-ids", json={"accountId": "acc", "locationId": "loc"})

        assert response.status_code == 200
        assert self.client.get("/api/oauth/status").json() == {
            "isAuthenticated": True, "hasAccountId": True, "hasLocationId": True,
        }


class TestHealth:
    """Tests for /api/health and the app lifespan."""

    def test_health(self):
        client, _, _ = build_client([StubAdapter(ReviewSource.YELP)])
        body = client.get("/api/health").json()

        assert body["status"] == "healthy"
        assert body["storageBackend"] == "memory"
        assert body["sources"] == ["yelp"]
        assert body["scheduler"] == {"is_running": False}

    def test_lifespan_starts_and_stops_scheduler(self):
        client, services, _ = build_client([])
        services.scheduler = Mock()
        services.scheduler.get_status.return_value = {"is_running": True}

        with client:
            assert client.get("/api/health").json()["scheduler"] == {"is_running": True}

        services.scheduler.start.assert_called_once()
        services.scheduler.stop.assert_called_once_with(wait=False)
