"""
Tests for refresh cycles: fan-out, on-demand replace, periodic upgrades.

Usage:
    pytest tests/test_refresh.py -v
"""

import threading
from datetime import timedelta

import pytest

from reviewsync.data.data_models import Review, ReviewSource, FetchStatus
from reviewsync.orchestrator.refresh import ReviewRefresher, CycleMode, CycleStatus, CycleResult, RunHistory
from reviewsync.reviews.review_merger import ReviewMerger
from reviewsync.sources.base import ReviewSourceAdapter, ProviderUnavailableError
from reviewsync.sources.registry import AdapterRegistry
from reviewsync.storage.backends import PersistenceError
from reviewsync.storage.memory import InMemoryBackend, MemoryTransaction
from reviewsync.storage.review_store import ReviewStore

from conftest import FrozenClock, FROZEN_NOW


# =============================================================================
# TEST DATA
# =============================================================================

def make_review(text="Same words", timestamp=100, source=ReviewSource.PLACES_API, rating=5, author="Bob", review_id=None):
    return Review(
        author_name=author,
        rating=rating,
        text=text,
        timestamp=timestamp,
        source=source,
        review_id=review_id,
    )


class StubAdapter(ReviewSourceAdapter):
    """Returns canned reviews, raises, or blocks until released."""

    def __init__(self, source, reviews=None, error=None, block=None):
        super().__init__(session=object())
        self.source = source
        self.reviews = reviews or []
        self.error = error
        self.block = block
        self.calls = 0

    def _fetch(self):
        self.calls += 1
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.reviews)


class BrokenTransaction(MemoryTransaction):
    def insert_reviews(self, reviews):
        raise RuntimeError("connection lost")


class BrokenWriteBackend(InMemoryBackend):
    def _new_transaction(self, rows):
        return BrokenTransaction(rows)


def make_refresher(adapters, backend=None, clock=None, **kwargs):
    clock = clock or FrozenClock()
    store = ReviewStore(backend or InMemoryBackend(), clock=clock)
    return ReviewRefresher(store, AdapterRegistry(adapters), merger=ReviewMerger(), clock=clock, **kwargs)


# =============================================================================
# FAN-OUT
# =============================================================================

class TestFetchAll:
    """Tests for concurrent adapter fan-out."""

    def test_results_in_registry_order(self):
        refresher = make_refresher([
            StubAdapter(ReviewSource.PLACES_API, [make_review(text="a")]),
            StubAdapter(ReviewSource.YELP, error=ProviderUnavailableError("down")),
            StubAdapter(ReviewSource.FACEBOOK),
        ])

        results = refresher.fetch_all()

        assert [r.source for r in results] == [
            ReviewSource.PLACES_API, ReviewSource.YELP, ReviewSource.FACEBOOK,
        ]
        assert [r.status for r in results] == [FetchStatus.OK, FetchStatus.FAILED, FetchStatus.EMPTY]

    def test_slow_adapter_times_out(self):
        """A hung source is skipped; the others still count."""
        release = threading.Event()
        refresher = make_refresher([
            StubAdapter(ReviewSource.PLACES_API, [make_review(text="fast")]),
            StubAdapter(ReviewSource.FACEBOOK, block=release),
        ], adapter_timeout=0.2)

        try:
            results = refresher.fetch_all()
        finally:
            release.set()

        assert results[0].status == FetchStatus.OK
        assert results[1].status == FetchStatus.TIMED_OUT
        assert results[1].reviews == []

    def test_no_adapters(self):
        assert make_refresher([]).fetch_all() == []


# =============================================================================
# ON-DEMAND
# =============================================================================

class TestRefreshNow:
    """Tests for the on-demand full refresh."""

    def test_end_to_end_single_row(self):
        """
        facebook and places_api carry the same review, places_api twice,
        plus a 2-star review: exactly one places_api row is stored.
        """
        refresher = make_refresher([
            StubAdapter(ReviewSource.PLACES_API, [
                make_review(source=ReviewSource.PLACES_API),
                make_review(source=ReviewSource.PLACES_API),
                make_review(text="Rude", timestamp=200, rating=2),
            ]),
            StubAdapter(ReviewSource.FACEBOOK, [
                make_review(source=ReviewSource.FACEBOOK, review_id="fb-1"),
            ]),
        ])

        result = refresher.refresh_now()

        rows = refresher.store.list_reviews()
        assert len(rows) == 1
        assert rows[0].source == ReviewSource.PLACES_API
        assert rows[0].fetched_at == FROZEN_NOW
        assert result.status == CycleStatus.COMPLETED
        assert result.mode == CycleMode.ON_DEMAND
        assert result.inserted == 1
        assert result.merge["below_floor"] == 1

    def test_replaces_previous_rows(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review(text="first")])
        refresher = make_refresher([adapter])
        refresher.refresh_now()

        adapter.reviews = [make_review(text="second")]
        refresher.refresh_now()

        assert [r.text for r in refresher.store.list_reviews()] == ["second"]

    def test_all_sources_failed_keeps_data(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review(text="kept")])
        refresher = make_refresher([adapter])
        refresher.refresh_now()

        adapter.error = ProviderUnavailableError("down")
        result = refresher.refresh_now()

        assert result.status == CycleStatus.FAILED
        assert result.replaced is False
        assert [r.text for r in refresher.store.list_reviews()] == ["kept"]

    def test_partial_failure(self):
        refresher = make_refresher([
            StubAdapter(ReviewSource.PLACES_API, [make_review()]),
            StubAdapter(ReviewSource.YELP, error=ProviderUnavailableError("down")),
        ])
        result = refresher.refresh_now()

        assert result.status == CycleStatus.PARTIAL_FAILURE
        assert refresher.store.count() == 1

    def test_store_failure_propagates(self):
        backend = BrokenWriteBackend()
        refresher = make_refresher([StubAdapter(ReviewSource.PLACES_API, [make_review()])], backend=backend)

        with pytest.raises(PersistenceError):
            refresher.refresh_now()

        assert refresher.history.last_run_status == "failed"
        assert refresher.history.consecutive_failures == 1
        assert backend.count_reviews() == 0


class TestEnsureFresh:
    """Tests for the serve-time refresh trigger."""

    def test_empty_store_refreshes(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review()])
        refresher = make_refresher([adapter])

        assert refresher.ensure_fresh() is not None
        assert adapter.calls == 1

    def test_populated_store_does_not_refresh(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review()])
        refresher = make_refresher([adapter])
        refresher.refresh_now()

        assert refresher.ensure_fresh() is None
        assert adapter.calls == 1

    def test_force(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review()])
        refresher = make_refresher([adapter])
        refresher.refresh_now()

        refresher.ensure_fresh(force=True)
        assert adapter.calls == 2


# =============================================================================
# PERIODIC
# =============================================================================

class TestPeriodicCycle:
    """Tests for the incremental cycle with upgrades."""

    def test_upgrade_replaces_lower_priority_copy(self):
        """Stored facebook copy is retired when places_api returns the same content."""
        fb = StubAdapter(ReviewSource.FACEBOOK, [make_review(source=ReviewSource.FACEBOOK, review_id="fb-1")])
        refresher = make_refresher([fb])
        refresher.refresh_now()
        old_id = refresher.store.list_reviews()[0].id

        refresher.registry.register(StubAdapter(ReviewSource.PLACES_API, [make_review()]))
        result = refresher.run_periodic_cycle()

        rows = refresher.store.list_reviews()
        assert len(rows) == 1
        assert rows[0].source == ReviewSource.PLACES_API
        assert rows[0].id != old_id
        assert result.inserted == 1
        assert result.retired == 1
        assert result.mode == CycleMode.PERIODIC

    def test_no_downgrade(self):
        places = StubAdapter(ReviewSource.PLACES_API, [make_review()])
        refresher = make_refresher([places])
        refresher.refresh_now()

        places.reviews = []
        refresher.registry.register(StubAdapter(ReviewSource.FACEBOOK, [make_review(source=ReviewSource.FACEBOOK)]))
        result = refresher.run_periodic_cycle()

        assert result.inserted == 0
        assert result.retired == 0
        assert refresher.store.list_reviews()[0].source == ReviewSource.PLACES_API

    def test_adds_new_reviews_without_clearing(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review(text="old")])
        refresher = make_refresher([adapter])
        refresher.refresh_now()

        adapter.reviews = [make_review(text="new", timestamp=500)]
        refresher.run_periodic_cycle()

        assert [r.text for r in refresher.store.list_reviews()] == ["new", "old"]

    def test_repeat_cycle_is_idempotent(self):
        adapter = StubAdapter(ReviewSource.PLACES_API, [make_review()])
        refresher = make_refresher([adapter])
        refresher.run_periodic_cycle()
        second = refresher.run_periodic_cycle()

        assert second.inserted == 0
        assert refresher.store.count() == 1


class TestScheduling:
    """Tests for is_due and run history."""

    def test_is_due(self):
        clock = FrozenClock()
        refresher = make_refresher([], clock=clock, interval=timedelta(hours=24))
        assert refresher.is_due()

        refresher.run_periodic_cycle()
        assert not refresher.is_due()

        clock.advance(hours=23)
        assert not refresher.is_due()
        clock.advance(hours=1)
        assert refresher.is_due()

    def test_history_recent_capped(self):
        history = RunHistory(max_recent=2)
        for i in range(3):
            history.record_run(CycleResult(cycle_id=str(i), mode=CycleMode.PERIODIC, started_at=FROZEN_NOW))
        assert [r["cycle_id"] for r in history.recent] == ["1", "2"]
        assert history.total_runs == 3

    def test_status(self):
        refresher = make_refresher([StubAdapter(ReviewSource.YELP)])
        refresher.run_periodic_cycle()
        status = refresher.get_status()
        assert status["sources"] == ["yelp"]
        assert status["history"]["total_runs"] == 1

    def test_from_settings_memory(self):
        refresher = ReviewRefresher.from_settings()
        assert refresher.store.backend.name == "memory"
        assert len(refresher.registry) == 0
        assert refresher.interval == timedelta(hours=24)
