"""
Reviewsync Refresh Cycles
=========================

Fan-out fetch -> merge -> store, on two cadences:

    refresh_now()          on-demand: rating floor, full replace_all
    run_periodic_cycle()   background: upgrade policy vs. stored rows, apply_delta

Each adapter runs in its own worker with a bounded wait; a source that does
not answer in time counts as timed_out and the cycle carries on without it.
Adapter failures never abort a cycle. Persistence failures propagate.

Cycles inside one process are serialized. Nothing coordinates separate
processes: two instances committing concurrently means the later commit wins.

Usage:
    refresher = ReviewRefresher.from_settings()
    refresher.ensure_fresh()          # refresh if the store is empty
    refresher.run_periodic_cycle()
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..data.data_models import FetchResult, FetchStatus, Review
from ..reviews.review_merger import ReviewMerger, MergePlan
from ..sources.registry import AdapterRegistry, build_registry
from ..storage.backends import PersistenceError, create_backend
from ..storage.review_store import ReviewStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CycleMode(Enum):
    """Which cadence triggered a cycle."""
    ON_DEMAND = "on_demand"
    PERIODIC = "periodic"


class CycleStatus(Enum):
    """Refresh cycle outcome."""
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"   # some sources failed, rest applied
    FAILED = "failed"                     # every source failed, or the store write failed


@dataclass
class CycleResult:
    """Complete refresh cycle result."""
    cycle_id: str
    mode: CycleMode
    started_at: datetime
    status: CycleStatus = CycleStatus.COMPLETED
    completed_at: Optional[datetime] = None
    fetch_results: List[FetchResult] = field(default_factory=list)
    merge: Dict[str, int] = field(default_factory=dict)
    inserted: int = 0
    retired: int = 0
    replaced: Optional[bool] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def get_summary(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "mode": self.mode.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "sources": {
                r.source.value: {
                    "status": r.status.value,
                    "reviews": len(r.reviews),
                    "error": r.error,
                }
                for r in self.fetch_results
            },
            "merge": self.merge,
            "inserted": self.inserted,
            "retired": self.retired,
            "replaced": self.replaced,
            "error": self.error,
        }


@dataclass
class RunHistory:
    """Tracks refresh run history."""
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    last_run_duration: Optional[float] = None
    consecutive_failures: int = 0
    total_runs: int = 0
    total_successes: int = 0
    total_failures: int = 0
    recent: List[Dict[str, Any]] = field(default_factory=list)

    max_recent: int = 20

    def record_run(self, result: CycleResult):
        self.last_run_at = result.started_at
        self.last_run_status = result.status.value
        self.last_run_duration = result.duration_seconds
        self.total_runs += 1

        if result.status in (CycleStatus.COMPLETED, CycleStatus.PARTIAL_FAILURE):
            self.total_successes += 1
            self.consecutive_failures = 0
        else:
            self.total_failures += 1
            self.consecutive_failures += 1

        self.recent.append(result.get_summary())
        del self.recent[:-self.max_recent]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration": self.last_run_duration,
            "consecutive_failures": self.consecutive_failures,
            "total_runs": self.total_runs,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
        }


class ReviewRefresher:
    """
    Orchestrates one refresh cycle across every enabled source.

    Args:
        store: ReviewStore to write into
        registry: Enabled adapters
        merger: ReviewMerger (default priority and floor if None)
        clock: Returns the current aware datetime
        adapter_timeout: Seconds each source may take inside one fan-out
        interval: Periodic cadence used by is_due()
    """

    def __init__(
        self,
        store: ReviewStore,
        registry: AdapterRegistry,
        merger: Optional[ReviewMerger] = None,
        clock: Callable[[], datetime] = utc_now,
        adapter_timeout: float = 60.0,
        interval: timedelta = timedelta(hours=24),
    ):
        self.store = store
        self.registry = registry
        self.merger = merger or ReviewMerger()
        self.clock = clock
        self.adapter_timeout = adapter_timeout
        self.interval = interval
        self.history = RunHistory()
        self._cycle_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings=None, backend=None, **kwargs) -> "ReviewRefresher":
        """Wire backend, store, registry and merger from configuration."""
        if settings is None:
            from ..data.config import get_settings
            settings = get_settings()

        clock = kwargs.pop("clock", utc_now)
        backend = backend or create_backend(settings.database)
        refresh = settings.refresh
        return cls(
            store=ReviewStore(backend, clock=clock),
            registry=build_registry(settings, backend=backend, clock=clock),
            merger=ReviewMerger(refresh.source_priority, rating_floor=refresh.min_rating_floor),
            clock=clock,
            adapter_timeout=refresh.adapter_timeout,
            interval=timedelta(hours=refresh.interval_hours),
            **kwargs
        )

    @property
    def last_run_at(self) -> Optional[datetime]:
        return self.history.last_run_at

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """True if no cycle has run yet or the last one is at least one interval old."""
        if self.history.last_run_at is None:
            return True
        now = now or self.clock()
        return now - self.history.last_run_at >= self.interval

    # =========================================================================
    # Fan-out
    # =========================================================================

    def fetch_all(self) -> List[FetchResult]:
        """
        Invoke every adapter concurrently and join.

        Returns:
            One FetchResult per adapter, in registry order
        """
        adapters = self.registry.adapters
        if not adapters:
            return []

        results: Dict[int, FetchResult] = {}
        executor = ThreadPoolExecutor(max_workers=len(adapters), thread_name_prefix="review-fetch")
        future_to_index = {
            executor.submit(adapter.fetch_reviews): index
            for index, adapter in enumerate(adapters)
        }
        try:
            for future in as_completed(future_to_index, timeout=self.adapter_timeout):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    # fetch_reviews() does not raise; this guards a broken adapter
                    logger.error(f"[{adapters[index].name}] adapter crashed: {e}")
                    results[index] = FetchResult.failure(adapters[index].source, str(e))
        except FuturesTimeoutError:
            for future, index in future_to_index.items():
                if index not in results:
                    future.cancel()
                    name = adapters[index].name
                    logger.warning(
                        f"[{name}] no answer within {self.adapter_timeout}s, skipping this cycle",
                        extra={"source": name, "status": FetchStatus.TIMED_OUT.value, "duration": self.adapter_timeout},
                    )
                    results[index] = FetchResult.failure(
                        adapters[index].source,
                        f"timed out after {self.adapter_timeout}s",
                        status=FetchStatus.TIMED_OUT,
                        duration=self.adapter_timeout,
                    )
        finally:
            executor.shutdown(wait=False)

        return [results[index] for index in range(len(adapters))]

    # =========================================================================
    # Cycles
    # =========================================================================

    def _start(self, mode: CycleMode) -> CycleResult:
        result = CycleResult(cycle_id=str(uuid.uuid4())[:8], mode=mode, started_at=self.clock())
        logger.info(f"=== Review refresh {result.cycle_id} ({mode.value}) starting ===", extra={"cycle": result.cycle_id})
        return result

    def _fetch_into(self, result: CycleResult) -> List[Review]:
        result.fetch_results = self.fetch_all()
        fetched: List[Review] = []
        for fetch in result.fetch_results:
            fetched.extend(fetch.reviews)

        failed = [r for r in result.fetch_results if not r.ok]
        if failed and len(failed) == len(result.fetch_results):
            result.status = CycleStatus.FAILED
        elif failed:
            result.status = CycleStatus.PARTIAL_FAILURE
        return fetched

    def _finish(self, result: CycleResult, plan: Optional[MergePlan] = None) -> CycleResult:
        result.completed_at = self.clock()
        if plan is not None:
            result.merge = plan.summary()
        self.history.record_run(result)
        logger.info(
            f"=== Review refresh {result.cycle_id} {result.status.value}: "
            f"+{result.inserted} / -{result.retired} ===",
            extra={
                "cycle": result.cycle_id,
                "status": result.status.value,
                "duration": result.duration_seconds,
            },
        )
        return result

    def _fail(self, result: CycleResult, error: PersistenceError, plan: MergePlan) -> None:
        result.status = CycleStatus.FAILED
        result.error = error.message
        logger.error(f"Review refresh {result.cycle_id}: store write failed, previous data kept: {error.message}")
        self._finish(result, plan)

    def refresh_now(self) -> CycleResult:
        """
        On-demand full refresh: fetch everything, apply the rating floor and
        atomically replace the stored set.

        An empty merged set leaves the store untouched.

        Raises:
            PersistenceError: the replace failed; stored data is unchanged
        """
        with self._cycle_lock:
            result = self._start(CycleMode.ON_DEMAND)
            fetched = self._fetch_into(result)
            plan = self.merger.merge(fetched)

            try:
                result.replaced = self.store.replace_all(plan.to_insert)
            except PersistenceError as e:
                self._fail(result, e, plan)
                raise

            if result.replaced:
                result.inserted = len(plan.to_insert)
            return self._finish(result, plan)

    def run_periodic_cycle(self) -> CycleResult:
        """
        Incremental cycle: merge against stored rows with the upgrade policy
        and apply only the resulting inserts and retirements.

        Raises:
            PersistenceError: the delta failed; stored data is unchanged
        """
        with self._cycle_lock:
            result = self._start(CycleMode.PERIODIC)
            fetched = self._fetch_into(result)
            plan = self.merger.merge(fetched, persisted=self.store.list_reviews())

            try:
                applied = self.store.apply_delta(plan.to_insert, plan.to_retire)
            except PersistenceError as e:
                self._fail(result, e, plan)
                raise

            result.inserted = applied["inserted"]
            result.retired = applied["retired"]
            return self._finish(result, plan)

    def ensure_fresh(self, force: bool = False) -> Optional[CycleResult]:
        """
        Run an on-demand refresh if forced or if the store is empty.

        Returns:
            CycleResult if a refresh ran, None otherwise
        """
        if force or self.store.count() == 0:
            if not force:
                logger.info("Review store is empty, refreshing before serving")
            return self.refresh_now()
        return None

    def get_status(self) -> Dict[str, Any]:
        return {
            "sources": self.registry.enabled_sources,
            "interval_hours": self.interval.total_seconds() / 3600,
            "adapter_timeout": self.adapter_timeout,
            "history": self.history.to_dict(),
            "recent": list(self.history.recent),
        }
