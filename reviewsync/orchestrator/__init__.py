"""
Reviewsync Orchestrator Module
==============================

Orchestration layer for review refreshes.

Components:
    - ReviewRefresher: fan-out fetch, merge, store (on-demand + periodic)
    - RefreshScheduler: 24h background timer
    - CLI: Command-line interface

Usage:
    from reviewsync.orchestrator import ReviewRefresher

    refresher = ReviewRefresher.from_settings()
    result = refresher.run_periodic_cycle()
"""

from .refresh import (
    ReviewRefresher,
    CycleResult,
    CycleStatus,
    CycleMode,
    RunHistory,
)
from .scheduler import RefreshScheduler

__all__ = [
    # Cycles
    "ReviewRefresher",
    "CycleResult",
    "CycleStatus",
    "CycleMode",
    "RunHistory",
    # Scheduler
    "RefreshScheduler",
]
