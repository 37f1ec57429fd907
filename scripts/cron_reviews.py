#!/usr/bin/env python3
"""
Reviewsync Cron Review Refresh
==============================

Runs one periodic review cycle (incremental: inserts new reviews, upgrades
lower-priority copies, never clears the table) and exits.

Use this instead of the in-process scheduler when an external cron drives
refreshes (set SCHEDULER_ENABLED=false on the API service).

Cron: Schedule every 24h
    Command: python scripts/cron_reviews.py

Exit codes:
    0: cycle completed (possibly with some sources failing)
    1: every source failed or the store write failed
"""

import sys
import logging
from pathlib import Path
from datetime import datetime, timezone

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv(project_root / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("reviewsync.cron_reviews")


def main():
    from reviewsync.orchestrator.refresh import ReviewRefresher, CycleStatus
    from reviewsync.storage.backends import PersistenceError

    logger.info("=" * 60)
    logger.info(f"REVIEW REFRESH CRON: {datetime.now(timezone.utc).isoformat()}")
    logger.info("=" * 60)

    refresher = ReviewRefresher.from_settings()
    if len(refresher.registry) == 0:
        logger.error("No review sources configured. Nothing to do.")
        return 1

    try:
        result = refresher.run_periodic_cycle()
    except PersistenceError as e:
        logger.error(f"Store write failed, stored reviews unchanged: {e.message}")
        return 1
    finally:
        refresher.store.backend.close()

    for fetch in result.fetch_results:
        logger.info(
            f"  {fetch.source.value}: {fetch.status.value}, {len(fetch.reviews)} reviews"
            + (f" ({fetch.error})" if fetch.error else "")
        )

    logger.info("=" * 60)
    logger.info(
        f"CRON COMPLETE: {result.status.value}, "
        f"{result.inserted} inserted, {result.retired} retired"
    )
    logger.info("=" * 60)

    return 1 if result.status == CycleStatus.FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
