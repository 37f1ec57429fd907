"""
Review Store
============

Transactional persistence for the served review dataset.

Two mutation modes, each one transaction:
    replace_all(new_set)            -- delete every row, bulk insert new_set
    apply_delta(to_insert, retire)  -- insert given rows, delete given ids

After any call the table is either in its pre-call state or fully applied.
An empty full-replace is refused (warning, no-op) so a refresh where every
source failed cannot wipe the table.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..data.data_models import Review, ReviewSource
from .backends import StorageBackend

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewStore:
    """
    Review persistence over a StorageBackend.

    Assigns store ids (uuid4) and fetched_at on insert. Reads return
    committed rows only.
    """

    def __init__(self, backend: StorageBackend, clock: Callable[[], datetime] = utc_now):
        self.backend = backend
        self.clock = clock

    def _stamp(self, reviews: Sequence[Review]) -> List[Review]:
        fetched_at = self.clock()
        return [r.with_store_fields(str(uuid.uuid4()), fetched_at) for r in reviews]

    # =========================================================================
    # Mutations
    # =========================================================================

    def replace_all(self, new_set: Sequence[Review]) -> bool:
        """
        Atomically swap the whole dataset.

        Returns:
            False if new_set was empty and nothing was touched, True otherwise

        Raises:
            PersistenceError: the transaction failed; prior rows are intact
        """
        if not new_set:
            logger.warning("replace_all called with an empty set; keeping existing reviews")
            return False

        rows = self._stamp(new_set)
        with self.backend.transaction() as tx:
            deleted = tx.delete_all_reviews()
            inserted = tx.insert_reviews(rows)

        logger.info(f"Replaced review set: {deleted} deleted, {inserted} inserted")
        return True

    def apply_delta(self, to_insert: Sequence[Review], to_retire: Sequence[str]) -> Dict[str, int]:
        """
        Insert new rows and delete retired ids in one transaction.

        Raises:
            PersistenceError: the transaction failed; nothing was applied
        """
        if not to_insert and not to_retire:
            logger.debug("apply_delta: nothing to do")
            return {"inserted": 0, "retired": 0}

        rows = self._stamp(to_insert)
        with self.backend.transaction() as tx:
            retired = tx.delete_reviews(list(to_retire))
            inserted = tx.insert_reviews(rows)

        logger.info(f"Applied review delta: {inserted} inserted, {retired} retired")
        return {"inserted": inserted, "retired": retired}

    # =========================================================================
    # Reads
    # =========================================================================

    def list_reviews(self) -> List[Review]:
        """All committed reviews, newest first."""
        return self.backend.select_reviews()

    def count(self) -> int:
        return self.backend.count_reviews()

    def query(
        self,
        category: Optional[str] = None,
        min_rating: Optional[int] = None,
        source: Optional[str] = None,
    ) -> List[Review]:
        """
        Filtered read for the API.

        min_rating is a read-time filter, independent of the ingestion floor.
        """
        reviews = self.list_reviews()
        if category:
            reviews = [r for r in reviews if category in r.categories]
        if min_rating is not None:
            reviews = [r for r in reviews if r.rating >= min_rating]
        if source:
            wanted = ReviewSource(source)
            reviews = [r for r in reviews if r.source == wanted]
        return reviews

    def stats(self) -> Dict[str, Any]:
        """Mean rating (one decimal, as a string) and count over all stored rows."""
        reviews = self.list_reviews()
        if not reviews:
            return {"rating_value": None, "review_count": 0}
        mean = sum(r.rating for r in reviews) / len(reviews)
        return {"rating_value": f"{mean:.1f}", "review_count": len(reviews)}
