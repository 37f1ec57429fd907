"""
Review Deduplication & Merge
============================

Combines the yields of every source for one refresh cycle into a single
insert/retire plan.

Steps (in order):
    1. Rating floor: reviews below the ingestion floor never reach the store.
    2. Identity dedup: the first review per identity key wins, order kept.
    3. Content collapse: reviews sharing (text, timestamp) inside the batch keep
       the copy from the highest-priority source, in the first copy's slot.
    4. Upgrade vs. persisted rows: an incoming review whose content key is
       already stored from a lower-priority source retires that row; at equal
       or lower priority the incoming copy is dropped.

Usage:
    merger = ReviewMerger(source_priority=["places_api", "dataforseo"])
    plan = merger.merge(fetched, persisted=store.list_reviews())
    store.apply_delta(plan.to_insert, plan.to_retire)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..data.data_models import Review, ReviewSource

logger = logging.getLogger(__name__)


DEFAULT_SOURCE_PRIORITY: List[ReviewSource] = [
    ReviewSource.PLACES_API,
    ReviewSource.DATAFORSEO,
    ReviewSource.YELP,
    ReviewSource.FACEBOOK,
    ReviewSource.GOOGLE_MY_BUSINESS,
]

DEFAULT_RATING_FLOOR = 4


@dataclass
class MergePlan:
    """Result of one merge: rows to insert and store ids to delete."""
    to_insert: List[Review] = field(default_factory=list)
    to_retire: List[str] = field(default_factory=list)

    # Counters, for cycle logging
    fetched: int = 0
    below_floor: int = 0
    duplicates: int = 0
    upgraded: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.to_insert and not self.to_retire

    def summary(self) -> Dict[str, int]:
        return {
            "fetched": self.fetched,
            "below_floor": self.below_floor,
            "duplicates": self.duplicates,
            "upgraded": self.upgraded,
            "to_insert": len(self.to_insert),
            "to_retire": len(self.to_retire),
        }


class ReviewMerger:
    """
    Cross-source identity resolution with a source-priority upgrade policy.

    Sources missing from the priority list rank below every listed source.
    """

    def __init__(
        self,
        source_priority: Optional[Sequence] = None,
        rating_floor: Optional[int] = DEFAULT_RATING_FLOOR,
    ):
        """
        Args:
            source_priority: Sources (ReviewSource or value strings), highest first
            rating_floor: Minimum rating kept at ingestion; None disables the floor
        """
        order = [ReviewSource(s) for s in (source_priority or DEFAULT_SOURCE_PRIORITY)]
        # Higher number = more trusted
        self._rank: Dict[ReviewSource, int] = {
            source: len(order) - index for index, source in enumerate(order)
        }
        self.rating_floor = rating_floor

    def rank(self, source: ReviewSource) -> int:
        """Priority rank of a source (0 for unlisted sources)."""
        return self._rank.get(ReviewSource(source), 0)

    def outranks(self, challenger: ReviewSource, incumbent: ReviewSource) -> bool:
        """True if challenger is strictly more trusted than incumbent."""
        return self.rank(challenger) > self.rank(incumbent)

    # =========================================================================
    # Individual steps
    # =========================================================================

    def apply_rating_floor(self, reviews: Iterable[Review]) -> List[Review]:
        """Drop reviews rated below the ingestion floor."""
        if self.rating_floor is None:
            return list(reviews)
        return [r for r in reviews if r.rating >= self.rating_floor]

    @staticmethod
    def dedupe(reviews: Iterable[Review]) -> List[Review]:
        """Keep the first review per identity key, preserving insertion order."""
        seen = set()
        unique = []
        for review in reviews:
            key = review.identity_key
            if key in seen:
                continue
            seen.add(key)
            unique.append(review)
        return unique

    def collapse_content(self, reviews: Sequence[Review]) -> List[Review]:
        """
        Collapse same-content copies inside one batch.

        The winning copy takes the slot of the first occurrence; equal
        priority keeps the earlier copy.
        """
        slots: Dict[Tuple[str, int], int] = {}
        result: List[Review] = []
        for review in reviews:
            key = review.content_key
            slot = slots.get(key)
            if slot is None:
                slots[key] = len(result)
                result.append(review)
            elif self.outranks(review.source, result[slot].source):
                result[slot] = review
        return result

    # =========================================================================
    # Full merge
    # =========================================================================

    def merge(
        self,
        fetched: Iterable[Review],
        persisted: Optional[Iterable[Review]] = None,
    ) -> MergePlan:
        """
        Build the insert/retire plan for one cycle.

        Args:
            fetched: Concatenated yields of every adapter, in source order
            persisted: Current store contents (omit for a full replace)

        Returns:
            MergePlan
        """
        fetched = list(fetched)
        plan = MergePlan(fetched=len(fetched))

        kept = self.apply_rating_floor(fetched)
        plan.below_floor = len(fetched) - len(kept)

        batch = self.collapse_content(self.dedupe(kept))
        plan.duplicates = len(kept) - len(batch)

        stored_by_content: Dict[Tuple[str, int], Review] = {}
        stored_identities = set()
        for row in persisted or []:
            stored_by_content.setdefault(row.content_key, row)
            stored_identities.add(row.identity_key)

        for review in batch:
            existing = stored_by_content.get(review.content_key)
            if existing is not None:
                if self.outranks(review.source, existing.source) and existing.id:
                    logger.info(
                        f"Upgrading {existing.source.value} review to {review.source.value}: "
                        f"\"{review.text[:50]}\""
                    )
                    plan.to_retire.append(existing.id)
                    plan.to_insert.append(review)
                    plan.upgraded += 1
                else:
                    plan.duplicates += 1
                continue

            if review.identity_key in stored_identities:
                plan.duplicates += 1
                continue

            plan.to_insert.append(review)

        logger.debug(f"Merge plan: {plan.summary()}")
        return plan
