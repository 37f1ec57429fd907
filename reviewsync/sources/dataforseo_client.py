"""
DataForSEO Review Clients (Google + Yelp)
=========================================

Both use the async task queue through AsyncTaskBroker: each call returns
the latest ready task's reviews (possibly none) and queues the next task.

Task payloads:
    Google: place_id, location_code=2840 (US), language_code=en,
            depth=500, sort_by=newest
    Yelp:   alias, language_name=English, depth=150,
            sort_by=highest_rating, priority=2

Cost: ~$0.00075 per 10 reviews.
"""

import logging
from typing import Any, Dict, List, Optional

from ..data.data_models import Review, ReviewSource
from ..reviews.review_categories import classify
from .base import ReviewSourceAdapter, ProviderUnavailableError, parse_timestamp
from .task_broker import AsyncTaskBroker

logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "https://api.dataforseo.com/v3/business_data"


class _DataForSeoAdapter(ReviewSourceAdapter):
    """Shared broker wiring and item filtering."""

    endpoint: str = ""

    def __init__(self, login: str, password: str, base_url: str = DEFAULT_BASE_URL, **kwargs):
        super().__init__(**kwargs)
        self.broker = AsyncTaskBroker(
            f"{base_url.rstrip('/')}/{self.endpoint}",
            login,
            password,
            session=self.session,
            timeout=self.timeout,
        )

    def task_payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def normalize(self, item: Dict[str, Any]) -> Optional[Review]:
        raise NotImplementedError

    def _fetch(self) -> List[Review]:
        collection = self.broker.collect_and_post(self.task_payload())
        if collection.error and not collection.items:
            raise ProviderUnavailableError(collection.error)

        usable = [
            item for item in collection.items
            if isinstance(item, dict)
            and isinstance(item.get("rating"), dict)
            and item["rating"].get("value")
            and item.get("review_text")
        ]
        reviews = self._normalize_items(usable, self.normalize)

        if collection.consumed_task_id:
            logger.info(
                f"[{self.name}] task {collection.consumed_task_id}: "
                f"{len(reviews)} of {len(collection.items)} items usable"
            )
        return reviews


class DataForSeoGoogleAdapter(_DataForSeoAdapter):
    """Google reviews via DataForSEO (source: dataforseo)."""

    source = ReviewSource.DATAFORSEO
    endpoint = "google/reviews"

    def __init__(self, login: str, password: str, place_id: str, depth: int = 500, **kwargs):
        super().__init__(login, password, **kwargs)
        self.place_id = place_id
        self.depth = depth

    def task_payload(self) -> Dict[str, Any]:
        return {
            "place_id": self.place_id,
            "location_code": 2840,
            "language_code": "en",
            "depth": self.depth,
            "sort_by": "newest",
        }

    def normalize(self, item: Dict[str, Any]) -> Optional[Review]:
        author = item.get("author") or {}
        text = item["review_text"]
        return Review(
            author_name=author.get("name") or "Anonymous",
            author_url=author.get("url"),
            profile_photo_url=author.get("photo_url"),
            rating=int(item["rating"]["value"]),
            text=text,
            relative_time=item.get("time_ago") or "recently",
            timestamp=parse_timestamp(item.get("timestamp"), self.clock),
            categories=classify(text),
            source=self.source,
            review_id=item.get("review_id"),
        )


class DataForSeoYelpAdapter(_DataForSeoAdapter):
    """Yelp reviews via DataForSEO (source: yelp)."""

    source = ReviewSource.YELP
    endpoint = "yelp/reviews"

    def __init__(self, login: str, password: str, alias: str, depth: int = 150, **kwargs):
        super().__init__(login, password, **kwargs)
        self.alias = alias
        self.depth = depth

    def task_payload(self) -> Dict[str, Any]:
        return {
            "alias": self.alias,
            "language_name": "English",
            "depth": self.depth,
            "sort_by": "highest_rating",
            "priority": 2,
        }

    def normalize(self, item: Dict[str, Any]) -> Optional[Review]:
        text = item["review_text"]
        return Review(
            author_name=item.get("profile_name") or "Yelp User",
            author_url=item.get("profile_url"),
            profile_photo_url=item.get("profile_image_url"),
            rating=int(item["rating"]["value"]),
            text=text,
            relative_time=item.get("time_ago") or "recently",
            timestamp=parse_timestamp(item.get("timestamp"), self.clock),
            categories=classify(text),
            source=self.source,
            review_id=item.get("review_id"),
        )
