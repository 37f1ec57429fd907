"""
Facebook Page Ratings Client
============================

Graph API /{page_id}/ratings, following paging.next until exhausted.

Requires a page access token with pages_read_user_content and
pages_read_engagement.

Rating scale: an explicit star rating wins; otherwise a recommendation is
mapped positive -> 5, negative -> 2.
"""

import logging
from typing import Any, Dict, List, Optional

from ..data.data_models import Review, ReviewSource
from ..reviews.review_categories import classify
from .base import (
    ReviewSourceAdapter,
    ProviderError,
    ProviderUnavailableError,
    MalformedResponseError,
    PartialFetchError,
    parse_timestamp,
    relative_time,
    now_unix,
)

logger = logging.getLogger(__name__)


RECOMMENDATION_RATINGS = {"positive": 5, "negative": 2}

RATING_FIELDS = "created_time,recommendation_type,rating,review_text,reviewer{name,id}"

# Upper bound on followed pages
MAX_PAGES = 50


class FacebookReviewAdapter(ReviewSourceAdapter):
    """Facebook page recommendations (source: facebook)."""

    source = ReviewSource.FACEBOOK

    GRAPH_URL = "https://graph.facebook.com"

    def __init__(self, page_id: str, access_token: str, graph_version: str = "v18.0", **kwargs):
        super().__init__(**kwargs)
        self.page_id = page_id
        self.access_token = access_token
        self.graph_version = graph_version

    def _first_page(self) -> Dict[str, Any]:
        return self._request_json(
            "GET",
            f"{self.GRAPH_URL}/{self.graph_version}/{self.page_id}/ratings",
            params={
                "fields": RATING_FIELDS,
                "limit": 100,
                "access_token": self.access_token,
            },
        )

    def _fetch(self) -> List[Review]:
        reviews: List[Review] = []
        next_url: Optional[str] = None
        now = now_unix(self.clock)

        for page in range(MAX_PAGES):
            try:
                data = self._first_page() if page == 0 else self._request_json("GET", next_url)
                if data.get("error"):
                    error = data["error"]
                    raise ProviderUnavailableError(
                        f"Graph API error: {error.get('message')} ({error.get('type')})",
                        status_code=error.get("code"),
                    )
                items = data.get("data") or []
                if not isinstance(items, list):
                    raise MalformedResponseError("Graph API: 'data' is not a list")
            except ProviderError as e:
                if reviews:
                    raise PartialFetchError(e.message, reviews, cause=e) from e
                raise

            if not items:
                break

            reviews.extend(self._normalize_items(items, lambda item: self._normalize(item, now)))

            next_url = (data.get("paging") or {}).get("next")
            if not next_url:
                break
        else:
            logger.warning(f"[{self.name}] stopped after {MAX_PAGES} pages")

        return reviews

    def _normalize(self, item: Dict[str, Any], now: int) -> Optional[Review]:
        if not isinstance(item, dict) or not item.get("review_text"):
            return None

        if item.get("rating") is not None:
            rating = int(item["rating"])
        else:
            rating = RECOMMENDATION_RATINGS.get(item.get("recommendation_type"), 5)

        reviewer = item.get("reviewer") or {}
        timestamp = parse_timestamp(item.get("created_time"), self.clock)
        text = item["review_text"]

        return Review(
            author_name=reviewer.get("name") or "Facebook User",
            author_url=f"https://facebook.com/{reviewer['id']}" if reviewer.get("id") else None,
            profile_photo_url=None,
            rating=rating,
            text=text,
            relative_time=relative_time(timestamp, now),
            timestamp=timestamp,
            categories=classify(text),
            source=self.source,
            review_id=item.get("id"),
        )
