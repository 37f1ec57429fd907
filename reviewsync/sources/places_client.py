"""
Google Places Reviews Client
============================

Synchronous place-details call. Returns at most the handful of newest
reviews Google exposes for a place.

Configuration:
    GOOGLE_PLACES_API_KEY: Places API key
    GOOGLE_PLACE_ID: Place to read
"""

import logging
from typing import Any, Dict, List

from ..data.data_models import Review, ReviewSource
from ..reviews.review_categories import classify
from .base import ReviewSourceAdapter, MalformedResponseError, ProviderUnavailableError, parse_timestamp

logger = logging.getLogger(__name__)


class PlacesReviewAdapter(ReviewSourceAdapter):
    """Google Places details API (source: places_api)."""

    source = ReviewSource.PLACES_API

    DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"

    def __init__(self, api_key: str, place_id: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.place_id = place_id

    def _fetch(self) -> List[Review]:
        data = self._request_json(
            "GET",
            self.DETAILS_URL,
            params={
                "place_id": self.place_id,
                "fields": "reviews",
                "reviews_sort": "newest",
                "key": self.api_key,
            },
        )

        status = data.get("status")
        if status != "OK":
            raise ProviderUnavailableError(
                f"Places API status {status}: {data.get('error_message', '')}".strip(),
                response=data,
            )

        raw_reviews = (data.get("result") or {}).get("reviews") or []
        if not isinstance(raw_reviews, list):
            raise MalformedResponseError("Places API: 'reviews' is not a list")

        return self._normalize_items(raw_reviews, self._normalize)

    def _normalize(self, item: Dict[str, Any]):
        text = item.get("text")
        rating = item.get("rating")
        if not text or not rating:
            return None

        return Review(
            author_name=item.get("author_name") or "Anonymous",
            author_url=item.get("author_url"),
            profile_photo_url=item.get("profile_photo_url"),
            rating=int(rating),
            text=text,
            relative_time=item.get("relative_time_description") or "recently",
            timestamp=parse_timestamp(item.get("time"), self.clock),
            categories=classify(text),
            source=self.source,
            review_id=None,
        )
