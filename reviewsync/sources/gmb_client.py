"""
Google My Business Reviews Client
=================================

Business Profile API v4:
    GET /v4/accounts/{account}/locations/{location}/reviews?pageSize=50&pageToken=...

Bearer token from OAuthTokenManager. Pages are accumulated across
nextPageToken; a failure after the first page keeps what was gathered.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from ..data.data_models import Review, ReviewSource
from ..reviews.review_categories import classify
from .base import (
    ReviewSourceAdapter,
    ProviderError,
    MalformedResponseError,
    PartialFetchError,
    parse_timestamp,
    relative_time,
    now_unix,
)
from .oauth_tokens import OAuthTokenManager, AuthExpiredError

logger = logging.getLogger(__name__)


STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}

REVIEW_NAME_ID = re.compile(r"reviews/([^/]+)$")

PAGE_SIZE = 50
MAX_PAGES = 100


class GoogleMyBusinessAdapter(ReviewSourceAdapter):
    """Google Business Profile listing reviews (source: google_my_business)."""

    source = ReviewSource.GOOGLE_MY_BUSINESS

    API_URL = "https://mybusiness.googleapis.com/v4"

    def __init__(self, token_manager: OAuthTokenManager, service_name: str = "google_my_business", **kwargs):
        super().__init__(**kwargs)
        self.token_manager = token_manager
        self.service_name = service_name

    def _fetch(self) -> List[Review]:
        token = self.token_manager.get_token(self.service_name)
        if token is None:
            logger.info(f"[{self.name}] no OAuth token stored; authenticate via /api/oauth/init")
            return []
        if not token.account_id or not token.location_id:
            logger.warning(f"[{self.name}] token has no account/location ids; call /api/oauth/set-ids")
            return []

        try:
            access_token = self.token_manager.get_valid_access_token(self.service_name)
        except AuthExpiredError as e:
            logger.error(f"[{self.name}] manual re-authorization required: {e.message}")
            raise

        url = f"{self.API_URL}/accounts/{token.account_id}/locations/{token.location_id}/reviews"
        headers = {"Authorization": f"Bearer {access_token}"}
        now = now_unix(self.clock)

        reviews: List[Review] = []
        page_token: Optional[str] = None
        for _ in range(MAX_PAGES):
            params = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token

            try:
                data = self._request_json("GET", url, params=params, headers=headers)
                items = data.get("reviews") or []
                if not isinstance(items, list):
                    raise MalformedResponseError("GMB API: 'reviews' is not a list")
            except ProviderError as e:
                if reviews:
                    raise PartialFetchError(e.message, reviews, cause=e) from e
                raise

            reviews.extend(self._normalize_items(items, lambda item: self._normalize(item, now)))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(f"[{self.name}] stopped after {MAX_PAGES} pages")

        return reviews

    def _normalize(self, item: Dict[str, Any], now: int) -> Optional[Review]:
        if not isinstance(item, dict):
            return None

        text = item.get("comment") or (item.get("reviewReply") or {}).get("comment") or ""
        if not text:
            return None

        match = REVIEW_NAME_ID.search(item.get("name") or "")
        reviewer = item.get("reviewer") or {}
        timestamp = parse_timestamp(item.get("createTime"), self.clock)

        return Review(
            author_name=reviewer.get("displayName") or "Anonymous",
            author_url=None,
            profile_photo_url=reviewer.get("profilePhotoUrl"),
            rating=STAR_RATINGS.get(item.get("starRating"), 5),
            text=text,
            relative_time=relative_time(timestamp, now),
            timestamp=timestamp,
            categories=classify(text),
            source=self.source,
            review_id=match.group(1) if match else None,
        )
