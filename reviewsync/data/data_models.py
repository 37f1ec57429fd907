"""
Reviewsync Data Models
======================

Dataclasses representing the canonical structures shared by every layer.
Provider payloads are normalized into these at the adapter boundary; nothing
provider-shaped travels further than the adapter that fetched it.

Models:
    - Review: Canonical, persisted review record
    - OAuthToken: One stored OAuth2 credential per service
    - FetchResult: Outcome of one adapter invocation (ok / empty / partial / failed / timed_out)
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any


class ReviewSource(str, Enum):
    """Provider a review was fetched from."""
    PLACES_API = "places_api"
    DATAFORSEO = "dataforseo"
    YELP = "yelp"
    FACEBOOK = "facebook"
    GOOGLE_MY_BUSINESS = "google_my_business"


class FetchStatus(str, Enum):
    """Outcome of one adapter call."""
    OK = "ok"
    EMPTY = "empty"
    PARTIAL = "partial"     # some pages fetched before a failure
    FAILED = "failed"
    TIMED_OUT = "timed_out"


DEFAULT_CATEGORY = "general"

# Characters of text used in the author-based identity key
IDENTITY_TEXT_PREFIX = 100


@dataclass
class Review:
    """
    Canonical review record.

    Invariants enforced in __post_init__:
        - rating is clamped into [1, 5]
        - categories is never empty (defaults to ["general"])
        - source is always a ReviewSource
    """
    author_name: str
    rating: int
    text: str
    timestamp: int                      # unix seconds, canonical ordering field
    source: ReviewSource
    relative_time: str = "recently"     # display only
    categories: List[str] = field(default_factory=list)
    author_url: Optional[str] = None
    profile_photo_url: Optional[str] = None
    review_id: Optional[str] = None     # provider-native id
    id: Optional[str] = None            # store-assigned
    fetched_at: Optional[datetime] = None

    def __post_init__(self):
        self.source = ReviewSource(self.source)
        self.rating = max(1, min(5, int(self.rating)))
        self.timestamp = int(self.timestamp)
        if not self.categories:
            self.categories = [DEFAULT_CATEGORY]

    @property
    def identity_key(self) -> Tuple:
        """Uniqueness key: source + provider id, else author/text-prefix/timestamp."""
        if self.review_id:
            return ("id", self.source.value, self.review_id)
        return ("content", self.author_name, self.text[:IDENTITY_TEXT_PREFIX], self.timestamp)

    @property
    def content_key(self) -> Tuple[str, int]:
        """Key used to recognise the same review arriving through different sources."""
        return (self.text, self.timestamp)

    def with_store_fields(self, review_uuid: str, fetched_at: datetime) -> "Review":
        """Copy carrying the fields the store assigns on insert."""
        return replace(self, id=review_uuid, fetched_at=fetched_at, categories=list(self.categories))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape served by the read API."""
        return {
            "id": self.id,
            "authorName": self.author_name,
            "authorUrl": self.author_url,
            "profilePhotoUrl": self.profile_photo_url,
            "rating": self.rating,
            "text": self.text,
            "relativeTime": self.relative_time,
            "timestamp": self.timestamp,
            "categories": list(self.categories),
            "fetchedAt": self.fetched_at.isoformat() if self.fetched_at else None,
            "source": self.source.value,
        }


@dataclass
class OAuthToken:
    """
    Stored OAuth2 credential.

    One row per service; mutated in place on refresh, never replaced.
    """
    service: str
    access_token: str
    refresh_token: Optional[str]
    expiry_date: datetime
    account_id: Optional[str] = None
    location_id: Optional[str] = None

    def __post_init__(self):
        if self.expiry_date.tzinfo is None:
            self.expiry_date = self.expiry_date.replace(tzinfo=timezone.utc)


@dataclass
class FetchResult:
    """Success-or-empty outcome of one adapter call."""
    source: ReviewSource
    reviews: List[Review] = field(default_factory=list)
    status: FetchStatus = FetchStatus.OK
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @classmethod
    def success(cls, source: ReviewSource, reviews: List[Review], duration: float = 0.0) -> "FetchResult":
        status = FetchStatus.OK if reviews else FetchStatus.EMPTY
        return cls(source=source, reviews=list(reviews), status=status, duration_seconds=duration)

    @classmethod
    def failure(
        cls,
        source: ReviewSource,
        error: str,
        status: FetchStatus = FetchStatus.FAILED,
        reviews: Optional[List[Review]] = None,
        duration: float = 0.0,
    ) -> "FetchResult":
        return cls(
            source=source,
            reviews=list(reviews or []),
            status=status,
            error=error,
            duration_seconds=duration,
        )

    @property
    def ok(self) -> bool:
        return self.status in (FetchStatus.OK, FetchStatus.EMPTY, FetchStatus.PARTIAL)
