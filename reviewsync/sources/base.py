"""
Review Source Adapter Base
==========================

Every provider integration implements ReviewSourceAdapter:

    fetch_reviews() -> FetchResult   never raises
    fetch()         -> List[Review]  fetch_reviews().reviews

Subclasses implement _fetch(), which may raise ProviderError subclasses (or
anything else). The base class turns every failure into an empty, failed
FetchResult so one broken provider cannot block the others.

Shared helpers normalize provider timestamps and build display strings.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from ..data.data_models import Review, ReviewSource, FetchResult, FetchStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class ProviderError(Exception):
    """Base exception for review provider errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class ProviderUnavailableError(ProviderError):
    """Network failure or HTTP error status from a provider."""
    pass


class MalformedResponseError(ProviderError):
    """Provider answered with a payload of unexpected shape."""
    pass


class PartialFetchError(ProviderError):
    """A paginated fetch failed after some pages were gathered."""

    def __init__(self, message: str, reviews: List[Review], cause: Optional[Exception] = None):
        super().__init__(message)
        self.reviews = reviews
        self.cause = cause


# =============================================================================
# Normalization helpers
# =============================================================================

_FRACTION = re.compile(r"\.(\d+)")


def now_unix(clock: Callable[[], datetime]) -> int:
    return int(clock().timestamp())


def parse_timestamp(value: Any, clock: Callable[[], datetime]) -> int:
    """
    Convert a provider timestamp to unix seconds.

    Accepts epoch numbers, ISO-8601 / RFC 3339 strings ("Z" suffix, any
    fraction length) and DataForSEO's "YYYY-MM-DD HH:MM:SS +00:00".
    Missing or unparseable values fall back to the current clock time.
    """
    if value is None or value == "":
        return now_unix(clock)
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if text.isdigit():
        return int(text)

    text = text.replace("Z", "+00:00")
    # fromisoformat wants at most 6 fractional digits
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    # "+0000" -> "+00:00"
    text = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", text)
    text = re.sub(r" ([+-]\d{2}:\d{2})$", r"\1", text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp {value!r}, using current time")
        return now_unix(clock)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def relative_time(timestamp: int, now: int) -> str:
    """Human display string such as '3 days ago'."""
    diff = now - timestamp
    if diff < 60:
        return "just now"
    if diff < 3600:
        return f"{diff // 60} minutes ago"
    if diff < 86400:
        return f"{diff // 3600} hours ago"
    if diff < 604800:
        return f"{diff // 86400} days ago"
    if diff < 2592000:
        return f"{diff // 604800} weeks ago"
    if diff < 31536000:
        return f"{diff // 2592000} months ago"
    return f"{diff // 31536000} years ago"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Adapter contract
# =============================================================================

class ReviewSourceAdapter(ABC):
    """
    One provider, normalized into canonical Review records.

    Args (common):
        session: requests.Session (a fresh one if None)
        timeout: (connect, read) seconds for every HTTP call
        clock: returns the current aware datetime
    """

    source: ReviewSource

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: Tuple[float, float] = (10.0, 30.0),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.clock = clock

    @property
    def name(self) -> str:
        return self.source.value

    @abstractmethod
    def _fetch(self) -> List[Review]:
        """Fetch and normalize. May raise."""

    def fetch_reviews(self) -> FetchResult:
        """Fetch this source's reviews. Never raises."""
        start = time.monotonic()
        try:
            reviews = self._fetch()
        except PartialFetchError as e:
            duration = time.monotonic() - start
            logger.warning(
                f"[{self.name}] partial fetch, keeping {len(e.reviews)} reviews: {e.message}",
                extra={"source": self.name, "status": FetchStatus.PARTIAL.value, "duration": round(duration, 3)},
            )
            return FetchResult.failure(
                self.source, e.message, status=FetchStatus.PARTIAL, reviews=e.reviews, duration=duration
            )
        except ProviderError as e:
            duration = time.monotonic() - start
            logger.error(
                f"[{self.name}] {type(e).__name__}: {e.message}",
                extra={"source": self.name, "status": FetchStatus.FAILED.value, "duration": round(duration, 3)},
            )
            return FetchResult.failure(self.source, f"{type(e).__name__}: {e.message}", duration=duration)
        except Exception as e:
            duration = time.monotonic() - start
            logger.exception(
                f"[{self.name}] unexpected error while fetching reviews",
                extra={"source": self.name, "status": FetchStatus.FAILED.value, "duration": round(duration, 3)},
            )
            return FetchResult.failure(self.source, f"{type(e).__name__}: {e}", duration=duration)

        duration = time.monotonic() - start
        result = FetchResult.success(self.source, reviews, duration=duration)
        logger.info(
            f"[{self.name}] fetched {len(reviews)} reviews in {duration:.2f}s",
            extra={"source": self.name, "status": result.status.value, "duration": round(duration, 3)},
        )
        return result

    def fetch(self) -> List[Review]:
        return self.fetch_reviews().reviews

    def _normalize_items(self, items: List[Any], normalize: Callable[[Any], Optional[Review]]) -> List[Review]:
        """Normalize raw provider items; an item whose shape breaks normalization is skipped."""
        reviews = []
        for item in items:
            try:
                review = normalize(item)
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                logger.debug(f"[{self.name}] skipping malformed review item: {type(e).__name__}: {e}")
                continue
            if review is not None:
                reviews.append(review)
        return reviews

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Perform an HTTP call and decode its JSON body.

        Raises:
            ProviderUnavailableError: network failure or status >= 400
            MalformedResponseError: body is not a JSON object
        """
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise ProviderUnavailableError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderUnavailableError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                response=response.text[:500],
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Invalid JSON from {url}: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected JSON object from {url}, got {type(data).__name__}")
        return data
