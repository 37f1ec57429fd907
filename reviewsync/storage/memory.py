"""
In-memory storage backend.

Copy-on-commit: a transaction mutates a private copy of the table and the
copy replaces the committed table in one reference swap. Readers therefore
only ever see committed snapshots. Single-process only.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from ..data.data_models import Review, OAuthToken
from .backends import StorageBackend, ReviewTransaction, PersistenceError

logger = logging.getLogger(__name__)


class MemoryTransaction(ReviewTransaction):
    """Mutations against a working copy of the review table."""

    def __init__(self, rows: Dict[str, Review]):
        self.rows = rows

    def insert_reviews(self, reviews: Sequence[Review]) -> int:
        for review in reviews:
            if review.id is None:
                raise PersistenceError("Cannot insert a review without an id", operation="insert")
            if review.id in self.rows:
                raise PersistenceError(f"Duplicate review id {review.id}", operation="insert")
            self.rows[review.id] = replace(review, categories=list(review.categories))
        return len(reviews)

    def delete_reviews(self, ids: Sequence[str]) -> int:
        deleted = 0
        for review_uuid in ids:
            if self.rows.pop(review_uuid, None) is not None:
                deleted += 1
        return deleted

    def delete_all_reviews(self) -> int:
        deleted = len(self.rows)
        self.rows.clear()
        return deleted


class InMemoryBackend(StorageBackend):
    """Process-local backend for development and tests."""

    name = "memory"

    def __init__(self):
        self._reviews: Dict[str, Review] = {}
        self._tokens: Dict[str, OAuthToken] = {}
        self._write_lock = threading.RLock()

    def _new_transaction(self, rows: Dict[str, Review]) -> ReviewTransaction:
        return MemoryTransaction(rows)

    @contextmanager
    def transaction(self):
        with self._write_lock:
            working = dict(self._reviews)
            try:
                yield self._new_transaction(working)
            except PersistenceError:
                logger.error("In-memory transaction rolled back")
                raise
            except Exception as e:
                logger.error(f"In-memory transaction rolled back: {e}")
                raise PersistenceError(f"Transaction failed: {e}", operation="transaction") from e
            self._reviews = working

    def select_reviews(self) -> List[Review]:
        snapshot = self._reviews
        rows = [replace(r, categories=list(r.categories)) for r in snapshot.values()]
        rows.sort(key=lambda r: r.timestamp, reverse=True)
        return rows

    def count_reviews(self) -> int:
        return len(self._reviews)

    def get_token(self, service: str) -> Optional[OAuthToken]:
        token = self._tokens.get(service)
        return replace(token) if token else None

    def insert_token(self, token: OAuthToken) -> None:
        with self._write_lock:
            if token.service in self._tokens:
                raise PersistenceError(f"Token for {token.service} already exists", operation="insert_token")
            self._tokens[token.service] = replace(token)

    def update_token(self, service: str, **fields: Any) -> None:
        with self._write_lock:
            token = self._tokens.get(service)
            if token is None:
                raise PersistenceError(f"No token stored for {service}", operation="update_token")
            self._tokens[service] = replace(token, **fields)
