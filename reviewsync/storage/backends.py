"""
Storage Backend Contract
========================

The relational collaborator the review store runs on: bulk insert,
delete-by-ids, delete-all and select-all over the review table, a
transaction primitive, and get/insert/update over the one-row-per-service
OAuth token table.

Implementations:
    PostgresBackend  (storage/postgres.py) : psycopg2 connection pool
    InMemoryBackend  (storage/memory.py)   : copy-on-commit, single process
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, List, Optional, Sequence

from ..data.data_models import Review, OAuthToken

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A storage operation failed; the transaction was rolled back."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = message
        self.operation = operation
        super().__init__(self.message)


class ReviewTransaction(ABC):
    """Mutations available inside one transaction boundary."""

    @abstractmethod
    def insert_reviews(self, reviews: Sequence[Review]) -> int:
        """Bulk insert fully-populated rows (id and fetched_at set). Returns count."""

    @abstractmethod
    def delete_reviews(self, ids: Sequence[str]) -> int:
        """Delete rows by store id. Returns count."""

    @abstractmethod
    def delete_all_reviews(self) -> int:
        """Delete every row. Returns count."""


class StorageBackend(ABC):
    """Transactional persistence for reviews and OAuth tokens."""

    name: str = "abstract"

    @abstractmethod
    def transaction(self) -> ContextManager[ReviewTransaction]:
        """
        Context manager yielding a ReviewTransaction.

        Commits on normal exit; rolls back and raises PersistenceError when
        the body raises.
        """

    @abstractmethod
    def select_reviews(self) -> List[Review]:
        """All committed rows, newest first."""

    @abstractmethod
    def count_reviews(self) -> int:
        """Number of committed rows."""

    # OAuth tokens -----------------------------------------------------------

    @abstractmethod
    def get_token(self, service: str) -> Optional[OAuthToken]:
        """Stored token for a service, or None."""

    @abstractmethod
    def insert_token(self, token: OAuthToken) -> None:
        """Create the token row for token.service."""

    @abstractmethod
    def update_token(self, service: str, **fields: Any) -> None:
        """Update columns of an existing token row in place."""

    # Lifecycle --------------------------------------------------------------

    def ensure_schema(self) -> None:
        """Create tables if the backend needs it."""

    def check_health(self) -> Dict[str, Any]:
        """Status dict; never raises."""
        return {"status": "connected", "backend": self.name}

    def close(self) -> None:
        """Release resources."""


def create_backend(db_config=None) -> StorageBackend:
    """
    Build the backend named by configuration (STORAGE_BACKEND).

    Args:
        db_config: DatabaseConfig (loaded from settings if None)
    """
    if db_config is None:
        from ..data.config import get_settings
        db_config = get_settings().database

    if db_config.backend == "memory":
        from .memory import InMemoryBackend
        logger.info("Using in-memory storage backend")
        return InMemoryBackend()

    from .postgres import PostgresBackend
    return PostgresBackend(db_config=db_config)
