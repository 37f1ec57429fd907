"""
Reviewsync PostgreSQL Backend
=============================

psycopg2 with a threaded connection pool. Every mutation runs inside one
connection-level transaction: commit on success, rollback on any error.

Readers use plain SELECTs under READ COMMITTED, so they see either the
pre-commit or the post-commit table, never a half-applied refresh. Deletes
use DELETE (not TRUNCATE) so concurrent readers are not blocked.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
from psycopg2 import pool
from psycopg2.extras import execute_values

from ..data.data_models import Review, OAuthToken
from .backends import StorageBackend, ReviewTransaction, PersistenceError

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS reviews (
    id                UUID PRIMARY KEY,
    author_name       TEXT NOT NULL,
    author_url        TEXT,
    profile_photo_url TEXT,
    rating            INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
    text              TEXT NOT NULL,
    relative_time     TEXT NOT NULL,
    "timestamp"       BIGINT NOT NULL,
    categories        TEXT[] NOT NULL DEFAULT '{general}',
    source            TEXT NOT NULL,
    review_id         TEXT,
    fetched_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_reviews_timestamp ON reviews ("timestamp" DESC);
CREATE INDEX IF NOT EXISTS idx_reviews_source ON reviews (source);

CREATE TABLE IF NOT EXISTS oauth_tokens (
    id            SERIAL PRIMARY KEY,
    service       TEXT NOT NULL UNIQUE,
    access_token  TEXT NOT NULL,
    refresh_token TEXT,
    expiry_date   TIMESTAMPTZ NOT NULL,
    account_id    TEXT,
    location_id   TEXT,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

REVIEW_COLUMNS = (
    'id, author_name, author_url, profile_photo_url, rating, text, '
    'relative_time, "timestamp", categories, source, review_id, fetched_at'
)

TOKEN_COLUMNS = ("access_token", "refresh_token", "expiry_date", "account_id", "location_id")


def _row_to_review(row) -> Review:
    return Review(
        id=str(row[0]),
        author_name=row[1],
        author_url=row[2],
        profile_photo_url=row[3],
        rating=row[4],
        text=row[5],
        relative_time=row[6],
        timestamp=row[7],
        categories=list(row[8] or []),
        source=row[9],
        review_id=row[10],
        fetched_at=row[11],
    )


class _PostgresTransaction(ReviewTransaction):
    """Mutations bound to one open cursor."""

    def __init__(self, cursor):
        self._cur = cursor

    def insert_reviews(self, reviews: Sequence[Review]) -> int:
        if not reviews:
            return 0
        values = [
            (
                r.id,
                r.author_name,
                r.author_url,
                r.profile_photo_url,
                r.rating,
                r.text,
                r.relative_time,
                r.timestamp,
                list(r.categories),
                r.source.value,
                r.review_id,
                r.fetched_at,
            )
            for r in reviews
        ]
        execute_values(
            self._cur,
            f"INSERT INTO reviews ({REVIEW_COLUMNS}) VALUES %s",
            values,
            page_size=100,
        )
        return len(values)

    def delete_reviews(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        self._cur.execute("DELETE FROM reviews WHERE id = ANY(%s::uuid[])", (list(ids),))
        return self._cur.rowcount

    def delete_all_reviews(self) -> int:
        self._cur.execute("DELETE FROM reviews")
        return self._cur.rowcount


class PostgresBackend(StorageBackend):
    """PostgreSQL persistence over a psycopg2 ThreadedConnectionPool."""

    name = "postgres"

    def __init__(self, db_config=None, db_pool: Optional[pool.ThreadedConnectionPool] = None):
        """
        Args:
            db_config: DatabaseConfig (loaded from settings if None)
            db_pool: Existing pool (created lazily from db_config if None)
        """
        if db_config is None and db_pool is None:
            from ..data.config import get_settings
            db_config = get_settings().database

        self._db_config = db_config
        self._db_pool = db_pool
        self._own_pool = db_pool is None

    @property
    def db_pool(self) -> pool.ThreadedConnectionPool:
        """Lazy-initialize database connection pool."""
        if self._db_pool is None:
            cfg = self._db_config
            try:
                self._db_pool = pool.ThreadedConnectionPool(
                    minconn=cfg.pool_min_size,
                    maxconn=cfg.pool_max_size,
                    **cfg.connection_dict
                )
            except psycopg2.Error as e:
                raise PersistenceError(f"Cannot connect to database: {e}", operation="connect") from e
            logger.info(f"DB pool created: {cfg.host}:{cfg.port}/{cfg.name}")
        return self._db_pool

    @contextmanager
    def get_db_connection(self, operation: str = "query"):
        """
        Get a database connection from the pool.

        Commits when the block exits normally, rolls back otherwise.

        Raises:
            PersistenceError: wrapping whatever the block raised
        """
        conn = None
        try:
            conn = self.db_pool.getconn()
            yield conn
            conn.commit()
        except PersistenceError:
            if conn:
                conn.rollback()
            raise
        except Exception as e:
            if conn:
                conn.rollback()
            logger.error(f"Database {operation} failed, rolled back: {e}")
            raise PersistenceError(f"Database {operation} failed: {e}", operation=operation) from e
        finally:
            if conn:
                self.db_pool.putconn(conn)

    @contextmanager
    def transaction(self):
        with self.get_db_connection("transaction") as conn:
            with conn.cursor() as cur:
                yield _PostgresTransaction(cur)

    def select_reviews(self) -> List[Review]:
        with self.get_db_connection("select") as conn:
            with conn.cursor() as cur:
                cur.execute(f'SELECT {REVIEW_COLUMNS} FROM reviews ORDER BY "timestamp" DESC')
                return [_row_to_review(row) for row in cur.fetchall()]

    def count_reviews(self) -> int:
        with self.get_db_connection("count") as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM reviews")
                return cur.fetchone()[0]

    # =========================================================================
    # OAuth tokens
    # =========================================================================

    def get_token(self, service: str) -> Optional[OAuthToken]:
        with self.get_db_connection("get_token") as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT service, access_token, refresh_token, expiry_date,
                           account_id, location_id
                    FROM oauth_tokens
                    WHERE service = %s
                """, (service,))
                row = cur.fetchone()
        if not row:
            return None
        return OAuthToken(
            service=row[0],
            access_token=row[1],
            refresh_token=row[2],
            expiry_date=row[3],
            account_id=row[4],
            location_id=row[5],
        )

    def insert_token(self, token: OAuthToken) -> None:
        with self.get_db_connection("insert_token") as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO oauth_tokens (
                        service, access_token, refresh_token, expiry_date,
                        account_id, location_id
                    ) VALUES (%s, %s, %s, %s, %s, %s)
                """, (
                    token.service,
                    token.access_token,
                    token.refresh_token,
                    token.expiry_date,
                    token.account_id,
                    token.location_id,
                ))

    def update_token(self, service: str, **fields: Any) -> None:
        unknown = set(fields) - set(TOKEN_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown token fields: {sorted(unknown)}")
        if not fields:
            return

        set_clauses = [f"{key} = %s" for key in fields]
        set_clauses.append("updated_at = NOW()")
        values = list(fields.values()) + [service]

        with self.get_db_connection("update_token") as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE oauth_tokens SET {', '.join(set_clauses)} WHERE service = %s",
                    values,
                )
                if cur.rowcount == 0:
                    raise PersistenceError(f"No token stored for {service}", operation="update_token")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def ensure_schema(self) -> None:
        with self.get_db_connection("ensure_schema") as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
        logger.info("Database schema ensured (reviews, oauth_tokens)")

    def check_health(self) -> Dict[str, Any]:
        """Non-blocking: returns 'disconnected' if DB is not reachable."""
        try:
            with self.get_db_connection("health") as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT version()")
                    row = cur.fetchone()
            version = row[0].split(",")[0] if row and row[0] else "unknown"
            return {"status": "connected", "backend": self.name, "version": version}
        except PersistenceError as e:
            logger.warning(f"DB health check failed: {e}")
            return {"status": "disconnected", "backend": self.name, "error": str(e)}

    def close(self) -> None:
        if self._own_pool and self._db_pool is not None:
            self._db_pool.closeall()
            self._db_pool = None
            logger.info("DB pool closed")
