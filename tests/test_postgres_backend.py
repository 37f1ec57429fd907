"""
Tests for the PostgreSQL backend against a mocked psycopg2 pool.

Usage:
    pytest tests/test_postgres_backend.py -v
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from reviewsync.data.data_models import Review, ReviewSource, OAuthToken
from reviewsync.storage.backends import PersistenceError
from reviewsync.storage.postgres import PostgresBackend


# =============================================================================
# TEST DATA
# =============================================================================

FETCHED_AT = datetime(2025, 1, 15, tzinfo=timezone.utc)


def make_pool():
    """Pool whose connection hands out one shared cursor mock."""
    cursor = MagicMock()
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    db_pool = MagicMock()
    db_pool.getconn.return_value = conn
    return db_pool, conn, cursor


def make_row(id="11111111-1111-1111-1111-111111111111"):
    return (
        id, "Alice", None, None, 5, "Great", "2 days ago", 1700000000,
        ["drain"], "yelp", "y1", FETCHED_AT,
    )


class TestTransaction:
    """Tests for the commit/rollback boundary."""

    def setup_method(self):
        self.db_pool, self.conn, self.cursor = make_pool()
        self.backend = PostgresBackend(db_pool=self.db_pool)

    @patch("reviewsync.storage.postgres.execute_values")
    def test_commit_on_success(self, mock_execute_values):
        review = Review(
            author_name="Alice", rating=5, text="Great", timestamp=1,
            source=ReviewSource.YELP, id="u1", fetched_at=FETCHED_AT,
        )
        self.cursor.rowcount = 3

        with self.backend.transaction() as tx:
            deleted = tx.delete_all_reviews()
            inserted = tx.insert_reviews([review])

        assert deleted == 3
        assert inserted == 1
        self.conn.commit.assert_called_once()
        self.conn.rollback.assert_not_called()
        self.db_pool.putconn.assert_called_once_with(self.conn)

        values = mock_execute_values.call_args[0][2]
        assert values[0][0] == "u1"
        assert values[0][9] == "yelp"
        assert mock_execute_values.call_args[1]["page_size"] == 100

    @patch("reviewsync.storage.postgres.execute_values", side_effect=RuntimeError("constraint"))
    def test_rollback_on_failure(self, mock_execute_values):
        review = Review(
            author_name="Alice", rating=5, text="Great", timestamp=1,
            source=ReviewSource.YELP, id="u1", fetched_at=FETCHED_AT,
        )

        with pytest.raises(PersistenceError) as exc_info:
            with self.backend.transaction() as tx:
                tx.delete_all_reviews()
                tx.insert_reviews([review])

        assert exc_info.value.operation == "transaction"
        self.conn.rollback.assert_called_once()
        self.conn.commit.assert_not_called()
        self.db_pool.putconn.assert_called_once_with(self.conn)

    def test_delete_by_ids(self):
        self.cursor.rowcount = 2
        with self.backend.transaction() as tx:
            assert tx.delete_reviews(["a", "b"]) == 2
        sql, params = self.cursor.execute.call_args[0]
        assert "ANY(%s::uuid[])" in sql
        assert params == (["a", "b"],)

    def test_delete_no_ids_skips_query(self):
        with self.backend.transaction() as tx:
            assert tx.delete_reviews([]) == 0
        self.cursor.execute.assert_not_called()


class TestReads:
    """Tests for SELECT paths."""

    def setup_method(self):
        self.db_pool, self.conn, self.cursor = make_pool()
        self.backend = PostgresBackend(db_pool=self.db_pool)

    def test_select_reviews(self):
        self.cursor.fetchall.return_value = [make_row()]
        reviews = self.backend.select_reviews()

        assert len(reviews) == 1
        assert reviews[0].source == ReviewSource.YELP
        assert reviews[0].categories == ["drain"]
        assert reviews[0].review_id == "y1"
        assert 'ORDER BY "timestamp" DESC' in self.cursor.execute.call_args[0][0]

    def test_count(self):
        self.cursor.fetchone.return_value = (7,)
        assert self.backend.count_reviews() == 7

    def test_get_token_missing(self):
        self.cursor.fetchone.return_value = None
        assert self.backend.get_token("google_my_business") is None

    def test_get_token(self):
        self.cursor.fetchone.return_value = (
            "google_my_business", "acc-token", "ref-token", FETCHED_AT, "acc", "loc",
        )
        token = self.backend.get_token("google_my_business")
        assert token.access_token == "acc-token"
        assert token.location_id == "loc"


class TestTokens:
    """Tests for token writes."""

    def setup_method(self):
        self.db_pool, self.conn, self.cursor = make_pool()
        self.backend = PostgresBackend(db_pool=self.db_pool)

    def test_insert_token(self):
        self.backend.insert_token(OAuthToken(
            service="google_my_business", access_token="a", refresh_token="r", expiry_date=FETCHED_AT,
        ))
        params = self.cursor.execute.call_args[0][1]
        assert params[0] == "google_my_business"
        self.conn.commit.assert_called_once()

    def test_update_token(self):
        self.cursor.rowcount = 1
        self.backend.update_token("google_my_business", access_token="new")
        sql, values = self.cursor.execute.call_args[0]
        assert "access_token = %s" in sql
        assert "updated_at = NOW()" in sql
        assert values == ["new", "google_my_business"]

    def test_update_unknown_field(self):
        with pytest.raises(ValueError):
            self.backend.update_token("google_my_business", service="other")

    def test_update_missing_row(self):
        self.cursor.rowcount = 0
        with pytest.raises(PersistenceError):
            self.backend.update_token("google_my_business", access_token="new")
        self.conn.rollback.assert_called_once()


class TestLifecycle:
    """Tests for health and pool handling."""

    def test_health_connected(self):
        db_pool, conn, cursor = make_pool()
        cursor.fetchone.return_value = ("PostgreSQL 16.1 on x86_64, compiled by gcc",)
        health = PostgresBackend(db_pool=db_pool).check_health()
        assert health == {"status": "connected", "backend": "postgres", "version": "PostgreSQL 16.1 on x86_64"}

    def test_health_disconnected(self):
        db_pool = MagicMock()
        db_pool.getconn.side_effect = RuntimeError("connection refused")
        health = PostgresBackend(db_pool=db_pool).check_health()
        assert health["status"] == "disconnected"

    def test_close_leaves_injected_pool(self):
        db_pool, _, _ = make_pool()
        PostgresBackend(db_pool=db_pool).close()
        db_pool.closeall.assert_not_called()

    def test_ensure_schema(self):
        db_pool, conn, cursor = make_pool()
        PostgresBackend(db_pool=db_pool).ensure_schema()
        sql = cursor.execute.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS reviews" in sql
        assert "CREATE TABLE IF NOT EXISTS oauth_tokens" in sql
