"""Tests for the database layer and the SQLite review sink.

All tests use an in-memory SQLite database (the ``conn`` fixture in
``conftest.py``) so nothing is written to ~/.reviewcrawl_data.
"""

from __future__ import annotations

import sqlite3
import threading

import pytest

from reviewcrawl.crawl.models import RestaurantContext, ReviewRecord
from reviewcrawl.db.migrations import current_version, init_db, migrate
from reviewcrawl.db.reviews import (
    SqliteReviewSink,
    count_reviews,
    insert_reviews,
    list_reviews,
    restaurant_stats,
    upsert_restaurant,
)

CTX = RestaurantContext(
    restaurant_id="1234",
    name="Chez Test",
    url="https://www.opentable.com/r/chez-test-paris",
    total_count=42,
)


def _record(review_id: str, restaurant_id: str = "1234", **fields) -> ReviewRecord:
    return ReviewRecord(
        review_id=review_id,
        restaurant_id=restaurant_id,
        restaurant_name="Chez Test",
        restaurant_url=CTX.url,
        **fields,
    )


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestInitDb:
    def test_tables_exist(self, conn: sqlite3.Connection) -> None:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"restaurants", "reviews", "schema_version"} <= tables

    def test_row_factory(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("SELECT 1 AS one").fetchone()
        assert row["one"] == 1

    def test_current_version_zero_on_fresh_db(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == 0

    def test_init_db_is_idempotent(self, conn: sqlite3.Connection) -> None:
        insert_reviews(conn, [_record("a")])
        init_db(conn)
        assert count_reviews(conn) == 1

    def test_migrate_applies_pending_once(self, conn: sqlite3.Connection) -> None:
        migrations = [(1, "CREATE INDEX idx_reviews_date ON reviews(date)")]
        migrate(conn, migrations)
        migrate(conn, migrations)
        assert current_version(conn) == 1


# ---------------------------------------------------------------------------
# reviews / restaurants
# ---------------------------------------------------------------------------

class TestReviews:
    def test_insert_and_list_roundtrip(self, conn: sqlite3.Connection) -> None:
        record = _record(
            "a", rating=4.0, text="Lovely", author="Sam", date="2024-01-01",
            food_rating=5.0, noise_level="QUIET", helpful_count=3,
        )
        assert insert_reviews(conn, [record]) == 1
        assert list_reviews(conn) == [record]

    def test_insertion_order_preserved(self, conn: sqlite3.Connection) -> None:
        insert_reviews(conn, [_record("c"), _record("a")])
        insert_reviews(conn, [_record("b")])
        assert [r.review_id for r in list_reviews(conn)] == ["c", "a", "b"]

    def test_duplicate_ignored(self, conn: sqlite3.Connection) -> None:
        insert_reviews(conn, [_record("a"), _record("b")])
        assert insert_reviews(conn, [_record("b"), _record("c")]) == 1
        assert count_reviews(conn) == 3

    def test_same_review_id_other_restaurant_kept(self, conn: sqlite3.Connection) -> None:
        insert_reviews(conn, [_record("a"), _record("a", restaurant_id="99")])
        assert count_reviews(conn) == 2

    def test_empty_insert(self, conn: sqlite3.Connection) -> None:
        assert insert_reviews(conn, []) == 0

    def test_filter_and_limit(self, conn: sqlite3.Connection) -> None:
        insert_reviews(conn, [_record("a"), _record("b"), _record("x", restaurant_id="99")])
        assert [r.review_id for r in list_reviews(conn, restaurant_id="99")] == ["x"]
        assert len(list_reviews(conn, limit=2)) == 2
        assert count_reviews(conn, restaurant_id="1234") == 2

    def test_upsert_restaurant_refreshes(self, conn: sqlite3.Connection) -> None:
        upsert_restaurant(conn, CTX)
        upsert_restaurant(conn, RestaurantContext("1234", "Chez Test II", CTX.url, total_count=50))
        [row] = restaurant_stats(conn)
        assert row["name"] == "Chez Test II"
        assert row["total_count"] == 50

    def test_stats_counts_stored_reviews(self, conn: sqlite3.Connection) -> None:
        upsert_restaurant(conn, CTX)
        upsert_restaurant(conn, RestaurantContext("77", "Empty", "https://www.opentable.com/r/empty"))
        insert_reviews(conn, [_record("a"), _record("b")])

        stored = {row["id"]: row["stored"] for row in restaurant_stats(conn)}
        assert stored == {"1234": 2, "77": 0}


# ---------------------------------------------------------------------------
# SqliteReviewSink
# ---------------------------------------------------------------------------

class TestSqliteReviewSink:
    def test_commit_returns_new_rows(self, conn: sqlite3.Connection) -> None:
        sink = SqliteReviewSink(conn)
        assert sink.commit("1234", [_record("a"), _record("b")]) == 2
        assert sink.commit("1234", [_record("a")]) == 0

    def test_commit_rejects_foreign_records(self, conn: sqlite3.Connection) -> None:
        sink = SqliteReviewSink(conn)
        with pytest.raises(ValueError):
            sink.commit("1234", [_record("a", restaurant_id="99")])
        assert count_reviews(conn) == 0

    def test_record_restaurant(self, conn: sqlite3.Connection) -> None:
        SqliteReviewSink(conn).record_restaurant(CTX)
        [row] = restaurant_stats(conn)
        assert row["id"] == "1234"
        assert row["url"] == CTX.url

    def test_concurrent_commits(self, conn: sqlite3.Connection) -> None:
        sink = SqliteReviewSink(conn)

        def commit_batch(worker: int) -> None:
            for n in range(20):
                sink.commit("1234", [_record(f"w{worker}-{n}")])

        threads = [threading.Thread(target=commit_batch, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert count_reviews(conn) == 80
