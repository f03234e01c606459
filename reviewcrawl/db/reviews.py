"""Review storage: the crawl's durable, append-only output sink."""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional, Sequence

from reviewcrawl.crawl.models import RestaurantContext, ReviewRecord
from reviewcrawl.crawl.sink import ReviewSink

_REVIEW_COLUMNS = (
    "restaurant_id",
    "review_id",
    "restaurant_name",
    "restaurant_url",
    "rating",
    "text",
    "author",
    "date",
    "visit_date",
    "submitted_date",
    "food_rating",
    "service_rating",
    "ambience_rating",
    "value_rating",
    "noise_level",
    "helpful_count",
)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_record(row: sqlite3.Row) -> ReviewRecord:
    return ReviewRecord(**{col: row[col] for col in _REVIEW_COLUMNS})


def _record_values(record: ReviewRecord) -> tuple:
    return tuple(getattr(record, col) for col in _REVIEW_COLUMNS)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def upsert_restaurant(conn: sqlite3.Connection, ctx: RestaurantContext) -> None:
    """Insert or refresh a restaurant row (name, URL and reported total)."""
    with conn:
        conn.execute(
            """
            INSERT INTO restaurants (id, name, url, total_count)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                url = excluded.url,
                total_count = excluded.total_count
            """,
            (ctx.restaurant_id, ctx.name, ctx.url, ctx.total_count),
        )


def insert_reviews(conn: sqlite3.Connection, records: Sequence[ReviewRecord]) -> int:
    """Append *records* in order and return how many rows were new.

    Rows whose ``(restaurant_id, review_id)`` already exist are ignored, so a
    review is never stored twice.
    """
    if not records:
        return 0
    placeholders = ", ".join("?" for _ in _REVIEW_COLUMNS)
    with conn:
        before = conn.total_changes
        conn.executemany(
            f"INSERT OR IGNORE INTO reviews ({', '.join(_REVIEW_COLUMNS)}) "  # noqa: S608
            f"VALUES ({placeholders})",
            [_record_values(r) for r in records],
        )
        return conn.total_changes - before


def list_reviews(
    conn: sqlite3.Connection,
    restaurant_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[ReviewRecord]:
    """Return stored reviews in insertion order, optionally filtered."""
    sql = f"SELECT {', '.join(_REVIEW_COLUMNS)} FROM reviews"  # noqa: S608
    params: list = []
    if restaurant_id:
        sql += " WHERE restaurant_id = ?"
        params.append(restaurant_id)
    sql += " ORDER BY rowid"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return [_row_to_record(r) for r in conn.execute(sql, params).fetchall()]


def count_reviews(conn: sqlite3.Connection, restaurant_id: Optional[str] = None) -> int:
    if restaurant_id:
        row = conn.execute(
            "SELECT COUNT(*) FROM reviews WHERE restaurant_id = ?", (restaurant_id,)
        ).fetchone()
    else:
        row = conn.execute("SELECT COUNT(*) FROM reviews").fetchone()
    return row[0]


def restaurant_stats(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    """Return ``(id, name, url, total_count, stored)`` per known restaurant."""
    return conn.execute(
        """
        SELECT r.id, r.name, r.url, r.total_count, COUNT(v.review_id) AS stored
        FROM restaurants r
        LEFT JOIN reviews v ON v.restaurant_id = r.id
        GROUP BY r.id
        ORDER BY r.first_seen_at, r.id
        """
    ).fetchall()


class SqliteReviewSink(ReviewSink):
    """Thread-safe output sink over one shared SQLite connection.

    ``commit`` is called once per embedded batch and once per API page.  It
    does not retry; ``sqlite3.Error`` propagates to the caller, which logs it
    and carries on.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def record_restaurant(self, ctx: RestaurantContext) -> None:
        with self._lock:
            upsert_restaurant(self._conn, ctx)

    def commit(self, restaurant_id: str, records: Sequence[ReviewRecord]) -> int:
        """Append *records* for *restaurant_id*; return the number stored."""
        stray = [r.review_id for r in records if r.restaurant_id != restaurant_id]
        if stray:
            raise ValueError(
                f"records {stray[:3]!r} do not belong to restaurant {restaurant_id!r}"
            )
        with self._lock:
            return insert_reviews(self._conn, records)
