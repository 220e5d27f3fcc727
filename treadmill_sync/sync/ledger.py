"""Durable sync ledger: which days were committed to the health sink, and with what counters.

A ``SyncRecord`` for a day is the only source of truth for "has this day ever
been committed".  A day needs a (re-)commit when it has no record, or when a
freshly fetched snapshot has any counter strictly above the stored one.

Storage is a local SQLite file with one row per day.  Every mutation goes
through a single lock and a single-statement transaction, so a write to a day
is never lost to a concurrent read-modify-write and readers never see half of
one.

Usage::

    ledger = SyncLedger(Path("data/sync_ledger.sqlite3"))
    if ledger.needs_commit(metrics):
        receipt = await sink.commit_workout(workout)
        ledger.record_commit(metrics, receipt)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from pathlib import Path

from treadmill_sync.sync.base import DailyMetrics, SyncRecord, parse_day

logger = logging.getLogger("treadmill_sync.sync.ledger")

_TABLE = "sync_records"
_COLUMNS = ["day", "committed_at", "step_count", "distance_meters", "calories", "receipt"]

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {_TABLE} (
    day TEXT PRIMARY KEY,
    committed_at TEXT NOT NULL,
    step_count INTEGER NOT NULL,
    distance_meters INTEGER NOT NULL,
    calories INTEGER NOT NULL,
    receipt TEXT
);
"""


def build_upsert_query(table: str, columns: list[str], key: str) -> str:
    """Build a SQLite ``INSERT ... ON CONFLICT DO UPDATE`` (upsert) query.

    Idempotent: writing the same row twice leaves one row.  On conflict on
    ``key`` every other column is overwritten.

    Returns:
        Parameterized SQL string using ``?`` placeholders.
    """
    col_list = ", ".join(columns)
    placeholders = ", ".join("?" for _ in columns)
    update_set = ", ".join(f"{col} = excluded.{col}" for col in columns if col != key)
    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({key}) DO UPDATE SET {update_set}"
    )


_UPSERT_SQL = build_upsert_query(_TABLE, _COLUMNS, "day")


class SyncLedger:
    """SQLite-backed record of committed days.

    All mutating operations share one ``threading.Lock``, which makes the
    ledger safe to call from several threads and from any event loop.  Reads
    open their own connection and only ever see committed transactions.
    """

    def __init__(self, db_path: Path) -> None:
        """Create the ledger and ensure the schema exists.

        Args:
            db_path: SQLite file path.  Parent directories are created.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._write_lock:
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA_SQL)
                conn.commit()
            finally:
                conn.close()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_commit(self, metrics: DailyMetrics, receipt: str | None = None) -> SyncRecord:
        """Upsert the record for ``metrics.day`` with its current counters.

        Args:
            metrics: The snapshot that was just committed to the sink.
            receipt: Opaque receipt returned by the sink.

        Returns:
            The stored SyncRecord.
        """
        record = SyncRecord(
            day=metrics.day,
            committed_at=datetime.now(timezone.utc),
            step_count=metrics.step_count,
            distance_meters=metrics.distance_meters,
            calories=metrics.calories,
            receipt=receipt,
        )
        params = (
            record.day.isoformat(),
            record.committed_at.isoformat(),
            record.step_count,
            record.distance_meters,
            record.calories,
            record.receipt,
        )
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(_UPSERT_SQL, params)
            finally:
                conn.close()

        logger.debug(
            "Recorded commit for %s (steps=%d, distance=%d, calories=%d)",
            record.day, record.step_count, record.distance_meters, record.calories,
        )
        return record

    def clear(self, day: date | str) -> bool:
        """Forget one day so the next cycle re-commits it.

        Returns:
            True if a record was removed.
        """
        key = parse_day(day).isoformat()
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    removed = conn.execute(
                        f"DELETE FROM {_TABLE} WHERE day = ?", (key,)
                    ).rowcount > 0
            finally:
                conn.close()
        if removed:
            logger.info("Cleared sync record for %s", key)
        return removed

    def clear_all(self) -> int:
        """Forget every day.  Returns the number of records removed."""
        with self._write_lock:
            conn = self._connect()
            try:
                with conn:
                    count = conn.execute(f"DELETE FROM {_TABLE}").rowcount
            finally:
                conn.close()
        logger.info("Cleared all sync records (%d)", count)
        return count

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_record(self, day: date | str) -> SyncRecord | None:
        key = parse_day(day).isoformat()
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM {_TABLE} WHERE day = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_record(row) if row else None

    def is_committed(self, day: date | str) -> bool:
        return self.get_record(day) is not None

    def needs_commit(self, metrics: DailyMetrics) -> bool:
        """Return True if ``metrics`` has never been committed or has grown since.

        Only increases count.  A counter that went down (device reset, day
        rollover glitch) does not trigger a re-commit.
        """
        record = self.get_record(metrics.day)
        if record is None:
            return True
        return (
            metrics.step_count > record.step_count
            or metrics.distance_meters > record.distance_meters
            or metrics.calories > record.calories
        )

    def list_committed_days(self) -> list[date]:
        """Return every committed day, most recent first."""
        conn = self._connect()
        try:
            rows = conn.execute(f"SELECT day FROM {_TABLE} ORDER BY day DESC").fetchall()
        finally:
            conn.close()
        return [date.fromisoformat(r["day"]) for r in rows]

    def list_records(self) -> list[SyncRecord]:
        """Return every record, most recent day first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM {_TABLE} ORDER BY day DESC"
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_record(r) for r in rows]

    def __len__(self) -> int:
        conn = self._connect()
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {_TABLE}").fetchone()[0]
        finally:
            conn.close()


def _row_to_record(row: sqlite3.Row) -> SyncRecord:
    return SyncRecord(
        day=date.fromisoformat(row["day"]),
        committed_at=datetime.fromisoformat(row["committed_at"]),
        step_count=int(row["step_count"]),
        distance_meters=int(row["distance_meters"]),
        calories=int(row["calories"]),
        receipt=row["receipt"],
    )
