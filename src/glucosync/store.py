"""Durable SQLite cache of previously synchronized readings.

The store is a best-effort read-side cache, not a system of record: it
only ever upserts, keyed by the reading instant in epoch milliseconds,
and never deletes. Retention is handled outside the engine.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path

from glucosync._constants import MAX_PHYSIOLOGICAL_GLUCOSE, MIN_PHYSIOLOGICAL_GLUCOSE
from glucosync.exceptions import ReadingStoreError
from glucosync.ingestion.normalize import ensure_utc, to_epoch_ms
from glucosync.models.reading import Reading, SourceLabel

_logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS readings (
    timestamp_ms INTEGER PRIMARY KEY,
    value REAL NOT NULL,
    origin TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _from_epoch_ms(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def is_plausible(reading: Reading, now: datetime) -> bool:
    """Whether *reading* is worth persisting.

    Values outside the physiological range and timestamps in the future
    are rejected.
    """
    if not MIN_PHYSIOLOGICAL_GLUCOSE <= reading.value <= MAX_PHYSIOLOGICAL_GLUCOSE:
        return False
    return reading.timestamp <= now


class PersistentReadingStore:
    """SQLite-backed reading cache.

    One connection is shared behind a lock so ``":memory:"`` databases
    work and calls from worker threads are serialized.

    Parameters
    ----------
    path : str or Path
        Database file, created with its parent directory on first use.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn: sqlite3.Connection | None = sqlite3.connect(self._path, check_same_thread=False)
            with self._cursor() as cursor:
                cursor.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Cannot open reading store at {self._path}: {exc}") from exc

    @property
    def path(self) -> str:
        return self._path

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Locked cursor that commits on success and rolls back on error."""
        with self._lock:
            conn = self._conn
            if conn is None:
                raise ReadingStoreError("Reading store is closed")
            cursor = conn.cursor()
            try:
                yield cursor
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cursor.close()

    def fetch_readings(self, start: datetime, end: datetime) -> list[Reading]:
        """Stored readings in ``[start, end]``, ascending, labelled ``cached``."""
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    "SELECT timestamp_ms, value FROM readings "
                    "WHERE timestamp_ms BETWEEN ? AND ? ORDER BY timestamp_ms",
                    (to_epoch_ms(ensure_utc(start)), to_epoch_ms(ensure_utc(end))),
                )
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Reading store query failed: {exc}") from exc
        return [Reading(timestamp=_from_epoch_ms(ts), value=value, source=SourceLabel.CACHED) for ts, value in rows]

    def upsert(self, readings: Iterable[Reading], *, now: datetime | None = None) -> int:
        """Insert or update *readings* by timestamp.

        Idempotent: upserting the same readings twice leaves the store
        unchanged. Returns the number of rows written.
        """
        now = ensure_utc(now) if now is not None else datetime.now(UTC)
        rows: list[tuple[int, float, str, str]] = []
        skipped = 0
        stamp = now.isoformat()
        for reading in readings:
            if not is_plausible(reading, now):
                skipped += 1
                continue
            rows.append((to_epoch_ms(reading.timestamp), float(reading.value), str(reading.source), stamp))
        if skipped:
            _logger.info("Skipped %d implausible readings on upsert", skipped)
        if not rows:
            return 0
        try:
            with self._cursor() as cursor:
                cursor.executemany(
                    """
                    INSERT INTO readings (timestamp_ms, value, origin, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(timestamp_ms) DO UPDATE SET
                        value = excluded.value,
                        origin = excluded.origin,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Reading store upsert failed: {exc}") from exc
        _logger.debug("Upserted %d readings", len(rows))
        return len(rows)

    def latest_reading(self) -> Reading | None:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT timestamp_ms, value FROM readings ORDER BY timestamp_ms DESC LIMIT 1")
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Reading store query failed: {exc}") from exc
        if row is None:
            return None
        return Reading(timestamp=_from_epoch_ms(row[0]), value=row[1], source=SourceLabel.CACHED)

    def origin_of(self, timestamp: datetime) -> SourceLabel | None:
        """Source that last wrote the reading at *timestamp*, for diagnostics."""
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    "SELECT origin FROM readings WHERE timestamp_ms = ?",
                    (to_epoch_ms(ensure_utc(timestamp)),),
                )
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Reading store query failed: {exc}") from exc
        return SourceLabel(row[0]) if row else None

    def count(self) -> int:
        try:
            with self._cursor() as cursor:
                cursor.execute("SELECT COUNT(*) FROM readings")
                (total,) = cursor.fetchone()
        except sqlite3.Error as exc:
            raise ReadingStoreError(f"Reading store query failed: {exc}") from exc
        return int(total)

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
