"""SQLite-backed storage adapter for shifts.

Shifts are stored as pickled payloads with indexed scalar columns
(dates, series id, assignee id) for the range, series and assignee lookups
the engine needs. ISO date strings sort chronologically, so range filters
run directly on the text columns.
"""

from __future__ import annotations

import pickle
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from rota.config import settings
from rota.errors import StoreError
from rota.logging_utils import get_logger
from rota.ports.shifts import Shift, NewShift

log = get_logger(__name__)


class SQLiteShiftStore:
    """SQLite implementation of the `ShiftStorePort` contract.

    Calls run on the event loop thread; each statement is short and local, so
    the coroutine interface is kept for parity with remote stores.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Create a store connected to `db_path`, then ensure schema exists."""
        if db_path is None:
            settings.ensure_dirs()
            db_path = settings.db_path
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path)
        self._conn.row_factory = sqlite3.Row
        self._enable_pragmas()
        self._init_schema()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _enable_pragmas(self) -> None:
        """Enable SQLite settings for local durability and integrity."""
        cur = self._conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute("PRAGMA foreign_keys=ON;")
        self._conn.commit()

    def _init_schema(self) -> None:
        """Create required tables and indexes when they do not yet exist."""
        cur = self._conn.cursor()

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS shifts (
                shift_id     TEXT PRIMARY KEY,
                payload      BLOB NOT NULL,
                start_date   TEXT NOT NULL,
                end_date     TEXT NOT NULL,
                series_id    TEXT,
                assignee_id  TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_shifts_start_date
                ON shifts(start_date)
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_shifts_series_id
                ON shifts(series_id)
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_shifts_assignee_id
                ON shifts(assignee_id)
            """
        )

        self._conn.commit()

    @contextmanager
    def _guard(self, operation: str, **context: Any) -> Iterator[None]:
        """Translate driver failures into `StoreError` after logging them."""
        try:
            yield
        except (sqlite3.Error, pickle.PickleError, TypeError) as e:
            log.warning("sqlite.store.operation_failed", extra={"operation": operation, "error": str(e), **context})
            raise StoreError(operation, str(e)) from e

    @staticmethod
    def _row(shift: Shift) -> tuple[str, bytes, str, str, Optional[str], str]:
        payload = pickle.dumps(shift, protocol=pickle.HIGHEST_PROTOCOL)
        return (
            shift.id,
            payload,
            shift.start_date.isoformat(),
            shift.end_date.isoformat(),
            shift.series_id,
            shift.assignee_id,
        )

    def _upsert(self, shift: Shift) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO shifts (shift_id, payload, start_date, end_date, series_id, assignee_id)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(shift_id) DO UPDATE SET
                    payload     = excluded.payload,
                    start_date  = excluded.start_date,
                    end_date    = excluded.end_date,
                    series_id   = excluded.series_id,
                    assignee_id = excluded.assignee_id
                """,
                self._row(shift),
            )

    def _load(self, shift_id: str) -> Optional[Shift]:
        cur = self._conn.execute(
            """
            SELECT payload
              FROM shifts
             WHERE shift_id = ?
            """,
            (shift_id,),
        )
        row = cur.fetchone()
        if row is None:
            return None
        return pickle.loads(row["payload"])

    def _select(self, where: str, params: tuple[Any, ...]) -> list[Shift]:
        cur = self._conn.execute(
            f"""
            SELECT payload
              FROM shifts
             {where}
             ORDER BY start_date, shift_id
            """,
            params,
        )
        return [pickle.loads(row["payload"]) for row in cur.fetchall()]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_shift(self, fields: NewShift) -> str:
        """Insert a new shift under a fresh id and return the id."""
        shift_id = uuid.uuid4().hex
        with self._guard("create_shift", series_id=fields.series_id):
            self._upsert(fields.with_id(shift_id))
        return shift_id

    async def update_shift(self, shift_id: str, fields: Mapping[str, Any]) -> bool:
        """Merge `fields` into the stored shift. Returns False if it does not exist."""
        with self._guard("update_shift", shift_id=shift_id):
            current = self._load(shift_id)
            if current is None:
                return False
            self._upsert(replace(current, **dict(fields)))
        return True

    async def delete_shift(self, shift_id: str) -> bool:
        """Delete one shift by id."""
        with self._guard("delete_shift", shift_id=shift_id):
            with self._conn:
                cur = self._conn.execute(
                    "DELETE FROM shifts WHERE shift_id = ?",
                    (shift_id,),
                )
        return cur.rowcount > 0

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_shift(self, shift_id: str) -> Optional[Shift]:
        """Return one shift by id, or `None` when no row exists."""
        with self._guard("get_shift", shift_id=shift_id):
            return self._load(shift_id)

    async def get_shifts_by_date_range(self, start: date, end: date) -> list[Shift]:
        """Return shifts overlapping `[start, end]` (inclusive on both sides)."""
        with self._guard("get_shifts_by_date_range", start=start.isoformat(), end=end.isoformat()):
            return self._select(
                "WHERE start_date <= ? AND end_date >= ?",
                (end.isoformat(), start.isoformat()),
            )

    async def get_shifts_by_series(self, series_id: str) -> list[Shift]:
        with self._guard("get_shifts_by_series", series_id=series_id):
            return self._select("WHERE series_id = ?", (series_id,))

    async def get_shifts_by_assignee(self, assignee_id: str) -> list[Shift]:
        with self._guard("get_shifts_by_assignee", assignee_id=assignee_id):
            return self._select("WHERE assignee_id = ?", (assignee_id,))

    async def get_all_shifts(self) -> list[Shift]:
        with self._guard("get_all_shifts"):
            return self._select("", ())

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()
