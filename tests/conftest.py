"""Shared fixtures: in-memory SQLite store, service, and store wrappers that misbehave on demand."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date
from typing import Any, Mapping, Optional

import pytest

from rota import logging_utils
from rota.adapters.sqlite.store import SQLiteShiftStore
from rota.errors import StoreError
from rota.ports.shifts import NewShift, RecurrencePattern, Shift
from rota.service import ShiftService


def make_template(**overrides: Any) -> NewShift:
    base = NewShift(
        assignee_id="dr-lee",
        location_id="clinic-a",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 1),
        notes="Morning clinic",
    )
    return replace(base, **overrides)


def weekly_template(**overrides: Any) -> NewShift:
    values: dict[str, Any] = {
        "is_recurring": True,
        "recurrence_pattern": RecurrencePattern.WEEKLY,
        "recurrence_end_date": date(2024, 1, 22),
    }
    values.update(overrides)
    return make_template(**values)


def make_shift(shift_id: str = "s1", **overrides: Any) -> Shift:
    return make_template(**overrides).with_id(shift_id)


class FailingStore:
    """Wraps a real store and raises `StoreError` once `fail_after` writes have succeeded."""

    def __init__(self, inner: SQLiteShiftStore, *, fail_after: Optional[int] = None, fail_on: str = "create_shift") -> None:
        self.inner = inner
        self.fail_after = fail_after
        self.fail_on = fail_on
        self.calls = 0

    def _tick(self, operation: str) -> None:
        if operation != self.fail_on or self.fail_after is None:
            return
        if self.calls >= self.fail_after:
            raise StoreError(operation, "simulated outage")
        self.calls += 1

    async def create_shift(self, fields: NewShift) -> str:
        self._tick("create_shift")
        return await self.inner.create_shift(fields)

    async def update_shift(self, shift_id: str, fields: Mapping[str, Any]) -> bool:
        self._tick("update_shift")
        return await self.inner.update_shift(shift_id, fields)

    async def delete_shift(self, shift_id: str) -> bool:
        self._tick("delete_shift")
        return await self.inner.delete_shift(shift_id)

    async def get_shift(self, shift_id: str) -> Optional[Shift]:
        return await self.inner.get_shift(shift_id)

    async def get_shifts_by_date_range(self, start: date, end: date) -> list[Shift]:
        return await self.inner.get_shifts_by_date_range(start, end)

    async def get_shifts_by_series(self, series_id: str) -> list[Shift]:
        return await self.inner.get_shifts_by_series(series_id)

    async def get_shifts_by_assignee(self, assignee_id: str) -> list[Shift]:
        return await self.inner.get_shifts_by_assignee(assignee_id)

    async def get_all_shifts(self) -> list[Shift]:
        return await self.inner.get_all_shifts()


class YieldingStore(FailingStore):
    """Hands control back to the event loop before every store call."""

    async def create_shift(self, fields: NewShift) -> str:
        await asyncio.sleep(0)
        return await super().create_shift(fields)

    async def update_shift(self, shift_id: str, fields: Mapping[str, Any]) -> bool:
        await asyncio.sleep(0)
        return await super().update_shift(shift_id, fields)

    async def delete_shift(self, shift_id: str) -> bool:
        await asyncio.sleep(0)
        return await super().delete_shift(shift_id)

    async def get_shift(self, shift_id: str) -> Optional[Shift]:
        await asyncio.sleep(0)
        return await super().get_shift(shift_id)

    async def get_shifts_by_date_range(self, start: date, end: date) -> list[Shift]:
        await asyncio.sleep(0)
        return await super().get_shifts_by_date_range(start, end)

    async def get_shifts_by_series(self, series_id: str) -> list[Shift]:
        await asyncio.sleep(0)
        return await super().get_shifts_by_series(series_id)

    async def get_shifts_by_assignee(self, assignee_id: str) -> list[Shift]:
        await asyncio.sleep(0)
        return await super().get_shifts_by_assignee(assignee_id)

    async def get_all_shifts(self) -> list[Shift]:
        await asyncio.sleep(0)
        return await super().get_all_shifts()


class VanishingStore(FailingStore):
    """Reports `missing_id` as gone when it is written, as if another writer deleted it."""

    def __init__(self, inner: SQLiteShiftStore, missing_id: str) -> None:
        super().__init__(inner)
        self.missing_id = missing_id

    async def update_shift(self, shift_id: str, fields: Mapping[str, Any]) -> bool:
        if shift_id == self.missing_id:
            return False
        return await super().update_shift(shift_id, fields)


@pytest.fixture
def store():
    s = SQLiteShiftStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def service(store):
    return ShiftService(store)


@pytest.fixture
def restore_logging():
    """Undo handler changes made by `configure_logging()`."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    logging_utils._configured = False
