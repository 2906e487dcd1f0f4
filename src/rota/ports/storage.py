"""Storage port contract for persisted shifts."""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Optional, Protocol

from rota.ports.shifts import NewShift, Shift


class ShiftStorePort(Protocol):
    """Store-agnostic persistence interface used by the series engine.

    Every method is a coroutine; the engine awaits each call before issuing
    the next. Implementations assign ids on create, return `None`/`False` for
    missing records, and raise `rota.errors.StoreError` for any failure.
    Timeouts and retries belong here, not in the engine.
    """

    # ----- Writes -----
    async def create_shift(self, fields: NewShift) -> str:
        """Persist a new shift and return its store-assigned id."""
        ...

    async def update_shift(self, shift_id: str, fields: Mapping[str, Any]) -> bool:
        """Apply a partial update. Returns False when `shift_id` does not exist."""
        ...

    async def delete_shift(self, shift_id: str) -> bool:
        """Delete one shift. Returns False when `shift_id` does not exist."""
        ...

    # ----- Reads -----
    async def get_shift(self, shift_id: str) -> Optional[Shift]:
        """Return one shift by id, or `None` when not found."""
        ...

    async def get_shifts_by_date_range(self, start: date, end: date) -> list[Shift]:
        """Return shifts overlapping the closed `[start, end]` window."""
        ...

    async def get_shifts_by_series(self, series_id: str) -> list[Shift]:
        """Return every shift carrying `series_id`."""
        ...

    async def get_shifts_by_assignee(self, assignee_id: str) -> list[Shift]:
        """Return every shift assigned to `assignee_id`."""
        ...

    async def get_all_shifts(self) -> list[Shift]:
        """Return every stored shift."""
        ...
