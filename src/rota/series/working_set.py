"""In-memory mirror of the shifts loaded for one session's date window.

The cache is owned by its caller (normally `ShiftService`) and is rebuilt
from authoritative store reads; it has no lifecycle of its own. Loading a
window always pulls in every member of every series it touches, so a
whole-series edit can be resolved from any visible occurrence.
"""

from __future__ import annotations

from typing import Iterable, Optional

from rota.logging_utils import get_logger
from rota.ports.shifts import DateRange, Shift
from rota.ports.storage import ShiftStorePort

log = get_logger(__name__)


def _ordered(shifts: Iterable[Shift]) -> list[Shift]:
    return sorted(shifts, key=lambda s: (s.start_date, s.end_date, s.id))


class WorkingSetCache:
    """Date-window view of the store, replaced wholesale on every load."""

    def __init__(self, store: ShiftStorePort) -> None:
        self._store = store
        self._shifts: dict[str, Shift] = {}
        self._window: Optional[DateRange] = None
        self._stale = False

    # ---------- State ----------

    @property
    def window(self) -> Optional[DateRange]:
        return self._window

    @property
    def stale(self) -> bool:
        """True after `invalidate()` until the next successful load."""
        return self._stale

    def __len__(self) -> int:
        return len(self._shifts)

    # ---------- Loading ----------

    async def load(self, window: DateRange) -> list[Shift]:
        """
        Replace the cache with every shift overlapping `window`, plus all
        members of each series found there (even those outside the window).
        """
        base = await self._store.get_shifts_by_date_range(window.start, window.end)
        merged = {s.id: s for s in base}

        series_ids = sorted({s.series_id for s in base if s.series_id})
        for series_id in series_ids:
            for member in await self._store.get_shifts_by_series(series_id):
                merged.setdefault(member.id, member)

        self._shifts = merged
        self._window = window
        self._stale = False
        log.info(
            "series.working_set.loaded",
            extra={
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
                "in_window": len(base),
                "series": len(series_ids),
                "total": len(merged),
            },
        )
        return self.all()

    async def reload(self) -> list[Shift]:
        """Re-run the last load. With no window loaded yet, just empties the cache."""
        if self._window is None:
            self._shifts = {}
            self._stale = False
            return []
        return await self.load(self._window)

    def invalidate(self) -> None:
        """Drop everything and mark the cache untrusted until the next load."""
        self._shifts = {}
        self._stale = True
        log.info("series.working_set.invalidated")

    # ---------- Local queries ----------

    def all(self) -> list[Shift]:
        return _ordered(self._shifts.values())

    def get(self, shift_id: str) -> Optional[Shift]:
        return self._shifts.get(shift_id)

    def by_location(self, location_id: str) -> list[Shift]:
        return _ordered(s for s in self._shifts.values() if s.location_id == location_id)

    def series_members(self, series_id: str) -> list[Shift]:
        return _ordered(s for s in self._shifts.values() if s.series_id == series_id)

    # ---------- Mirroring store writes ----------

    def put(self, shift: Shift) -> None:
        self._shifts[shift.id] = shift

    def sync(self, shift: Shift) -> None:
        """Replace `shift` only if it is already cached."""
        if shift.id in self._shifts:
            self._shifts[shift.id] = shift

    def discard(self, shift_id: str) -> None:
        self._shifts.pop(shift_id, None)

    def replace_series(self, series_id: str, members: Iterable[Shift]) -> None:
        """Swap every cached member of `series_id` for `members`."""
        for stale_id in [s.id for s in self._shifts.values() if s.series_id == series_id]:
            del self._shifts[stale_id]
        for member in members:
            self._shifts[member.id] = member
