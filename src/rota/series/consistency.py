"""Series consistency maintenance.

A series id carried by a single shift is invalid at rest. After any delete or
detachment removes a member, `reconcile` must run before the operation
returns, so no reader ever observes a collapsed-but-attached series.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Optional

from rota.errors import StoreError
from rota.logging_utils import get_logger
from rota.ports.shifts import Shift
from rota.ports.storage import ShiftStorePort
from rota.series.working_set import WorkingSetCache

log = get_logger(__name__)


DETACH_FIELDS: dict[str, Any] = {
    "is_recurring": False,
    "recurrence_pattern": None,
    "recurrence_end_date": None,
    "series_id": None,
}


class SeriesConsistencyMaintainer:
    """Collapses single-member series back into standalone shifts."""

    def __init__(self, store: ShiftStorePort, cache: Optional[WorkingSetCache] = None) -> None:
        self._store = store
        self._cache = cache

    async def detach(self, shift: Shift) -> Shift:
        """Persist `shift` as standalone and mirror it in the working set."""
        ok = await self._store.update_shift(shift.id, DETACH_FIELDS)
        if not ok:
            raise StoreError.missing(shift.id)
        detached = shift.detached()
        if self._cache is not None:
            self._cache.sync(detached)
        return detached

    async def reconcile(self, series_id: str) -> Optional[Shift]:
        """
        Re-check membership of `series_id` after a member left it.
        Returns the detached shift when exactly one member remained, else None.
        """
        members = await self._store.get_shifts_by_series(series_id)
        if not members:
            log.debug("series.consistency.series_empty", extra={"series_id": series_id})
            return None
        if len(members) > 1:
            return None

        detached = await self.detach(members[0])
        log.info(
            "series.consistency.detached_last_member",
            extra={"series_id": series_id, "shift_id": detached.id},
        )
        return detached

    async def sweep(self) -> list[Shift]:
        """
        Repair the whole store: detach lone series members and clear recurrence
        flags left on shifts that no longer carry a series id.
        """
        shifts = await self._store.get_all_shifts()
        counts = Counter(s.series_id for s in shifts if s.series_id)

        repaired: list[Shift] = []
        for shift in shifts:
            lone_member = shift.series_id is not None and counts[shift.series_id] == 1
            orphaned_flags = shift.series_id is None and (
                shift.is_recurring or shift.recurrence_pattern is not None or shift.recurrence_end_date is not None
            )
            if lone_member or orphaned_flags:
                repaired.append(await self.detach(shift))

        log.info(
            "series.consistency.sweep_done",
            extra={"scanned": len(shifts), "repaired": len(repaired)},
        )
        return repaired
