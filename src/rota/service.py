"""Shift engine facade exposed to UI and CLI callers.

`ShiftService` owns one working set and serializes its own mutations, so a
single service instance can be shared by concurrent tasks. Two services (or
two processes) writing the same series are not coordinated.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, timedelta
from typing import Any, AsyncIterator, Mapping, Optional, Union

from rota.config import settings
from rota.errors import NotFoundError, StaleWorkingSetError, ValidationError
from rota.logging_utils import get_logger
from rota.ports.shifts import (
    DateRange,
    EditScope,
    NewShift,
    Shift,
    ShiftPatch,
    add_months,
    parse_date,
)
from rota.ports.storage import ShiftStorePort
from rota.series.consistency import SeriesConsistencyMaintainer
from rota.series.resolver import MutationOutcome, SeriesMutationResolver
from rota.series.working_set import WorkingSetCache

log = get_logger(__name__)


class ShiftService:
    """
    Shift engine entry point.
    - add_shift() / update_shift() / delete_shift() / delete_day() → scoped mutations
    - get_shifts_by_date_range() → window load with series completion
    - get_shifts_by_assignee() → store query mirrored into the working set
    - get_shifts_by_location() → working-set filter
    - refresh() / sweep() → recovery after failures or legacy data
    """

    def __init__(
        self,
        store: ShiftStorePort,
        cache: Optional[WorkingSetCache] = None,
        *,
        max_occurrences: Optional[int] = None,
    ) -> None:
        self.store = store
        self.cache = cache or WorkingSetCache(store)
        self.maintainer = SeriesConsistencyMaintainer(store, self.cache)
        self.resolver = SeriesMutationResolver(store, self.cache, self.maintainer, max_occurrences=max_occurrences)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _mutation(self, operation: str, **context: Any) -> AsyncIterator[None]:
        """
        Run one mutation at a time. Rejected input and an unknown target fail
        before any write; every other failure may leave the store partly
        rewritten, so the working set is marked stale.
        """
        async with self._lock:
            if self.cache.stale:
                raise StaleWorkingSetError()
            try:
                yield
            except (ValidationError, NotFoundError):
                raise
            except Exception as e:
                self.cache.invalidate()
                log.warning(
                    "service.mutation_failed",
                    extra={"operation": operation, "error": str(e), **context},
                )
                raise

    # --- Mutations ---

    async def add_shift(self, template: NewShift) -> MutationOutcome:
        """Create a standalone shift, or a whole series when `template.is_recurring`."""
        async with self._mutation("add_shift", assignee_id=template.assignee_id):
            return await self.resolver.create(template)

    async def update_shift(
        self,
        shift_id: str,
        patch: Union[ShiftPatch, Mapping[str, Any]],
        scope: Union[EditScope, str] = EditScope.THIS,
    ) -> MutationOutcome:
        if not isinstance(patch, ShiftPatch):
            patch = ShiftPatch.from_dict(patch)
        scope = EditScope.parse(scope)
        async with self._mutation("update_shift", shift_id=shift_id, scope=scope.value):
            return await self.resolver.update(shift_id, patch, scope)

    async def delete_shift(self, shift_id: str, scope: Union[EditScope, str] = EditScope.THIS) -> MutationOutcome:
        scope = EditScope.parse(scope)
        async with self._mutation("delete_shift", shift_id=shift_id, scope=scope.value):
            return await self.resolver.delete(shift_id, scope)

    async def delete_day(self, shift_id: str, day: Union[date, str]) -> MutationOutcome:
        """
        Remove one calendar day from a multi-day shift.
        First/last day → the shift is shortened. Any other day → the shift is
        cut before it and a new standalone shift covers the days after it.
        The edited shift leaves its series, like any single-occurrence edit.
        """
        day = parse_date(day, "day")
        async with self._mutation("delete_day", shift_id=shift_id, day=day.isoformat()):
            target = await self.resolver.resolve(shift_id)
            if not target.is_multi_day:
                raise ValidationError("single-day shifts have no day to remove; delete the shift instead", field="day")
            if not DateRange(target.start_date, target.end_date).contains(day):
                raise ValidationError(f"{day} is outside shift {shift_id}", field="day")

            one = timedelta(days=1)
            if day == target.start_date:
                return await self.resolver.update(shift_id, ShiftPatch(start_date=day + one), EditScope.THIS)
            if day == target.end_date:
                return await self.resolver.update(shift_id, ShiftPatch(end_date=day - one), EditScope.THIS)

            head = await self.resolver.update(shift_id, ShiftPatch(end_date=day - one), EditScope.THIS)
            tail_template = replace(target.detached().template(), start_date=day + one, end_date=target.end_date)
            tail = await self.resolver.create(tail_template)
            return head.merged(tail)

    async def sweep(self) -> list[Shift]:
        """Detach lone series members and stray recurrence flags across the store."""
        async with self._mutation("sweep"):
            return await self.maintainer.sweep()

    # --- Reads ---

    async def get_shift(self, shift_id: str) -> Shift:
        return await self.resolver.resolve(shift_id)

    async def get_shifts_by_date_range(self, start: Union[date, str], end: Union[date, str]) -> list[Shift]:
        """Load `[start, end]` into the working set and return it (series members included)."""
        window = DateRange(parse_date(start, "start"), parse_date(end, "end"))
        async with self._lock:
            return await self.cache.load(window)

    async def get_shifts_by_assignee(self, assignee_id: str) -> list[Shift]:
        """Every stored shift for `assignee_id`, loaded window or not. Results are mirrored into the working set."""
        async with self._lock:
            shifts = await self.store.get_shifts_by_assignee(assignee_id)
            for shift in shifts:
                self.cache.put(shift)
            return shifts

    def get_shifts_by_location(self, location_id: str) -> list[Shift]:
        return self.cache.by_location(location_id)

    async def load_default_window(self, today: Optional[date] = None) -> list[Shift]:
        """Load `[today, today + window_months]`, the calendar's opening view."""
        start = today or date.today()
        return await self.get_shifts_by_date_range(start, add_months(start, settings.window_months))

    async def refresh(self) -> list[Shift]:
        """Re-read the current window from the store, clearing a stale working set."""
        async with self._lock:
            return await self.cache.reload()
