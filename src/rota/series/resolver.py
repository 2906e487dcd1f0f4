"""Series mutation resolver.

Decides which records a scoped create/update/delete touches and executes the
decision against the store, mirroring every write in the working set.

The decision half (`validate_*`, `plan_*`) is pure and needs no store. The
execution half (`SeriesMutationResolver`) awaits each store call in turn and
writes regenerated occurrences in increasing start order, so a failure part
way through leaves the anchor correct and only tail occurrences missing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any, Literal, Optional, Sequence, Union, cast

from rota.config import settings
from rota.errors import NotFoundError, StoreError, ValidationError
from rota.logging_utils import get_logger
from rota.ports.shifts import (
    EditScope,
    NewShift,
    RecurrencePattern,
    Shift,
    ShiftPatch,
    RECURRENCE_FIELDS,
    SHIFT_FIELDS,
    add_months,
)
from rota.ports.storage import ShiftStorePort
from rota.series.consistency import SeriesConsistencyMaintainer
from rota.series.generator import GenerationResult, generate
from rota.series.working_set import WorkingSetCache

log = get_logger(__name__)


# ---------- Validation ----------

def _check(
    *,
    assignee_id: Any,
    location_id: Any,
    start_date: Any,
    end_date: Any,
    is_recurring: bool,
    recurrence_pattern: Any,
    recurrence_end_date: Any,
) -> None:
    if not assignee_id:
        raise ValidationError("assignee_id is required", field="assignee_id")
    if not location_id:
        raise ValidationError("location_id is required", field="location_id")
    if start_date > end_date:
        raise ValidationError(f"start date {start_date} is after end date {end_date}", field="end_date")
    if not is_recurring:
        return
    if recurrence_pattern is None:
        raise ValidationError("recurring shifts need a recurrence pattern", field="recurrence_pattern")
    RecurrencePattern.parse(recurrence_pattern)
    if recurrence_end_date is None:
        raise ValidationError("recurring shifts need a recurrence end date", field="recurrence_end_date")
    if recurrence_end_date < start_date:
        raise ValidationError(
            f"recurrence end date {recurrence_end_date} is before start date {start_date}",
            field="recurrence_end_date",
        )


def validate_shift(shift: Union[Shift, NewShift]) -> None:
    """Raise `ValidationError` if `shift` breaks the record invariants."""
    _check(**{name: getattr(shift, name) for name in (
        "assignee_id",
        "location_id",
        "start_date",
        "end_date",
        "is_recurring",
        "recurrence_pattern",
        "recurrence_end_date",
    )})


def _changed_fields(before: Shift, after: Shift) -> dict[str, Any]:
    return {name: getattr(after, name) for name in SHIFT_FIELDS if getattr(before, name) != getattr(after, name)}


def _all_fields(shift: Shift) -> dict[str, Any]:
    return {name: getattr(shift, name) for name in SHIFT_FIELDS}


def _by_start(shifts: Sequence[Shift]) -> list[Shift]:
    return sorted(shifts, key=lambda s: (s.start_date, s.id))


# ---------- Plans ----------

@dataclass(frozen=True)
class CreatePlan:
    """Occurrences to persist, in order. A single occurrence is always standalone."""
    occurrences: tuple[NewShift, ...]
    series_id: Optional[str] = None
    bound_reached: bool = False


@dataclass(frozen=True)
class SingleUpdate:
    """Patch one record; `detached_from` names the series it leaves, if any."""
    target: Shift
    patched: Shift
    detached_from: Optional[str] = None


@dataclass(frozen=True)
class CosmeticSeriesUpdate:
    """Patch every member in place; ids and dates are untouched."""
    series_id: str
    fields: dict[str, Any]
    members: tuple[Shift, ...]
    updated: tuple[Shift, ...]


@dataclass(frozen=True)
class SeriesRegeneration:
    """Rebuild a series from its patched anchor; only the anchor keeps its id."""
    series_id: str
    anchor: Shift
    removed: tuple[Shift, ...]
    tail: tuple[NewShift, ...]
    bound_reached: bool = False
    recurrence_end_clamped: bool = False


UpdatePlan = Union[SingleUpdate, CosmeticSeriesUpdate, SeriesRegeneration]


@dataclass(frozen=True)
class DeletePlan:
    """Ids to delete in order, and the series to reconcile afterwards."""
    delete_ids: tuple[str, ...]
    reconcile_series_id: Optional[str] = None


@dataclass(frozen=True)
class MutationOutcome:
    """What a mutation did, for callers that render or log results."""
    action: Literal["created", "updated", "deleted"]
    scope: Optional[EditScope]
    shifts: tuple[Shift, ...] = ()
    deleted_ids: tuple[str, ...] = ()
    detached: tuple[Shift, ...] = ()
    bound_reached: bool = False

    def merged(self, other: MutationOutcome) -> MutationOutcome:
        return replace(
            self,
            shifts=self.shifts + other.shifts,
            deleted_ids=self.deleted_ids + other.deleted_ids,
            detached=self.detached + other.detached,
            bound_reached=self.bound_reached or other.bound_reached,
        )


def plan_create(
    template: NewShift,
    *,
    series_id: Optional[str] = None,
    max_occurrences: Optional[int] = None,
) -> CreatePlan:
    """Validate `template` and expand it when recurring."""
    if not template.is_recurring:
        standalone = replace(template, recurrence_pattern=None, recurrence_end_date=None, series_id=None)
        validate_shift(standalone)
        return CreatePlan(occurrences=(standalone,))

    validate_shift(template)
    series_id = series_id or uuid.uuid4().hex
    anchor = replace(template, recurrence_pattern=RecurrencePattern.parse(template.recurrence_pattern), series_id=series_id)
    result = generate(anchor, max_occurrences=max_occurrences)
    if len(result) == 1:
        only = replace(anchor, is_recurring=False, recurrence_pattern=None, recurrence_end_date=None, series_id=None)
        return CreatePlan(occurrences=(only,))
    return CreatePlan(occurrences=result.occurrences, series_id=series_id, bound_reached=result.bound_reached)


def _check_scope_target(target: Shift, scope: EditScope) -> None:
    if scope is EditScope.SPAN and not target.is_multi_day:
        raise ValidationError("span scope only applies to multi-day shifts", field="scope")
    if scope is EditScope.SERIES and not (target.series_id and target.is_recurring):
        raise ValidationError("series scope only applies to shifts in a recurring series", field="scope")


def plan_update(
    target: Shift,
    patch: ShiftPatch,
    scope: EditScope,
    members: Sequence[Shift] = (),
    *,
    max_occurrences: Optional[int] = None,
    default_recurrence_months: Optional[int] = None,
) -> UpdatePlan:
    """
    Decide how `patch` applies to `target` under `scope`.
    `members` are the current members of the target's series (needed for
    SERIES scope only; the target is added if missing).
    """
    scope = EditScope.parse(scope)
    if patch.is_empty:
        raise ValidationError("patch has no fields to update")
    _check_scope_target(target, scope)

    if scope is not EditScope.SERIES:
        supplied = patch.fields()
        if any(supplied.get(name) for name in RECURRENCE_FIELDS):
            raise ValidationError(
                "a single occurrence cannot carry recurrence settings; edit the series or add a new one",
                field="is_recurring",
            )
        base = target.detached() if target.series_id else target
        patched = base.apply(patch)
        validate_shift(patched)
        return SingleUpdate(target=target, patched=patched, detached_from=target.series_id)

    series_id = cast(str, target.series_id)
    if patch.fields().get("is_recurring", True) is False:
        raise ValidationError("use scope 'this' to take an occurrence out of its series", field="is_recurring")

    ordered = _by_start([*members, *([] if any(m.id == target.id for m in members) else [target])])

    if not patch.is_structural:
        fields = {k: v for k, v in patch.fields().items() if k != "is_recurring"}
        updated = tuple(m.apply(ShiftPatch(**fields)) for m in ordered) if fields else tuple(ordered)
        for shift in updated:
            validate_shift(shift)
        return CosmeticSeriesUpdate(series_id=series_id, fields=fields, members=tuple(ordered), updated=updated)

    anchor = ordered[0]
    rebuilt = anchor.apply(patch)
    if rebuilt.start_date > rebuilt.end_date:
        raise ValidationError(f"start date {rebuilt.start_date} is after end date {rebuilt.end_date}", field="end_date")

    clamped = False
    if rebuilt.recurrence_end_date is not None and rebuilt.recurrence_end_date < rebuilt.start_date:
        months = settings.default_recurrence_months if default_recurrence_months is None else default_recurrence_months
        safe_end = add_months(rebuilt.start_date, months)
        log.warning(
            "series.resolver.recurrence_end_clamped",
            extra={
                "series_id": series_id,
                "requested": rebuilt.recurrence_end_date.isoformat(),
                "clamped_to": safe_end.isoformat(),
            },
        )
        rebuilt = replace(rebuilt, recurrence_end_date=safe_end)
        clamped = True
    validate_shift(rebuilt)

    result: GenerationResult = generate(rebuilt.template(), max_occurrences=max_occurrences)
    new_anchor = result.occurrences[0].with_id(anchor.id)
    if len(result) == 1:
        # A series of one is invalid at rest.
        new_anchor = new_anchor.detached()
    return SeriesRegeneration(
        series_id=series_id,
        anchor=new_anchor,
        removed=tuple(m for m in ordered if m.id != anchor.id),
        tail=result.occurrences[1:],
        bound_reached=result.bound_reached,
        recurrence_end_clamped=clamped,
    )


def plan_delete(target: Shift, scope: EditScope, members: Sequence[Shift] = ()) -> DeletePlan:
    """Decide which ids a scoped delete removes."""
    scope = EditScope.parse(scope)
    if scope is EditScope.SPAN and not target.is_multi_day:
        raise ValidationError("span scope only applies to multi-day shifts", field="scope")
    if scope is EditScope.SERIES:
        if not target.series_id:
            raise ValidationError("series scope only applies to shifts in a series", field="scope")
        ordered = _by_start([*members, *([] if any(m.id == target.id for m in members) else [target])])
        return DeletePlan(delete_ids=tuple(m.id for m in ordered))
    # THIS and SPAN are the same at the storage level: the record is the smallest unit.
    return DeletePlan(delete_ids=(target.id,), reconcile_series_id=target.series_id)


# ---------- Execution ----------

class SeriesMutationResolver:
    """
    Applies scoped mutations through the store port.
    - create() → standalone shift or a freshly generated series
    - update() → single record, cosmetic series patch, or series regeneration
    - delete() → single record (then reconcile) or whole series
    """

    def __init__(
        self,
        store: ShiftStorePort,
        cache: WorkingSetCache,
        maintainer: Optional[SeriesConsistencyMaintainer] = None,
        *,
        max_occurrences: Optional[int] = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._maintainer = maintainer or SeriesConsistencyMaintainer(store, cache)
        self._max_occurrences = max_occurrences

    # --- Lookups ---

    async def resolve(self, shift_id: str) -> Shift:
        """Find `shift_id` in the working set, else force a store read."""
        shift = self._cache.get(shift_id)
        if shift is not None:
            return shift
        shift = await self._store.get_shift(shift_id)
        if shift is None:
            raise NotFoundError(shift_id)
        self._cache.put(shift)
        return shift

    async def _members(self, target: Shift) -> list[Shift]:
        if not target.series_id:
            return [target]
        return _by_start(await self._store.get_shifts_by_series(target.series_id))

    # --- Create ---

    async def create(self, template: NewShift) -> MutationOutcome:
        plan = plan_create(template, max_occurrences=self._max_occurrences)
        created: list[Shift] = []
        for occurrence in plan.occurrences:
            shift_id = await self._store.create_shift(occurrence)
            shift = occurrence.with_id(shift_id)
            self._cache.put(shift)
            created.append(shift)
        log.info(
            "series.resolver.create_done",
            extra={"series_id": plan.series_id, "count": len(created), "bound_reached": plan.bound_reached},
        )
        return MutationOutcome(action="created", scope=None, shifts=tuple(created), bound_reached=plan.bound_reached)

    # --- Update ---

    async def update(self, shift_id: str, patch: ShiftPatch, scope: EditScope) -> MutationOutcome:
        scope = EditScope.parse(scope)
        target = await self.resolve(shift_id)
        members = await self._members(target) if scope is EditScope.SERIES else []
        plan = plan_update(target, patch, scope, members, max_occurrences=self._max_occurrences)

        if isinstance(plan, SingleUpdate):
            outcome = await self._apply_single(plan, scope)
        elif isinstance(plan, CosmeticSeriesUpdate):
            outcome = await self._apply_cosmetic(plan)
        else:
            outcome = await self._apply_regeneration(plan)
        log.info(
            "series.resolver.update_done",
            extra={
                "shift_id": shift_id,
                "scope": scope.value,
                "plan": type(plan).__name__,
                "changed": len(outcome.shifts),
                "deleted": len(outcome.deleted_ids),
            },
        )
        return outcome

    async def _apply_single(self, plan: SingleUpdate, scope: EditScope) -> MutationOutcome:
        changes = _changed_fields(plan.target, plan.patched)
        if changes:
            ok = await self._store.update_shift(plan.target.id, changes)
            if not ok:
                raise StoreError.missing(plan.target.id)
        self._cache.put(plan.patched)

        detached: tuple[Shift, ...] = ()
        if plan.detached_from:
            lone = await self._maintainer.reconcile(plan.detached_from)
            detached = (lone,) if lone else ()
        return MutationOutcome(action="updated", scope=scope, shifts=(plan.patched,), detached=detached)

    async def _apply_cosmetic(self, plan: CosmeticSeriesUpdate) -> MutationOutcome:
        if plan.fields:
            for member in plan.members:
                ok = await self._store.update_shift(member.id, plan.fields)
                if not ok:
                    raise StoreError.missing(member.id)
        self._cache.replace_series(plan.series_id, plan.updated)
        return MutationOutcome(action="updated", scope=EditScope.SERIES, shifts=plan.updated)

    async def _apply_regeneration(self, plan: SeriesRegeneration) -> MutationOutcome:
        for member in plan.removed:
            if not await self._store.delete_shift(member.id):
                log.warning("series.resolver.member_already_gone", extra={"shift_id": member.id})
            self._cache.discard(member.id)

        ok = await self._store.update_shift(plan.anchor.id, _all_fields(plan.anchor))
        if not ok:
            raise StoreError.missing(plan.anchor.id)
        self._cache.put(plan.anchor)

        rebuilt = [plan.anchor]
        for occurrence in plan.tail:
            shift_id = await self._store.create_shift(occurrence)
            shift = occurrence.with_id(shift_id)
            self._cache.put(shift)
            rebuilt.append(shift)
        self._cache.replace_series(plan.series_id, rebuilt)

        log.info(
            "series.resolver.series_regenerated",
            extra={
                "series_id": plan.series_id,
                "anchor_id": plan.anchor.id,
                "removed": len(plan.removed),
                "count": len(rebuilt),
                "bound_reached": plan.bound_reached,
            },
        )
        return MutationOutcome(
            action="updated",
            scope=EditScope.SERIES,
            shifts=tuple(rebuilt),
            deleted_ids=tuple(m.id for m in plan.removed),
            detached=() if plan.anchor.series_id else (plan.anchor,),
            bound_reached=plan.bound_reached,
        )

    # --- Delete ---

    async def delete(self, shift_id: str, scope: EditScope) -> MutationOutcome:
        scope = EditScope.parse(scope)
        target = await self.resolve(shift_id)
        members = await self._members(target) if scope is EditScope.SERIES else []
        plan = plan_delete(target, scope, members)

        for doomed in plan.delete_ids:
            if not await self._store.delete_shift(doomed):
                log.warning("series.resolver.shift_already_gone", extra={"shift_id": doomed})
            self._cache.discard(doomed)
        if scope is EditScope.SERIES and target.series_id:
            self._cache.replace_series(target.series_id, [])

        detached: tuple[Shift, ...] = ()
        if plan.reconcile_series_id:
            lone = await self._maintainer.reconcile(plan.reconcile_series_id)
            detached = (lone,) if lone else ()

        log.info(
            "series.resolver.delete_done",
            extra={"shift_id": shift_id, "scope": scope.value, "deleted": len(plan.delete_ids), "detached": len(detached)},
        )
        return MutationOutcome(action="deleted", scope=scope, deleted_ids=plan.delete_ids, detached=detached)
