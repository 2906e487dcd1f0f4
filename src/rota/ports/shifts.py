"""Store-agnostic shift domain types.

A `Shift` is one dated occurrence. A series is not a record of its own; it is
the set of shifts sharing a `series_id`, and its recurrence settings are read
from the earliest-starting member (the anchor).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional

from dateutil.relativedelta import relativedelta

from rota.errors import ValidationError


# ---------- Enums ----------

class RecurrencePattern(str, Enum):
    """How far apart consecutive occurrences of a series start."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Any) -> RecurrencePattern:
        """Coerce `value` to a pattern; unknown names are rejected, never defaulted."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"unrecognized recurrence pattern: {value!r}", field="recurrence_pattern"
            ) from None


class EditScope(str, Enum):
    """
    Breadth of an update or delete.
    - THIS: the targeted occurrence only
    - SPAN: the targeted multi-day block; same storage effect as THIS
    - SERIES: every occurrence sharing the target's series id
    """
    THIS = "this"
    SPAN = "span"
    SERIES = "series"

    @classmethod
    def parse(cls, value: Any) -> EditScope:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"unrecognized edit scope: {value!r}", field="scope") from None


# ---------- Date helpers ----------

def parse_date(value: Any, field: str) -> date:
    """Accept a `date`, a `datetime` (its date part) or an ISO `YYYY-MM-DD` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD), got {value!r}", field=field) from None


def add_months(day: date, months: int) -> date:
    """Shift `day` by whole calendar months, clamping to the last day of short months."""
    try:
        return day + relativedelta(months=months)
    except (OverflowError, ValueError):
        raise ValidationError(f"{day} plus {months} months is outside the supported calendar") from None


@dataclass(frozen=True)
class DateRange:
    """Closed `[start, end]` interval of calendar dates."""
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(f"range start {self.start} is after range end {self.end}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


# ---------- Core DTOs ----------

@dataclass(frozen=True)
class Shift:
    """
    One persisted occurrence. `start_date`/`end_date` are inclusive.
    When `is_recurring` is False the series fields (`recurrence_pattern`,
    `recurrence_end_date`, `series_id`) are None.
    """
    id: str
    assignee_id: str
    location_id: str
    start_date: date
    end_date: date
    is_blocking_time: bool = False
    notes: Optional[str] = None
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None
    series_id: Optional[str] = None
    location: Optional[str] = None  # free-text site detail, e.g. "Room 4"

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def is_multi_day(self) -> bool:
        return self.start_date != self.end_date

    def overlaps(self, window: DateRange) -> bool:
        return self.start_date <= window.end and self.end_date >= window.start

    def detached(self) -> Shift:
        """Return a standalone copy with every series field cleared."""
        return replace(
            self,
            is_recurring=False,
            recurrence_pattern=None,
            recurrence_end_date=None,
            series_id=None,
        )

    def apply(self, patch: ShiftPatch) -> Shift:
        return replace(self, **patch.fields())

    def template(self) -> NewShift:
        return NewShift(**{name: getattr(self, name) for name in SHIFT_FIELDS})


@dataclass(frozen=True)
class NewShift:
    """
    Input for creating a shift (standalone, or the anchor of a new series).
    The store assigns `id`; the engine assigns `series_id` for recurring input.
    """
    assignee_id: str
    location_id: str
    start_date: date
    end_date: date
    is_blocking_time: bool = False
    notes: Optional[str] = None
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None
    series_id: Optional[str] = None
    location: Optional[str] = None

    @property
    def span_days(self) -> int:
        return (self.end_date - self.start_date).days

    def with_id(self, shift_id: str) -> Shift:
        return Shift(id=shift_id, **{name: getattr(self, name) for name in SHIFT_FIELDS})

    def with_default_recurrence_end(self, months: int = 3) -> NewShift:
        """Fill a missing recurrence end with `start_date + months` for recurring input."""
        if not self.is_recurring or self.recurrence_end_date is not None:
            return self
        return replace(self, recurrence_end_date=add_months(self.start_date, months))


SHIFT_FIELDS: tuple[str, ...] = tuple(f.name for f in dataclasses.fields(NewShift))

# Fields that change which dates a series covers.
STRUCTURAL_FIELDS = frozenset({"start_date", "end_date", "recurrence_pattern", "recurrence_end_date"})
RECURRENCE_FIELDS = frozenset({"is_recurring", "recurrence_pattern", "recurrence_end_date"})


# ---------- Partial updates ----------

class _Unset:
    """Marker for patch fields the caller did not supply."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class ShiftPatch:
    """
    Partial update. Fields left as `UNSET` are untouched; a field set to None
    clears it. `id` and `series_id` are owned by the engine and not patchable.
    """
    assignee_id: Any = UNSET
    location_id: Any = UNSET
    start_date: Any = UNSET
    end_date: Any = UNSET
    is_blocking_time: Any = UNSET
    notes: Any = UNSET
    is_recurring: Any = UNSET
    recurrence_pattern: Any = UNSET
    recurrence_end_date: Any = UNSET
    location: Any = UNSET

    def __post_init__(self) -> None:
        # Normalize string input so callers can pass CLI/JSON values straight through.
        for name in ("start_date", "end_date"):
            value = getattr(self, name)
            if value is not UNSET:
                if value is None:
                    raise ValidationError(f"{name} cannot be cleared", field=name)
                object.__setattr__(self, name, parse_date(value, name))
        if self.recurrence_end_date not in (UNSET, None):
            object.__setattr__(
                self, "recurrence_end_date", parse_date(self.recurrence_end_date, "recurrence_end_date")
            )
        if self.recurrence_pattern not in (UNSET, None):
            object.__setattr__(self, "recurrence_pattern", RecurrencePattern.parse(self.recurrence_pattern))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ShiftPatch:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"fields cannot be patched: {', '.join(unknown)}")
        return cls(**dict(data))

    def fields(self) -> dict[str, Any]:
        """Return only the supplied fields."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if getattr(self, f.name) is not UNSET
        }

    @property
    def is_empty(self) -> bool:
        return not self.fields()

    @property
    def is_structural(self) -> bool:
        return bool(STRUCTURAL_FIELDS & self.fields().keys())
