"""Occurrence generator: expands one recurring template into dated occurrences.

Pure and deterministic; no I/O. The anchor is always the first occurrence.
Monthly steps are measured from the anchor (anchor + n months, clamped to
the end of short months) so a series started on the 31st never drifts.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from rota.config import settings
from rota.errors import ValidationError
from rota.logging_utils import get_logger
from rota.ports.shifts import NewShift, RecurrencePattern

log = get_logger(__name__)


_DAY_STEPS = {
    RecurrencePattern.DAILY: 1,
    RecurrencePattern.WEEKLY: 7,
    RecurrencePattern.BIWEEKLY: 14,
}


@dataclass(frozen=True)
class GenerationResult:
    """Occurrences in increasing start order, plus whether the safety cap cut the series short."""
    occurrences: tuple[NewShift, ...]
    bound_reached: bool = False

    def __len__(self) -> int:
        return len(self.occurrences)


def advance(anchor_start: date, pattern: RecurrencePattern, step: int) -> Optional[date]:
    """
    Start date of the `step`-th occurrence after the anchor (step 0 is the anchor).
    Returns None when that date falls past the end of the calendar.
    """
    try:
        if pattern is RecurrencePattern.MONTHLY:
            return anchor_start + relativedelta(months=step)
        return anchor_start + timedelta(days=_DAY_STEPS[pattern] * step)
    except (OverflowError, ValueError):
        return None


def generate(template: NewShift, *, max_occurrences: Optional[int] = None) -> GenerationResult:
    """
    Expand `template` into the occurrences of its series.
    - Each occurrence keeps the template's span length and non-date fields.
    - Stops before any start date later than `recurrence_end_date`.
    - Never returns more than `max_occurrences` items (default from settings);
      hitting that cap is flagged and logged, not raised.
    """
    if template.recurrence_pattern is None or template.recurrence_end_date is None:
        raise ValidationError("recurring shifts need a recurrence pattern and end date")
    if template.recurrence_end_date < template.start_date:
        raise ValidationError("recurrence end date is before the start date", field="recurrence_end_date")
    pattern = RecurrencePattern.parse(template.recurrence_pattern)
    limit = settings.max_occurrences if max_occurrences is None else max_occurrences
    if limit < 1:
        raise ValidationError("max_occurrences must be at least 1")

    span = timedelta(days=template.span_days)
    # The last possible occurrence starts on recurrence_end_date and must still end inside the calendar.
    if template.recurrence_end_date > date.max - span:
        raise ValidationError(
            f"a {template.span_days + 1}-day shift starting {template.recurrence_end_date} would end past {date.max}",
            field="recurrence_end_date",
        )

    out: list[NewShift] = []
    step = 0
    while True:
        start = advance(template.start_date, pattern, step)
        if start is None or start > template.recurrence_end_date:
            return GenerationResult(occurrences=tuple(out))
        if len(out) >= limit:
            break
        out.append(replace(template, start_date=start, end_date=start + span))
        step += 1

    log.warning(
        "series.generator.bound_reached",
        extra={
            "max_occurrences": limit,
            "anchor_start": template.start_date.isoformat(),
            "recurrence_end_date": template.recurrence_end_date.isoformat(),
            "pattern": pattern.value,
        },
    )
    return GenerationResult(occurrences=tuple(out), bound_reached=True)
