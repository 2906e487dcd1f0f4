from dataclasses import replace
from datetime import date, datetime

import pytest

from conftest import make_shift, make_template
from rota.errors import ValidationError
from rota.ports.shifts import (
    UNSET,
    DateRange,
    EditScope,
    RecurrencePattern,
    ShiftPatch,
    add_months,
    parse_date,
)


@pytest.mark.parametrize("raw", ["weekly", "WEEKLY", " Weekly ", RecurrencePattern.WEEKLY])
def test_pattern_parse_accepts_known_names(raw):
    assert RecurrencePattern.parse(raw) is RecurrencePattern.WEEKLY


@pytest.mark.parametrize("raw", ["fortnightly", "", None, 7])
def test_pattern_parse_rejects_unknown(raw):
    with pytest.raises(ValidationError) as exc:
        RecurrencePattern.parse(raw)
    assert exc.value.field == "recurrence_pattern"


def test_scope_parse():
    assert EditScope.parse("SERIES") is EditScope.SERIES
    with pytest.raises(ValidationError):
        EditScope.parse("all")


@pytest.mark.parametrize(
    "day, months, expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 11, 15), 3, date(2025, 2, 15)),
        (date(2024, 3, 31), -1, date(2024, 2, 29)),
    ],
)
def test_add_months(day, months, expected):
    assert add_months(day, months) == expected


def test_parse_date():
    assert parse_date("2024-02-29", "start_date") == date(2024, 2, 29)
    with pytest.raises(ValidationError) as exc:
        parse_date("02/29/2024", "start_date")
    assert exc.value.field == "start_date"


def test_add_months_past_calendar_end_rejected():
    with pytest.raises(ValidationError):
        add_months(date(9999, 12, 1), 1)


def test_parse_date_takes_date_part_of_datetime():
    parsed = parse_date(datetime(2024, 1, 5, 9, 30), "start_date")
    assert parsed == date(2024, 1, 5)
    assert type(parsed) is date
    assert ShiftPatch(start_date=datetime(2024, 1, 5, 23, 59)).start_date == date(2024, 1, 5)


def test_date_range_rejects_inverted_bounds():
    with pytest.raises(ValidationError):
        DateRange(date(2024, 2, 1), date(2024, 1, 1))


def test_overlap_is_inclusive_on_both_ends():
    shift = make_shift(start_date=date(2024, 1, 8), end_date=date(2024, 1, 10))
    assert shift.overlaps(DateRange(date(2024, 1, 10), date(2024, 1, 12)))
    assert shift.overlaps(DateRange(date(2024, 1, 1), date(2024, 1, 8)))
    assert not shift.overlaps(DateRange(date(2024, 1, 11), date(2024, 1, 12)))


def test_detached_clears_series_fields_only():
    shift = make_shift(
        notes="Keep me",
        is_recurring=True,
        recurrence_pattern=RecurrencePattern.DAILY,
        recurrence_end_date=date(2024, 1, 5),
        series_id="ser",
    )
    standalone = shift.detached()
    assert (standalone.is_recurring, standalone.recurrence_pattern, standalone.recurrence_end_date, standalone.series_id) == (
        False,
        None,
        None,
        None,
    )
    assert standalone.notes == "Keep me"
    assert standalone.id == shift.id


def test_template_round_trip_keeps_fields():
    shift = make_shift("abc", notes="n", location="Room 4")
    assert shift.template().with_id("abc") == shift


def test_default_recurrence_end_only_fills_missing():
    recurring = make_template(is_recurring=True, recurrence_pattern=RecurrencePattern.WEEKLY, start_date=date(2024, 11, 30), end_date=date(2024, 11, 30))
    assert recurring.with_default_recurrence_end(3).recurrence_end_date == date(2025, 2, 28)

    explicit = replace(recurring, recurrence_end_date=date(2024, 12, 31))
    assert explicit.with_default_recurrence_end(3).recurrence_end_date == date(2024, 12, 31)
    assert make_template().with_default_recurrence_end(3).recurrence_end_date is None


class TestShiftPatch:
    def test_only_supplied_fields_are_reported(self):
        patch = ShiftPatch(notes=None, location_id="clinic-b")
        assert patch.fields() == {"notes": None, "location_id": "clinic-b"}
        assert patch.assignee_id is UNSET

    def test_apply_clears_with_none(self):
        shift = make_shift(notes="old")
        assert shift.apply(ShiftPatch(notes=None)).notes is None

    def test_dates_cannot_be_cleared(self):
        with pytest.raises(ValidationError):
            ShiftPatch(start_date=None)

    def test_bad_pattern_rejected(self):
        with pytest.raises(ValidationError):
            ShiftPatch(recurrence_pattern="yearly")

    def test_from_dict_rejects_engine_owned_fields(self):
        with pytest.raises(ValidationError):
            ShiftPatch.from_dict({"id": "x"})

    def test_structural_classification(self):
        assert ShiftPatch(recurrence_end_date="2024-05-01").is_structural
        assert not ShiftPatch(notes="x", is_blocking_time=True).is_structural
        assert ShiftPatch().is_empty
