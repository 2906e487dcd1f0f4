# src/rota/cli.py
"""Command line front end for the shift engine.

Examples:
    rota add --assignee dr-lee --location clinic-a --start 2024-01-01 --repeat weekly --until 2024-01-22
    rota list --from 2024-01-01 --to 2024-01-31 --json
    rota update <id> --scope series --notes "Bring badge"
    rota delete <id> --scope this
    rota delete-day <id> 2024-02-02
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Sequence

from pydantic import TypeAdapter

from rota.adapters.sqlite.store import SQLiteShiftStore
from rota.config import settings
from rota.errors import RotaError, ValidationError
from rota.logging_utils import configure_logging, get_logger
from rota.ports.shifts import (
    EditScope,
    NewShift,
    RecurrencePattern,
    Shift,
    ShiftPatch,
    parse_date,
)
from rota.series.resolver import MutationOutcome
from rota.service import ShiftService

log = get_logger(__name__)

_SHIFTS = TypeAdapter(list[Shift])


# -------- Pretty printers --------

def shifts_to_json(shifts: Sequence[Shift]) -> list[dict[str, Any]]:
    return _SHIFTS.dump_python(list(shifts), mode="json")


def format_shift(shift: Shift) -> str:
    when = shift.start_date.isoformat()
    if shift.is_multi_day:
        when = f"{when}..{shift.end_date.isoformat()}"
    kind = "blocked" if shift.is_blocking_time else "shift"
    series = f" [{shift.recurrence_pattern.value} series {shift.series_id[:8]}]" if shift.series_id and shift.recurrence_pattern else ""
    notes = f" - {shift.notes}" if shift.notes else ""
    return f"{shift.id}  {when}  {kind} {shift.assignee_id} @ {shift.location_id}{series}{notes}"


def print_shifts(shifts: Sequence[Shift]) -> None:
    print(f"--- Shifts ({len(shifts)}) ---")
    for shift in shifts:
        print(format_shift(shift))


def print_outcome(outcome: MutationOutcome) -> None:
    print(f"{outcome.action}: {len(outcome.shifts)} shift(s), {len(outcome.deleted_ids)} deleted")
    for shift in outcome.shifts:
        print(f"  {format_shift(shift)}")
    for shift in outcome.detached:
        print(f"  detached from series: {shift.id}")
    if outcome.bound_reached:
        print(f"  warning: series stopped at the {settings.max_occurrences} occurrence cap; check the end date")


def outcome_to_json(outcome: MutationOutcome) -> dict[str, Any]:
    return {
        "action": outcome.action,
        "scope": outcome.scope.value if outcome.scope else None,
        "shifts": shifts_to_json(outcome.shifts),
        "deleted_ids": list(outcome.deleted_ids),
        "detached": shifts_to_json(outcome.detached),
        "bound_reached": outcome.bound_reached,
    }


# -------- Argument parsing --------

def _add_field_flags(p: argparse.ArgumentParser, *, required: bool) -> None:
    p.add_argument("--assignee", dest="assignee_id", required=required, help="Provider id")
    p.add_argument("--location", dest="location_id", required=required, help="Clinic id")
    p.add_argument("--start", dest="start_date", required=required, help="First day (YYYY-MM-DD)")
    p.add_argument("--end", dest="end_date", help="Last day (YYYY-MM-DD); defaults to --start")
    p.add_argument("--notes", help="Free-text notes")
    p.add_argument("--site", dest="location", help="Free-text site detail")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rota", description="Manage provider shifts and recurring series.")
    parser.add_argument("--db", help=f"SQLite database path (default: {settings.db_path})")
    parser.add_argument("--json", action="store_true", help="Output in JSON format instead of pretty print")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="Add a shift or a recurring series")
    _add_field_flags(p, required=True)
    p.add_argument("--blocking", action="store_true", help="Vacation / blocked time instead of a working shift")
    p.add_argument("--repeat", choices=[r.value for r in RecurrencePattern], help="Recurrence pattern")
    p.add_argument("--until", help="Recurrence end date; defaults to the configured number of months after --start")

    p = sub.add_parser("list", help="List shifts overlapping a window (series members included)")
    p.add_argument("--from", dest="start", required=True)
    p.add_argument("--to", dest="end", required=True)
    p.add_argument("--assignee", dest="assignee_id")
    p.add_argument("--location", dest="location_id")

    p = sub.add_parser("show", help="Show one shift")
    p.add_argument("shift_id")

    p = sub.add_parser("update", help="Update a shift, its span, or its whole series")
    p.add_argument("shift_id")
    p.add_argument("--scope", choices=[s.value for s in EditScope], default=EditScope.THIS.value)
    _add_field_flags(p, required=False)
    p.add_argument("--blocking", choices=["yes", "no"], help="Set or clear blocked time")
    p.add_argument("--repeat", choices=[r.value for r in RecurrencePattern], help="New recurrence pattern (series scope)")
    p.add_argument("--until", help="New recurrence end date (series scope)")

    p = sub.add_parser("delete", help="Delete a shift, its span, or its whole series")
    p.add_argument("shift_id")
    p.add_argument("--scope", choices=[s.value for s in EditScope], default=EditScope.THIS.value)

    p = sub.add_parser("delete-day", help="Remove one day from a multi-day shift")
    p.add_argument("shift_id")
    p.add_argument("day")

    sub.add_parser("sweep", help="Detach single-member series left by older data")
    return parser


def template_from_args(args: argparse.Namespace) -> NewShift:
    start = parse_date(args.start_date, "start_date")
    template = NewShift(
        assignee_id=args.assignee_id,
        location_id=args.location_id,
        start_date=start,
        end_date=parse_date(args.end_date, "end_date") if args.end_date else start,
        is_blocking_time=bool(args.blocking),
        notes=args.notes,
        is_recurring=args.repeat is not None,
        recurrence_pattern=RecurrencePattern.parse(args.repeat) if args.repeat else None,
        recurrence_end_date=parse_date(args.until, "recurrence_end_date") if args.until else None,
        location=args.location,
    )
    return template.with_default_recurrence_end(settings.default_recurrence_months)


def patch_from_args(args: argparse.Namespace) -> ShiftPatch:
    values: dict[str, Any] = {
        name: getattr(args, name)
        for name in ("assignee_id", "location_id", "start_date", "end_date", "notes", "location")
        if getattr(args, name) is not None
    }
    if args.blocking is not None:
        values["is_blocking_time"] = args.blocking == "yes"
    if args.repeat is not None:
        values["recurrence_pattern"] = args.repeat
    if args.until is not None:
        values["recurrence_end_date"] = args.until
    return ShiftPatch.from_dict(values)


# -------- Main --------

async def run(args: argparse.Namespace, service: ShiftService) -> Any:
    """Execute one parsed command; returns a JSON-ready payload."""
    if args.command == "add":
        outcome = await service.add_shift(template_from_args(args))
    elif args.command == "update":
        outcome = await service.update_shift(args.shift_id, patch_from_args(args), args.scope)
    elif args.command == "delete":
        outcome = await service.delete_shift(args.shift_id, args.scope)
    elif args.command == "delete-day":
        outcome = await service.delete_day(args.shift_id, args.day)
    elif args.command == "list":
        shifts = await service.get_shifts_by_date_range(args.start, args.end)
        if args.assignee_id:
            shifts = [s for s in shifts if s.assignee_id == args.assignee_id]
        if args.location_id:
            shifts = [s for s in shifts if s.location_id == args.location_id]
        return shifts
    elif args.command == "show":
        return [await service.get_shift(args.shift_id)]
    elif args.command == "sweep":
        return await service.sweep()
    else:
        raise ValidationError(f"unknown command {args.command!r}")
    return outcome


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level_name="DEBUG" if args.debug else None)

    store = SQLiteShiftStore(args.db) if args.db else SQLiteShiftStore()
    try:
        result = asyncio.run(run(args, ShiftService(store)))
    except RotaError as e:
        log.debug("cli.command_failed", extra={"command": args.command, "error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return 2 if isinstance(e, ValidationError) else 1
    finally:
        store.close()

    if isinstance(result, MutationOutcome):
        if args.json:
            print(json.dumps(outcome_to_json(result), indent=2))
        else:
            print_outcome(result)
    elif args.json:
        print(json.dumps(shifts_to_json(result), indent=2))
    else:
        print_shifts(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
