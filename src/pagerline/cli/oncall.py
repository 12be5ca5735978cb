"""
CLI commands for offline on-call resolution.

Commands:
    pagerline who <rotation.yaml> [--at ISO]             - Who is on call
    pagerline schedule <rotation.yaml> --from --to       - Shift calendar
"""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta

from rich.table import Table

from pagerline.cli.rotation_file import load_rotation_file
from pagerline.cli.ux import console, header, warning
from pagerline.config import get_settings
from pagerline.core.errors import ExitCode, ValidationError
from pagerline.domain.models import OnCallSource, ScheduledShift, as_utc, utcnow
from pagerline.oncall import (
    check_schedule_range,
    project_schedule,
    resolve_current,
    resolve_targets,
)


def parse_instant(value: str) -> datetime:
    """argparse type for ISO-8601 instants; naive values are read as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 instant: {value!r}") from exc
    return as_utc(parsed)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "-"


def who_command(
    rotation_file: str, at: datetime | None = None, output_format: str = "table"
) -> int:
    """
    Show the primary and shadow targets of a rotation file.

    Exit codes:
        0 - Someone is on call
        1 - Nobody is on call at that instant
    """
    rotation = load_rotation_file(rotation_file)
    instant = at or utcnow()
    current = resolve_current(rotation, instant)
    targets = resolve_targets(rotation, instant)

    if output_format == "json":
        console.print_json(
            data={
                "at": instant.isoformat(),
                "current": current.model_dump(mode="json"),
                "shadow": [user.model_dump(mode="json") for user in targets.shadow],
            }
        )
    else:
        header(f"On call: {rotation.name}")
        if current.user is None:
            warning(f"Nobody is on call at {_fmt(instant)}")
        else:
            name = current.user.display_name or current.user.id
            console.print(f"[bold]Primary:[/bold] {name} ([highlight]{current.source}[/highlight])")
            window = f"{_fmt(current.starts_at)} → {_fmt(current.ends_at)}"
            console.print(f"[muted]Shift {window}[/muted]")
        if targets.shadow:
            names = ", ".join(user.display_name or user.id for user in targets.shadow)
            console.print(f"[bold]Shadow:[/bold] {names}")
        console.print()

    return ExitCode.SUCCESS if current.source is not OnCallSource.none else ExitCode.WARNING


def _print_schedule(title: str, shifts: list[ScheduledShift]) -> None:
    header(title)
    if not shifts:
        console.print("[muted]No shifts in range[/muted]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Who", style="cyan")
    table.add_column("Source")
    table.add_column("Layer", style="muted")
    for shift in shifts:
        table.add_row(
            _fmt(shift.starts_at),
            _fmt(shift.ends_at),
            shift.display_name or shift.user_id,
            shift.source.value,
            shift.layer_id or "",
        )
    console.print(table)
    console.print()


def schedule_command(
    rotation_file: str,
    start: datetime | None = None,
    end: datetime | None = None,
    output_format: str = "table",
) -> int:
    """Project the shift calendar of a rotation file; defaults to the next 7 days."""
    rotation = load_rotation_file(rotation_file)
    start = start or utcnow()
    end = end or start + timedelta(days=7)
    check_schedule_range(start, end, get_settings().schedule_max_range_days)

    shifts = project_schedule(rotation, start, end)
    if output_format == "json":
        console.print_json(data=[shift.model_dump(mode="json") for shift in shifts])
    else:
        _print_schedule(f"Schedule: {rotation.name} ({_fmt(start)} → {_fmt(end)})", shifts)
    return ExitCode.SUCCESS


def register_oncall_parsers(subparsers: argparse._SubParsersAction) -> None:
    who = subparsers.add_parser("who", help="Show who is on call for a rotation file")
    who.add_argument("rotation_file", help="Path to rotation YAML file")
    who.add_argument("--at", type=parse_instant, help="Instant to resolve (default: now)")
    who.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )

    schedule = subparsers.add_parser("schedule", help="Project the shift calendar")
    schedule.add_argument("rotation_file", help="Path to rotation YAML file")
    schedule.add_argument("--from", dest="start", type=parse_instant, help="Range start")
    schedule.add_argument("--to", dest="end", type=parse_instant, help="Range end")
    schedule.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )


def handle_oncall_command(args: argparse.Namespace) -> int:
    if args.command == "who":
        return who_command(args.rotation_file, at=args.at, output_format=args.output_format)
    if args.command == "schedule":
        return schedule_command(
            args.rotation_file, start=args.start, end=args.end, output_format=args.output_format
        )
    raise ValidationError(f"Unknown command: {args.command}")
