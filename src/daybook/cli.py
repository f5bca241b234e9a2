"""Command-line interface for Daybook.

Daybook records what you were doing and when, grouped by calendar day.

CONCEPTS:
---------
- INTERVAL: A span of time with a label ("Code review from 9:00 to 9:45").
            An interval without an end is running.

- DAY:      Intervals are grouped by the calendar day they start on.

- RESUME:   Resuming shortly after stopping reopens the same interval;
            resuming later starts a new interval with the same label.
"""

import argparse
import logging
import sys
from datetime import date, datetime, timedelta
from typing import NoReturn

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from daybook import __version__
from daybook.calendar import (
    NO_DESCRIPTIONS,
    Interval,
    IntervalTracker,
    StoreError,
    create_tracker,
    format_duration,
)
from daybook.config import settings

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=verbose)],
    )


def parse_when(value: str, base: date | None = None) -> datetime:
    """Parse a ``HH:MM`` time (on ``base``, default today) or an ISO timestamp.

    Raises:
        ValueError: If the value is in neither form.
    """
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except ValueError:
        return datetime.fromisoformat(value)
    base = base or date.today()
    return datetime.combine(base, parsed.time())


def parse_day(value: str | None) -> date:
    """Parse a ``YYYY-MM-DD`` day, ``today`` or ``yesterday``."""
    if value is None or value == "today":
        return date.today()
    if value == "yesterday":
        return date.today() - timedelta(days=1)
    return date.fromisoformat(value)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {message}")
    sys.exit(1)


def _tracker(args: argparse.Namespace) -> IntervalTracker:
    tracker = create_tracker()
    if getattr(args, "allow_concurrent", False):
        tracker.stop_running_on_add = False
    return tracker


def _require(tracker: IntervalTracker, identifier: str) -> Interval:
    interval = tracker.find_interval(identifier)
    if interval is None:
        _fail(f"No interval with identifier '{identifier}'")
    return interval


def _check(result: str | StoreError) -> str:
    if isinstance(result, StoreError):
        _fail(result.message)
    return result


def _print_intervals(day: date, intervals: list[Interval]) -> None:
    table = Table(title=f"Intervals for {day.isoformat()}")
    table.add_column("ID", style="cyan")
    table.add_column("Start", style="yellow")
    table.add_column("End", style="yellow")
    table.add_column("Duration", style="magenta")
    table.add_column("Label", style="white")

    now = datetime.now()
    for interval in sorted(intervals, key=lambda i: i.start):
        table.add_row(
            interval.identifier,
            interval.start.strftime("%H:%M"),
            interval.end.strftime("%H:%M") if interval.end else "[green]running[/green]",
            format_duration(interval.duration_seconds(now)),
            interval.label or "[dim]-[/dim]",
        )

    console.print(table)


# =============================================================================
# Commands
# =============================================================================


def cmd_start(args: argparse.Namespace) -> None:
    """Start a new interval."""
    tracker = _tracker(args)
    try:
        start = parse_when(args.at) if args.at else None
    except ValueError as e:
        _fail(str(e))
    running_before = {i.identifier for i in tracker.get_running()}

    identifier = tracker.add_interval(Interval(start=start, label=args.label or ""))
    for interval in tracker.get_intervals(start or datetime.now()):
        if interval.identifier in running_before and not interval.is_running:
            console.print(f"[dim]Stopped '{interval.label}' ({interval.identifier})[/dim]")
    console.print(f"[green]Started[/green] '{args.label or ''}' ({identifier})")


def cmd_stop(args: argparse.Namespace) -> None:
    """Stop a running interval."""
    tracker = _tracker(args)
    interval = _require(tracker, args.identifier)
    identifier = _check(tracker.stop_interval(interval))
    stopped = tracker.find_interval(identifier)
    console.print(
        f"[green]Stopped[/green] '{stopped.label}' "
        f"({format_duration(stopped.duration_seconds())})"
    )


def cmd_resume(args: argparse.Namespace) -> None:
    """Resume a stopped interval."""
    tracker = _tracker(args)
    interval = _require(tracker, args.identifier)
    identifier = _check(tracker.resume_interval(interval))
    if identifier == interval.identifier:
        console.print(f"[green]Resumed[/green] '{interval.label}' ({identifier})")
    else:
        console.print(f"[green]Started new interval[/green] '{interval.label}' ({identifier})")


def cmd_edit(args: argparse.Namespace) -> None:
    """Edit an interval's start, end or label."""
    tracker = _tracker(args)
    interval = _require(tracker, args.identifier)

    updates: dict[str, object] = {}
    try:
        if args.start:
            updates["start"] = parse_when(args.start, interval.start.date())
        if args.end:
            updates["end"] = None if args.end == "none" else parse_when(args.end, interval.start.date())
    except ValueError as e:
        _fail(str(e))
    if args.label is not None:
        updates["label"] = args.label
    if not updates:
        _fail("Nothing to change (use --start, --end or --label)")

    edited = interval.model_copy(update=updates)
    if edited.end is not None and edited.end < edited.start:
        _fail("End must not be before start")
    identifier = _check(tracker.update_interval(edited))
    console.print(f"[green]Updated[/green] {identifier}")


def cmd_delete(args: argparse.Namespace) -> None:
    """Delete an interval."""
    tracker = _tracker(args)
    interval = _require(tracker, args.identifier)

    if not args.yes:
        console.print(f"[yellow]This will delete '{interval.label}' ({interval.identifier}).[/yellow]")
        response = console.input("Continue? [y/N]: ").strip().lower()
        if response != "y":
            console.print("[dim]Aborted[/dim]")
            return

    identifier = _check(tracker.delete_interval(interval))
    console.print(f"[green]Deleted[/green] {identifier}")


def cmd_show(args: argparse.Namespace) -> None:
    """Show the intervals of one day."""
    tracker = _tracker(args)
    try:
        day = parse_day(args.day)
    except ValueError as e:
        _fail(str(e))

    intervals = tracker.get_intervals(day)
    if not intervals:
        console.print(f"[yellow]No intervals for {day.isoformat()}.[/yellow]")
        return
    _print_intervals(day, intervals)


def cmd_days(args: argparse.Namespace) -> None:
    """List every day that has intervals."""
    tracker = _tracker(args)
    days = sorted(tracker.get_dates(), reverse=True)
    if not days:
        console.print("[yellow]No intervals recorded.[/yellow]")
        return

    table = Table(title="Days")
    table.add_column("Day", style="cyan")
    table.add_column("Intervals", style="magenta")
    table.add_column("Total", style="green")
    for day in days:
        intervals = tracker.get_intervals(day)
        total = sum(i.duration_seconds() for i in intervals)
        table.add_row(day.isoformat(), str(len(intervals)), format_duration(total))
    console.print(table)


def cmd_tags(args: argparse.Namespace) -> None:
    """List known labels."""
    tracker = _tracker(args)
    descriptions = tracker.get_descriptions()
    if descriptions == [NO_DESCRIPTIONS]:
        console.print(f"[yellow]{NO_DESCRIPTIONS}.[/yellow]")
        return
    for name in descriptions:
        console.print(f"  {name}")


def cmd_summary(args: argparse.Namespace) -> None:
    """Show total time per label for one day."""
    tracker = _tracker(args)
    try:
        day = parse_day(args.day)
    except ValueError as e:
        _fail(str(e))

    totals = tracker.day_summary(day)
    if not totals:
        console.print(f"[yellow]No intervals for {day.isoformat()}.[/yellow]")
        return

    lines = [f"Time Report - {day.isoformat()}:", f"Total: {format_duration(sum(totals.values()))}", ""]
    for label, seconds in totals.items():
        lines.append(f"  {label or '(no label)'}: {format_duration(seconds)}")
    console.print("\n".join(lines))


def cmd_version(args: argparse.Namespace) -> None:
    """Show version information."""
    console.print(f"daybook v{__version__}")
    if args.verbose:
        console.print(f"[dim]Database: {settings.get_db_path()}[/dim]")
        console.print(f"[dim]Legacy file: {settings.get_legacy_path()}[/dim]")


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daybook",
        description="Daybook - track time intervals grouped by day",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    parser.add_argument(
        "--allow-concurrent", action="store_true",
        help="Do not stop running intervals when starting a new one",
    )

    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser(
        "start",
        help="Start a new interval",
        epilog="""Examples:
  daybook start "Code review"              Start now
  daybook start "Standup" --at 09:30       Start at 09:30 today""",
    )
    start_parser.add_argument("label", nargs="?", default="", help="What you are doing")
    start_parser.add_argument("--at", help="Start time (HH:MM or ISO timestamp)")
    start_parser.set_defaults(func=cmd_start)

    stop_parser = subparsers.add_parser("stop", help="Stop a running interval")
    stop_parser.add_argument("identifier", help="Interval identifier")
    stop_parser.set_defaults(func=cmd_stop)

    resume_parser = subparsers.add_parser("resume", help="Resume a stopped interval")
    resume_parser.add_argument("identifier", help="Interval identifier")
    resume_parser.set_defaults(func=cmd_resume)

    edit_parser = subparsers.add_parser("edit", help="Edit an interval")
    edit_parser.add_argument("identifier", help="Interval identifier")
    edit_parser.add_argument("--start", help="New start (HH:MM or ISO timestamp)")
    edit_parser.add_argument("--end", help="New end (HH:MM, ISO timestamp, or 'none')")
    edit_parser.add_argument("--label", help="New label")
    edit_parser.set_defaults(func=cmd_edit)

    delete_parser = subparsers.add_parser("delete", help="Delete an interval")
    delete_parser.add_argument("identifier", help="Interval identifier")
    delete_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)

    show_parser = subparsers.add_parser("show", help="Show the intervals of a day")
    show_parser.add_argument("day", nargs="?", help="YYYY-MM-DD, today or yesterday")
    show_parser.set_defaults(func=cmd_show)

    days_parser = subparsers.add_parser("days", help="List days with intervals")
    days_parser.set_defaults(func=cmd_days)

    tags_parser = subparsers.add_parser("tags", help="List known labels")
    tags_parser.set_defaults(func=cmd_tags)

    summary_parser = subparsers.add_parser("summary", help="Total time per label for a day")
    summary_parser.add_argument("day", nargs="?", help="YYYY-MM-DD, today or yesterday")
    summary_parser.set_defaults(func=cmd_summary)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the Daybook CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.command:
        args.func = cmd_show
        args.day = None

    args.func(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
