"""
CLI (Command Line Interface).

Quick terminal commands around the importers, e.g.:

    timetable-import import page.html
    timetable-import import --url https://example.edu/timetable.ics
    timetable-import run-script scraper.js page.html
    timetable-import list
    timetable-import conflicts
    timetable-import export out.ics --start 2026-02-23
    timetable-import times --sections 12 --length 45 --break 10

Note:
- imported sessions are kept in data/sessions.json unless --store is given
- settings (section times, default duration) come from data/settings.json
"""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Sequence

import requests
from rich import box
from rich.console import Console
from rich.table import Table

from timetable_import.conflicts import find_all_conflicts
from timetable_import.export_ics import export_sessions_to_ics
from timetable_import.ingest import FormatDetectionError, ingest
from timetable_import.model import CanonicalSession
from timetable_import.script_host import ScriptExecutionError, ScriptHost
from timetable_import.settings import ImportSettings, generate_section_times, load_settings, save_settings
from timetable_import.storage import JsonSessionStore

console = Console()

DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def _read_text(path: str) -> Optional[str]:
    """
    Read a local file. Returns None (after printing why) if it cannot be read.
    """
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        console.print(f"Cannot read {path}: {exc}")
        return None


def _fetch(url: str) -> Optional[str]:
    try:
        resp = requests.get(url, timeout=30)
        resp.raise_for_status()
    except requests.RequestException as exc:
        console.print(f"Cannot fetch {url}: {exc}")
        return None
    return resp.text


def _weeks_label(s: CanonicalSession) -> str:
    label = f"{s.start_week}-{s.end_week}" if s.end_week != s.start_week else str(s.start_week)
    if s.week_parity.name != "ALL":
        label += f" ({s.week_parity.name.lower()})"
    return label


def _periods_label(s: CanonicalSession) -> str:
    return f"{s.start_period}-{s.end_period}" if s.duration > 1 else str(s.start_period)


def _print_sessions(sessions: Sequence[CanonicalSession], title: str) -> None:
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("Day")
    table.add_column("Periods")
    table.add_column("Weeks")
    table.add_column("Name")
    table.add_column("Teacher")
    table.add_column("Location")

    ordered = sorted(sessions, key=lambda s: (s.day_of_week, s.start_period, s.start_week))
    for s in ordered:
        table.add_row(DAY_NAMES[s.day_of_week - 1], _periods_label(s), _weeks_label(s), s.name, s.teacher, s.location)
    console.print(table)


def _cmd_import(args: argparse.Namespace) -> int:
    """
    Recognize a file or URL and store the resulting sessions.
    """
    if not args.source and not args.url:
        console.print("Please provide a file or --url.")
        return 1

    raw = _fetch(args.url) if args.url else _read_text(args.source)
    if raw is None:
        return 1

    script = None
    if args.script:
        script = _read_text(args.script)
        if script is None:
            return 1

    store = JsonSessionStore(args.store, append=args.append)
    try:
        result = ingest(raw, store, script=script, settings=load_settings(args.settings))
    except FormatDetectionError:
        console.print("No sessions recognized. Check that the page is the personal timetable and fully loaded.")
        return 1
    except ScriptExecutionError as exc:
        console.print(f"Script failed: {exc}", markup=False)
        return 1

    _print_sessions(result.sessions, f"Imported {len(result.sessions)} sessions ({result.source_format})")
    console.print(f"Max period: {result.max_period}  Max week: {result.max_week}")
    console.print(f"Saved to: {store.path}")
    return 0


def _cmd_run_script(args: argparse.Namespace) -> int:
    """
    Run a scraping script on a page and print its raw output.
    """
    script = _read_text(args.script)
    page = _read_text(args.page)
    if script is None or page is None:
        return 1
    try:
        output = ScriptHost().execute(script, page)
    except ScriptExecutionError as exc:
        console.print(f"Script failed: {exc}")
        return 1
    console.print(output, markup=False, highlight=False)
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    sessions = JsonSessionStore(args.store).load()
    if not sessions:
        console.print("No sessions stored.")
        return 0
    _print_sessions(sessions, f"{len(sessions)} sessions")
    return 0


def _cmd_conflicts(args: argparse.Namespace) -> int:
    """
    Print all detected conflicts among stored sessions.
    """
    sessions = JsonSessionStore(args.store).load()
    confs = find_all_conflicts(sessions)
    if not confs:
        console.print("No conflicts found.")
        return 0

    console.print(f"Conflicts found: {len(confs)}")
    for a, b in confs:
        console.print(
            f"- {DAY_NAMES[a.day_of_week - 1]} "
            f"P{_periods_label(a)} W{_weeks_label(a)} {a.name}  <->  "
            f"P{_periods_label(b)} W{_weeks_label(b)} {b.name}",
            markup=False,
        )
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    """
    Export stored sessions into an iCalendar (.ics) file.
    """
    try:
        start = datetime.strptime(args.start, "%Y-%m-%d").date()
    except ValueError:
        console.print("Please provide --start as YYYY-MM-DD.")
        return 1

    sessions = JsonSessionStore(args.store).load()
    if not sessions:
        console.print("No stored sessions to export.")
        return 0

    n = export_sessions_to_ics(sessions, args.out, start, load_settings(args.settings))
    console.print(f"Exported {n} events to: {args.out}")
    return 0


def _cmd_times(args: argparse.Namespace) -> int:
    """
    Write a settings file with a generated section table.
    """
    try:
        times = generate_section_times(
            max_sections=args.sections,
            length_minutes=args.length,
            break_minutes=args.break_minutes,
            morning_start=args.start,
            afternoon_section=args.afternoon_section,
            afternoon_start=args.afternoon_start,
            evening_section=args.evening_section,
            evening_start=args.evening_start,
        )
    except ValueError as exc:
        console.print(f"Invalid time: {exc}")
        return 1

    current = load_settings(args.settings)
    settings = ImportSettings(
        section_times=times,
        default_duration=current.default_duration,
        max_daily_sections=args.sections,
        total_weeks=current.total_weeks,
    )
    save_settings(settings, args.settings)
    for i, t in enumerate(times, start=1):
        console.print(f"{i:>2}  {t.start}-{t.end}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="timetable-import", description="Timetable import CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import a timetable page, ICS file or JSON")
    p_import.add_argument("source", nargs="?", default="", help="Input file")
    p_import.add_argument("--url", type=str, default="", help="Fetch input from URL instead")
    p_import.add_argument("--script", type=str, default="", help="Scraping script (default: bundled)")
    p_import.add_argument("--store", type=Path, default=None, help="Session store JSON path")
    p_import.add_argument("--settings", type=Path, default=None, help="Settings JSON path")
    p_import.add_argument("--append", action="store_true", help="Keep already stored sessions")

    p_run = sub.add_parser("run-script", help="Run a scraping script and print its output")
    p_run.add_argument("script", type=str)
    p_run.add_argument("page", type=str)

    p_list = sub.add_parser("list", help="Show stored sessions")
    p_list.add_argument("--store", type=Path, default=None)

    p_conf = sub.add_parser("conflicts", help="Show conflicts among stored sessions")
    p_conf.add_argument("--store", type=Path, default=None)

    p_export = sub.add_parser("export", help="Export stored sessions to .ics")
    p_export.add_argument("out", type=str, help="Output file path (e.g. out.ics)")
    p_export.add_argument("--start", type=str, default=date.today().isoformat(), help="Semester start YYYY-MM-DD")
    p_export.add_argument("--store", type=Path, default=None)
    p_export.add_argument("--settings", type=Path, default=None)

    p_times = sub.add_parser("times", help="Generate the section time table")
    p_times.add_argument("--sections", type=int, default=12)
    p_times.add_argument("--length", type=int, default=45, help="Minutes per section")
    p_times.add_argument("--break", dest="break_minutes", type=int, default=10, help="Minutes between sections")
    p_times.add_argument("--start", type=str, default="08:00")
    p_times.add_argument("--afternoon-section", type=int, default=0)
    p_times.add_argument("--afternoon-start", type=str, default="14:00")
    p_times.add_argument("--evening-section", type=int, default=0)
    p_times.add_argument("--evening-start", type=str, default="19:00")
    p_times.add_argument("--settings", type=Path, default=None)

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "import":
        raise SystemExit(_cmd_import(args))
    if args.command == "run-script":
        raise SystemExit(_cmd_run_script(args))
    if args.command == "list":
        raise SystemExit(_cmd_list(args))
    if args.command == "conflicts":
        raise SystemExit(_cmd_conflicts(args))
    if args.command == "export":
        raise SystemExit(_cmd_export(args))
    if args.command == "times":
        raise SystemExit(_cmd_times(args))

    raise SystemExit(2)
