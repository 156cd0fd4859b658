"""
iCalendar (.ics) export.

Each weekly session becomes one recurring VEVENT that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar

Clock times come from the settings' section table; periods the table does not
cover fall back to the import grid (period 1 at 08:00, one period per hour).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from timetable_import.ics import FIRST_PERIOD_MINUTES, PERIOD_MINUTES
from timetable_import.model import CanonicalSession, WeekParity
from timetable_import.settings import ImportSettings


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS fields (very small subset, sufficient for our use).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _grid_start(period: int) -> timedelta:
    return timedelta(minutes=FIRST_PERIOD_MINUTES + (period - 1) * PERIOD_MINUTES)


def _hhmm(text: str) -> timedelta:
    t = datetime.strptime(text, "%H:%M")
    return timedelta(hours=t.hour, minutes=t.minute)


def session_clock_times(session: CanonicalSession, settings: ImportSettings) -> tuple[timedelta, timedelta]:
    """
    (start, end) of a session as offsets from midnight.
    """
    first = settings.section_time(session.start_period)
    last = settings.section_time(session.end_period)
    start = _hhmm(first.start) if first else _grid_start(session.start_period)
    end = _hhmm(last.end) if last else _grid_start(session.end_period) + timedelta(minutes=PERIOD_MINUTES)
    if end <= start:
        end = start + timedelta(minutes=PERIOD_MINUTES * session.duration)
    return start, end


def export_sessions_to_ics(
    sessions: Iterable[CanonicalSession],
    out_path: str | Path,
    semester_start: date,
    settings: Optional[ImportSettings] = None,
) -> int:
    """
    Export sessions to an .ics file. Returns number of exported events.

    Week 1 is the (Monday based) week containing `semester_start`.
    """
    settings = settings or ImportSettings()
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    week_one = semester_start - timedelta(days=semester_start.weekday())

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append("PRODID:-//timetable-import//EN")
    lines.append("CALSCALE:GREGORIAN")

    dtstamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    count = 0
    for index, session in enumerate(sessions):
        weeks = session.weeks()
        if not session.is_valid() or not weeks:
            continue

        day = week_one + timedelta(weeks=weeks[0] - 1, days=session.day_of_week - 1)
        start, end = session_clock_times(session, settings)
        midnight = datetime.combine(day, datetime.min.time())
        dtstart = (midnight + start).strftime("%Y%m%dT%H%M%S")
        dtend = (midnight + end).strftime("%Y%m%dT%H%M%S")
        interval = 1 if session.week_parity is WeekParity.ALL else 2
        uid = f"{session.session_id or index + 1}-{dtstart}@timetable-import"

        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{_ics_escape(uid)}")
        lines.append(f"DTSTAMP:{dtstamp}")
        lines.append(f"DTSTART:{dtstart}")
        lines.append(f"DTEND:{dtend}")
        lines.append(f"RRULE:FREQ=WEEKLY;INTERVAL={interval};COUNT={len(weeks)}")
        lines.append(f"SUMMARY:{_ics_escape(session.name or 'Course')}")
        if session.location:
            lines.append(f"LOCATION:{_ics_escape(session.location)}")
        if session.teacher:
            lines.append(f"DESCRIPTION:{_ics_escape('Teacher: ' + session.teacher)}")
        lines.append("END:VEVENT")
        count += 1

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    out.write_text("\r\n".join(lines) + "\r\n", encoding="utf-8")
    return count
