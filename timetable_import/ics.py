"""
ICS import (calendar file -> weekly sessions).

- Unfolds RFC5545 continuation lines and reads VEVENT blocks
- Expands WEEKLY recurrence rules (INTERVAL, COUNT, UNTIL, BYDAY)
- Applies RDATE / EXDATE
- Buckets occurrences into semester weeks and folds them into ranges

Important rules:
- Only FREQ=WEEKLY is expanded; other frequencies keep DTSTART + RDATE only
- A broken event or date is skipped, never raised
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from timetable_import.model import CanonicalSession, IcsEvent, PeriodRange
from timetable_import.ranges import split_weeks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Limits & fixed period grid
# ---------------------------------------------------------------------------

DEFAULT_MAX_OCCURRENCES = 60
MAX_WEEK_ITERATIONS = 200

FIRST_PERIOD_MINUTES = 8 * 60
PERIOD_MINUTES = 60

WEEKDAY_CODES = {"MO": 0, "TU": 1, "WE": 2, "TH": 3, "FR": 4, "SA": 5, "SU": 6}

TEACHER_MARKERS = ("老师", "教师", "授课", "任课", "Teacher", "Instructor", "Lecturer")


# ---------------------------------------------------------------------------
# Tokenizing
# ---------------------------------------------------------------------------


def unfold_lines(raw: str) -> List[str]:
    """
    Join folded lines (continuations start with a space or tab) and drop blanks.
    """
    normalized = raw.replace("\r\n", "\n").replace("\r", "\n")
    result: List[str] = []
    for line in normalized.split("\n"):
        if line.startswith((" ", "\t")):
            if result:
                result[-1] += line[1:]
        elif line.strip():
            result.append(line.rstrip())
    return result


def _ics_unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append("\n" if nxt in "nN" else nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def parse_ics_datetime(value: str) -> Optional[datetime]:
    """
    Parse one ICS date value into a naive wall-clock datetime.

    Accepted: 'yyyyMMdd', 'yyyyMMddTHHmmssZ' and 'yyyyMMddTHHmmss'.
    Returns None for anything else.
    """
    raw = value.strip()
    try:
        if len(raw) == 8:
            return datetime.strptime(raw, "%Y%m%d")
        if raw.endswith("Z"):
            # UTC clock time is kept as-is
            return datetime.strptime(raw, "%Y%m%dT%H%M%SZ")
        if len(raw) >= 15:
            return datetime.strptime(raw[:15], "%Y%m%dT%H%M%S")
    except ValueError:
        return None
    return None


def _parse_date_list(values: List[str]) -> List[datetime]:
    out: List[datetime] = []
    for value in values:
        for part in value.split(","):
            parsed = parse_ics_datetime(part)
            if parsed is None:
                logger.debug("Skipping malformed date entry %r", part)
                continue
            out.append(parsed)
    return out


def _build_event(props: Dict[str, List[str]]) -> Optional[IcsEvent]:
    dtstart = props.get("DTSTART")
    if not dtstart:
        return None
    start = parse_ics_datetime(dtstart[0])
    if start is None:
        logger.debug("Skipping event with unparseable DTSTART %r", dtstart[0])
        return None

    end = None
    if props.get("DTEND"):
        end = parse_ics_datetime(props["DTEND"][0])

    def first(key: str) -> str:
        values = props.get(key)
        return _ics_unescape(values[0]) if values else ""

    rrule = props.get("RRULE")
    return IcsEvent(
        summary=first("SUMMARY"),
        location=first("LOCATION"),
        description=first("DESCRIPTION"),
        start=start,
        end=end,
        recurrence_rule=rrule[0] if rrule else None,
        recurrence_dates=_parse_date_list(props.get("RDATE", [])),
        exception_dates=_parse_date_list(props.get("EXDATE", [])),
    )


def parse_ics_events(raw: str) -> List[IcsEvent]:
    """
    Read every VEVENT block. Parameters (KEY;PARAM=...:VALUE) are discarded.
    """
    events: List[IcsEvent] = []
    current: Optional[Dict[str, List[str]]] = None

    for line in unfold_lines(raw):
        upper = line.upper()
        if upper.startswith("BEGIN:VEVENT"):
            current = {}
            continue
        if upper.startswith("END:VEVENT"):
            if current is not None:
                event = _build_event(current)
                if event is not None:
                    events.append(event)
            current = None
            continue
        if current is None or ":" not in line:
            continue
        key_part, value = line.split(":", 1)
        key = key_part.split(";", 1)[0].strip().upper()
        current.setdefault(key, []).append(value)

    return events


# ---------------------------------------------------------------------------
# Recurrence expansion
# ---------------------------------------------------------------------------


def _rule_parts(rule: str) -> Dict[str, str]:
    parts: Dict[str, str] = {}
    for chunk in rule.split(";"):
        if not chunk.strip():
            continue
        key, _, value = chunk.partition("=")
        parts[key.strip().upper()] = value.strip()
    return parts


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _next_or_same(start: date, weekday: int) -> date:
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def _finish(occurrences: List[datetime], exdates: List[datetime]) -> List[datetime]:
    excluded = set(exdates)
    return sorted({o for o in occurrences if o not in excluded})


def _weekly_occurrences(event: IcsEvent, parts: Dict[str, str]) -> List[datetime]:
    interval = max(_to_int(parts.get("INTERVAL")) or 1, 1)
    count = _to_int(parts.get("COUNT"))
    max_count = count if count is not None else DEFAULT_MAX_OCCURRENCES

    until: Optional[date] = None
    if parts.get("UNTIL"):
        until_dt = parse_ics_datetime(parts["UNTIL"])
        if until_dt is not None:
            until = until_dt.date()

    weekdays = []
    for code in parts.get("BYDAY", "").split(","):
        # ordinal prefixes ("1MO") are meaningless for WEEKLY, keep the day code
        code = code.strip().upper()[-2:]
        if code in WEEKDAY_CODES and WEEKDAY_CODES[code] not in weekdays:
            weekdays.append(WEEKDAY_CODES[code])
    if not weekdays:
        weekdays = [event.start.weekday()]

    start_date = event.start.date()
    start_time = event.start.time()
    first_dates = sorted(_next_or_same(start_date, wd) for wd in weekdays)

    generated: List[datetime] = []
    week_index = 0
    while len(generated) < max_count and week_index < MAX_WEEK_ITERATIONS:
        try:
            offset = timedelta(weeks=week_index * interval)
            candidates = [d + offset for d in first_dates]
        except OverflowError:
            # past year 9999
            break
        for candidate in candidates:
            if until is not None and candidate > until:
                continue
            generated.append(datetime.combine(candidate, start_time))
            if len(generated) >= max_count:
                break
        if until is not None and all(c > until for c in candidates):
            break
        week_index += 1

    return generated


def expand_occurrences(event: IcsEvent) -> List[datetime]:
    """
    All concrete start date-times of one event, sorted and deduplicated.

    Without a WEEKLY rule the occurrence set is DTSTART + RDATE.
    With a WEEKLY rule it is the generated series + RDATE; DTSTART belongs to
    the series only when it falls on one of the rule's weekdays.
    """
    if not event.recurrence_rule:
        return _finish([event.start, *event.recurrence_dates], event.exception_dates)

    parts = _rule_parts(event.recurrence_rule)
    if parts.get("FREQ", "").upper() != "WEEKLY":
        return _finish([event.start, *event.recurrence_dates], event.exception_dates)

    generated = _weekly_occurrences(event, parts)
    return _finish([*generated, *event.recurrence_dates], event.exception_dates)


# ---------------------------------------------------------------------------
# Folding into sessions
# ---------------------------------------------------------------------------


def _monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def period_range_for(start: datetime, end: Optional[datetime], default_duration: int = 1) -> PeriodRange:
    """
    Map clock times onto the fixed grid: period 1 starts 08:00, one period per hour.
    """
    start_minutes = start.hour * 60 + start.minute
    start_period = max((start_minutes - FIRST_PERIOD_MINUTES) // PERIOD_MINUTES, 0) + 1

    if end is None:
        return PeriodRange(start_period=start_period, duration=max(default_duration, 1))

    end_minutes = end.hour * 60 + end.minute
    if end.date() > start.date():
        end_minutes += 24 * 60
    minutes = max(end_minutes - start_minutes, 1)
    duration = max(math.ceil(minutes / PERIOD_MINUTES), 1)
    return PeriodRange(start_period=start_period, duration=duration)


def extract_teacher(description: str) -> str:
    """
    Pull a teacher name out of an event description.

    'Teacher: Dr. Li' -> 'Dr. Li', '任课老师：王老师' -> '王'
    """
    if not description.strip():
        return ""
    for line in description.replace("\\n", "\n").splitlines():
        text = line.strip()
        if not any(marker.lower() in text.lower() for marker in TEACHER_MARKERS):
            continue
        for marker in TEACHER_MARKERS:
            idx = text.lower().find(marker.lower())
            while idx >= 0:
                text = text[:idx] + text[idx + len(marker):]
                idx = text.lower().find(marker.lower())
        return text.strip(" \t:：-").strip()
    return ""


def expand(raw: str, default_duration: int = 1) -> List[CanonicalSession]:
    """
    Parse an ICS document and return weekly sessions.

    Week 1 is the week (Monday based) of the earliest occurrence in the file.
    """
    events = parse_ics_events(raw)
    if not events:
        return []

    expanded = [(event, expand_occurrences(event)) for event in events]
    all_dates = [o.date() for _, occ in expanded for o in occ]
    if not all_dates:
        return []
    baseline = _monday_of(min(all_dates))

    sessions: List[CanonicalSession] = []
    for event, occurrences in expanded:
        if not occurrences:
            continue
        period = period_range_for(event.start, event.end, default_duration)
        teacher = extract_teacher(event.description)

        by_day: Dict[int, List[datetime]] = defaultdict(list)
        for occurrence in occurrences:
            by_day[occurrence.isoweekday()].append(occurrence)

        for day_of_week in sorted(by_day):
            weeks = {
                (_monday_of(o.date()) - baseline).days // 7 + 1 for o in by_day[day_of_week]
            }
            for week_range in split_weeks(weeks):
                sessions.append(
                    CanonicalSession(
                        name=event.summary,
                        teacher=teacher,
                        location=event.location,
                        day_of_week=day_of_week,
                        start_period=period.start_period,
                        duration=period.duration,
                        start_week=week_range.start_week,
                        end_week=week_range.end_week,
                        week_parity=week_range.week_parity,
                    )
                )

    logger.debug("ICS expanded %d events into %d sessions", len(events), len(sessions))
    return sessions
