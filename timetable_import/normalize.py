"""
Parsing (exchange JSON -> canonical sessions).

Accepted third-party shapes:
- bare array of course objects
- {"courses": [...], "timetable": ...}
- {"courseInfos": [...]}

Course object:
    {name, teacher, position, day | dayOfWeek, weeks: [int], sections: [int | {section: int}]}

Important rules:
- Nothing in here raises on bad input; malformed input -> empty result
- A course without a valid day, weeks or sections is dropped
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, List, Optional

from timetable_import.model import (
    CanonicalSession,
    ThirdPartyCourse,
    ThirdPartyResult,
    WeekParity,
)
from timetable_import.ranges import split_periods, split_weeks

logger = logging.getLogger(__name__)

# Returned by provider scripts that want the import flow to stop
STOP_SENTINEL = "do not continue"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_int(value: Any, default: int = 0) -> int:
    """
    Lenient int conversion: numbers and numeric strings, everything else -> default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return default
    if isinstance(value, float):
        # json.loads accepts NaN / Infinity
        return int(value) if math.isfinite(value) else default
    return default


def _as_str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _int_list(items: Any) -> List[int]:
    if not isinstance(items, list):
        return []
    out: List[int] = []
    for item in items:
        value = _as_int(item, -1)
        if value > 0:
            out.append(value)
    return out


def _period_list(items: Any) -> List[int]:
    # sections come as [1, 2] or [{"section": 1}, {"section": 2}]
    if not isinstance(items, list):
        return []
    out: List[int] = []
    for item in items:
        if isinstance(item, dict):
            value = _as_int(item.get("section"), -1)
        else:
            value = _as_int(item, -1)
        if value > 0:
            out.append(value)
    return out


def _parse_course(obj: Any) -> Optional[ThirdPartyCourse]:
    if not isinstance(obj, dict):
        return None

    # "day": null counts as absent
    day_raw = obj.get("day")
    day = _as_int(day_raw if day_raw is not None else obj.get("dayOfWeek"))
    weeks = _int_list(obj.get("weeks"))
    periods = _period_list(obj.get("sections"))
    if day <= 0 or not weeks or not periods:
        logger.debug("Dropping course %r (day=%s weeks=%s periods=%s)", obj.get("name"), day, weeks, periods)
        return None

    return ThirdPartyCourse(
        name=_as_str(obj.get("name")),
        teacher=_as_str(obj.get("teacher")),
        position=_as_str(obj.get("position")),
        day=day,
        weeks=tuple(sorted(set(weeks))),
        periods=tuple(sorted(set(periods))),
    )


def _parse_courses(array: Any) -> List[ThirdPartyCourse]:
    if not isinstance(array, list):
        return []
    courses: List[ThirdPartyCourse] = []
    for obj in array:
        course = _parse_course(obj)
        if course is not None:
            courses.append(course)
    return courses


def _timetable_payload(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, str) and value.strip():
        return value
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_third_party_result(raw: str) -> ThirdPartyResult:
    """
    Detect and parse the third-party exchange format. Never raises.
    """
    trimmed = (raw or "").strip()
    if not trimmed or trimmed == STOP_SENTINEL:
        return ThirdPartyResult()

    try:
        data = json.loads(trimmed)
    except (ValueError, RecursionError):
        return ThirdPartyResult()

    if trimmed.startswith("["):
        return ThirdPartyResult(courses=_parse_courses(data))

    if not isinstance(data, dict):
        return ThirdPartyResult()

    if "courses" in data:
        course_array = data.get("courses")
    elif "courseInfos" in data:
        course_array = data.get("courseInfos")
    else:
        course_array = None

    return ThirdPartyResult(
        courses=_parse_courses(course_array),
        auxiliary_payload=_timetable_payload(data.get("timetable")),
    )


def convert_to_canonical(courses: List[ThirdPartyCourse]) -> List[CanonicalSession]:
    """
    One session per (week range, period range) pair of every course.

    A course on weeks {1..4, 7, 8} and periods {1, 2, 5} becomes 2 x 2 sessions.
    """
    sessions: List[CanonicalSession] = []
    for course in courses:
        if not 1 <= course.day <= 7:
            continue
        for week_range in split_weeks(course.weeks):
            for period_range in split_periods(course.periods):
                sessions.append(
                    CanonicalSession(
                        name=course.name,
                        teacher=course.teacher,
                        location=course.position,
                        day_of_week=course.day,
                        start_period=period_range.start_period,
                        duration=period_range.duration,
                        start_week=week_range.start_week,
                        end_week=week_range.end_week,
                        week_parity=week_range.week_parity,
                    )
                )
    return sessions


def _pick(obj: dict, *keys: str) -> Any:
    for key in keys:
        if key in obj:
            return obj[key]
    return None


def session_from_dict(obj: Any) -> Optional[CanonicalSession]:
    """
    Build a session from the project's own JSON shape (camelCase or snake_case).

    Returns None when a field is missing or an invariant does not hold.
    """
    if not isinstance(obj, dict):
        return None
    try:
        parity_raw = _pick(obj, "weekParity", "week_parity", "weekType")
        session = CanonicalSession(
            name=_as_str(obj.get("name")),
            teacher=_as_str(obj.get("teacher")),
            location=_as_str(_pick(obj, "location", "position")),
            day_of_week=_as_int(_pick(obj, "dayOfWeek", "day_of_week", "day")),
            start_period=_as_int(_pick(obj, "startPeriod", "start_period", "startSection")),
            duration=_as_int(obj.get("duration")),
            start_week=_as_int(_pick(obj, "startWeek", "start_week")),
            end_week=_as_int(_pick(obj, "endWeek", "end_week")),
            week_parity=WeekParity.ALL if parity_raw is None else WeekParity.coerce(parity_raw),
            session_id=max(_as_int(obj.get("id")), 0),
        )
    except ValueError:
        return None
    return session if session.is_valid() else None


def parse_canonical_sessions(raw: str) -> List[CanonicalSession]:
    """
    Parse a list of already-canonical sessions (bare array or {"sessions": [...]}).

    Third-party payloads (with weeks/sections arrays) are not matched here.
    Never raises.
    """
    trimmed = (raw or "").strip()
    if not trimmed or trimmed == STOP_SENTINEL:
        return []
    try:
        data = json.loads(trimmed)
    except (ValueError, RecursionError):
        return []

    if isinstance(data, dict):
        data = data.get("sessions")
    if not isinstance(data, list):
        return []

    sessions: List[CanonicalSession] = []
    for obj in data:
        if isinstance(obj, dict) and ("weeks" in obj or "sections" in obj):
            continue
        session = session_from_dict(obj)
        if session is not None:
            sessions.append(session)
    return sessions
