"""
Unit tests for the ICS importer.

Covers:
- line unfolding and KEY;PARAM:VALUE tokenizing
- WEEKLY expansion (BYDAY, COUNT, UNTIL, INTERVAL), RDATE and EXDATE
- week bucketing against the earliest occurrence and the fixed period grid
- broken events / dates being skipped instead of failing the import
"""

import unittest
from datetime import datetime

from timetable_import.ics import (
    expand,
    expand_occurrences,
    extract_teacher,
    parse_ics_datetime,
    parse_ics_events,
    period_range_for,
    unfold_lines,
)
from timetable_import.model import PeriodRange, WeekParity


def calendar(*events: str) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0"]
    for body in events:
        lines.append("BEGIN:VEVENT")
        lines.extend(body.strip().splitlines())
        lines.append("END:VEVENT")
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


MON_WED = """
SUMMARY:Linear Algebra
DTSTART:20240301T080000
RRULE:FREQ=WEEKLY;BYDAY=MO,WE;COUNT=10
"""


class TestTokenizing(unittest.TestCase):
    def test_unfold_joins_continuation_lines(self) -> None:
        raw = "SUMMARY:Intro\r\n  to Algorithms\r\n\tand Data\r\n\r\nLOCATION:A1\r\n"
        self.assertEqual(unfold_lines(raw), ["SUMMARY:Intro to Algorithmsand Data", "LOCATION:A1"])

    def test_params_are_discarded(self) -> None:
        raw = calendar(
            "SUMMARY;LANGUAGE=en:Physics\nDTSTART;TZID=Asia/Shanghai:20240304T100000\nLOCATION:Hall\\, B"
        )
        events = parse_ics_events(raw)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].summary, "Physics")
        self.assertEqual(events[0].location, "Hall, B")
        self.assertEqual(events[0].start, datetime(2024, 3, 4, 10, 0))

    def test_properties_outside_vevent_are_ignored(self) -> None:
        raw = "BEGIN:VCALENDAR\nSUMMARY:Nope\nDTSTART:20240304T100000\nEND:VCALENDAR\n"
        self.assertEqual(parse_ics_events(raw), [])

    def test_date_forms(self) -> None:
        self.assertEqual(parse_ics_datetime("20240304"), datetime(2024, 3, 4))
        self.assertEqual(parse_ics_datetime("20240304T081500Z"), datetime(2024, 3, 4, 8, 15))
        self.assertEqual(parse_ics_datetime("20240304T081500"), datetime(2024, 3, 4, 8, 15))
        self.assertIsNone(parse_ics_datetime("2024-03-04"))
        self.assertIsNone(parse_ics_datetime("20241304T081500"))

    def test_event_with_bad_dtstart_is_skipped(self) -> None:
        raw = calendar(
            "SUMMARY:Broken\nDTSTART:garbage",
            "SUMMARY:Fine\nDTSTART:20240304T080000",
        )
        events = parse_ics_events(raw)
        self.assertEqual([e.summary for e in events], ["Fine"])

    def test_bad_exdate_entry_is_skipped(self) -> None:
        raw = calendar("SUMMARY:X\nDTSTART:20240304T080000\nEXDATE:nonsense,20240311T080000")
        events = parse_ics_events(raw)
        self.assertEqual(events[0].exception_dates, [datetime(2024, 3, 11, 8, 0)])


class TestOccurrences(unittest.TestCase):
    def test_byday_count(self) -> None:
        event = parse_ics_events(calendar(MON_WED))[0]
        occurrences = expand_occurrences(event)
        self.assertEqual(len(occurrences), 10)
        weekdays = [o.isoweekday() for o in occurrences]
        self.assertEqual(weekdays.count(1), 5)
        self.assertEqual(weekdays.count(3), 5)
        self.assertEqual(occurrences[0], datetime(2024, 3, 4, 8, 0))
        self.assertEqual(occurrences, sorted(occurrences))

    def test_exdate_removes_exactly_one(self) -> None:
        event = parse_ics_events(calendar(MON_WED + "EXDATE:20240311T080000\n"))[0]
        occurrences = expand_occurrences(event)
        self.assertEqual(len(occurrences), 9)
        self.assertNotIn(datetime(2024, 3, 11, 8, 0), occurrences)
        self.assertIn(datetime(2024, 3, 13, 8, 0), occurrences)

    def test_until_is_inclusive(self) -> None:
        event = parse_ics_events(
            calendar("SUMMARY:X\nDTSTART:20240304T100000\nRRULE:FREQ=WEEKLY;UNTIL=20240325T235959Z")
        )[0]
        occurrences = expand_occurrences(event)
        self.assertEqual(
            occurrences,
            [datetime(2024, 3, d, 10, 0) for d in (4, 11, 18, 25)],
        )

    def test_default_cap_without_count(self) -> None:
        event = parse_ics_events(calendar("SUMMARY:X\nDTSTART:20240304T100000\nRRULE:FREQ=WEEKLY"))[0]
        self.assertEqual(len(expand_occurrences(event)), 60)

    def test_non_weekly_rule_is_not_expanded(self) -> None:
        event = parse_ics_events(
            calendar("SUMMARY:X\nDTSTART:20240304T100000\nRRULE:FREQ=DAILY;COUNT=5\nRDATE:20240306T100000")
        )[0]
        self.assertEqual(
            expand_occurrences(event),
            [datetime(2024, 3, 4, 10, 0), datetime(2024, 3, 6, 10, 0)],
        )

    def test_no_rule_uses_dtstart_and_rdates(self) -> None:
        event = parse_ics_events(
            calendar("SUMMARY:X\nDTSTART:20240304T100000\nRDATE:20240311T100000,20240304T100000")
        )[0]
        self.assertEqual(
            expand_occurrences(event),
            [datetime(2024, 3, 4, 10, 0), datetime(2024, 3, 11, 10, 0)],
        )

    def test_interval(self) -> None:
        event = parse_ics_events(
            calendar("SUMMARY:X\nDTSTART:20240304T100000\nRRULE:FREQ=WEEKLY;INTERVAL=2;COUNT=3")
        )[0]
        self.assertEqual(
            expand_occurrences(event),
            [datetime(2024, 3, 4, 10, 0), datetime(2024, 3, 18, 10, 0), datetime(2024, 4, 1, 10, 0)],
        )


class TestExpand(unittest.TestCase):
    def test_mon_wed_sessions(self) -> None:
        sessions = expand(calendar(MON_WED))
        self.assertEqual(len(sessions), 2)
        by_day = {s.day_of_week: s for s in sessions}
        self.assertEqual(set(by_day), {1, 3})
        for s in sessions:
            self.assertEqual((s.start_week, s.end_week, s.week_parity), (1, 5, WeekParity.ALL))
            self.assertEqual((s.start_period, s.duration), (1, 1))
            self.assertEqual(s.name, "Linear Algebra")

    def test_exdate_splits_week_range_without_synthesizing(self) -> None:
        sessions = expand(calendar(MON_WED + "EXDATE:20240311T080000\n"))
        monday = sorted((s for s in sessions if s.day_of_week == 1), key=lambda s: s.start_week)
        weeks = [w for s in monday for w in s.weeks()]
        self.assertEqual(weeks, [1, 3, 4, 5])

    def test_weeks_use_common_baseline(self) -> None:
        raw = calendar(
            "SUMMARY:Early\nDTSTART:20240304T080000",
            "SUMMARY:Later\nDTSTART:20240320T140000\nDTEND:20240320T153000\n"
            "RRULE:FREQ=WEEKLY;INTERVAL=2;COUNT=3\nDESCRIPTION:Room note\\nTeacher: Dr. Li",
        )
        sessions = {s.name: s for s in expand(raw)}
        self.assertEqual((sessions["Early"].start_week, sessions["Early"].end_week), (1, 1))
        later = sessions["Later"]
        self.assertEqual(later.day_of_week, 3)
        self.assertEqual((later.start_week, later.end_week, later.week_parity), (3, 7, WeekParity.ODD))
        self.assertEqual((later.start_period, later.duration), (7, 2))
        self.assertEqual(later.teacher, "Dr. Li")

    def test_default_duration_when_dtend_missing(self) -> None:
        sessions = expand(calendar("SUMMARY:X\nDTSTART:20240304T080000"), default_duration=2)
        self.assertEqual(sessions[0].duration, 2)

    def test_garbage_returns_empty(self) -> None:
        self.assertEqual(expand(""), [])
        self.assertEqual(expand("not a calendar"), [])
        self.assertEqual(expand(calendar("SUMMARY:X\nDTSTART:bad")), [])


class TestHelpers(unittest.TestCase):
    def test_period_grid(self) -> None:
        self.assertEqual(period_range_for(datetime(2024, 3, 4, 7, 30), None), PeriodRange(1, 1))
        self.assertEqual(
            period_range_for(datetime(2024, 3, 4, 10, 15), datetime(2024, 3, 4, 11, 50)),
            PeriodRange(3, 2),
        )
        # ends after midnight
        self.assertEqual(
            period_range_for(datetime(2024, 3, 4, 23, 0), datetime(2024, 3, 5, 1, 0)),
            PeriodRange(16, 2),
        )

    def test_extract_teacher(self) -> None:
        self.assertEqual(extract_teacher("Instructor: Jane Doe"), "Jane Doe")
        self.assertEqual(extract_teacher("教室: A101\n任课老师：王"), "王")
        self.assertEqual(extract_teacher("nothing here"), "")
        self.assertEqual(extract_teacher(""), "")


if __name__ == "__main__":
    unittest.main()
