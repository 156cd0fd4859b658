"""
Unit tests for conflict detection.

Definition used here:
- Same weekday, at least one shared week, overlapping periods.
- ODD and EVEN sessions never share a week.
- Adjacent periods (1-2 and 3-4) are NOT a conflict.
"""

import unittest

from timetable_import.conflicts import find_all_conflicts, find_conflicts, sessions_conflict
from timetable_import.model import CanonicalSession, WeekParity


def make(
    day: int = 1,
    start_period: int = 1,
    duration: int = 2,
    start_week: int = 1,
    end_week: int = 16,
    parity: WeekParity = WeekParity.ALL,
    session_id: int = 0,
    name: str = "A",
) -> CanonicalSession:
    return CanonicalSession(
        name=name,
        teacher="",
        location="",
        day_of_week=day,
        start_period=start_period,
        duration=duration,
        start_week=start_week,
        end_week=end_week,
        week_parity=parity,
        session_id=session_id,
    )


class TestConflicts(unittest.TestCase):
    def test_period_overlap_same_day(self) -> None:
        a = make(start_period=1)
        b = make(start_period=2, name="B")
        self.assertEqual(find_conflicts(a, [b]), [b])

    def test_adjacent_periods_no_conflict(self) -> None:
        a = make(start_period=1)
        b = make(start_period=3, name="B")
        self.assertEqual(find_conflicts(a, [b]), [])

    def test_different_day_no_conflict(self) -> None:
        self.assertEqual(find_conflicts(make(day=1), [make(day=2)]), [])

    def test_odd_and_even_never_conflict(self) -> None:
        odd = make(start_week=1, end_week=15, parity=WeekParity.ODD)
        even = make(start_week=2, end_week=16, parity=WeekParity.EVEN)
        self.assertEqual(find_conflicts(odd, [even]), [])
        self.assertEqual(find_conflicts(even, [odd]), [])

    def test_same_parity_conflicts(self) -> None:
        a = make(start_week=1, end_week=9, parity=WeekParity.ODD)
        b = make(start_week=5, end_week=15, parity=WeekParity.ODD)
        self.assertTrue(sessions_conflict(a, b))

    def test_all_parity_overlaps_odd(self) -> None:
        a = make(start_week=1, end_week=4)
        b = make(start_week=3, end_week=9, parity=WeekParity.ODD)
        self.assertTrue(sessions_conflict(a, b))

    def test_disjoint_weeks_no_conflict(self) -> None:
        self.assertFalse(sessions_conflict(make(start_week=1, end_week=8), make(start_week=9, end_week=16)))

    def test_same_identity_is_skipped(self) -> None:
        stored = make(session_id=7)
        edited = make(session_id=7, start_period=2)
        self.assertEqual(find_conflicts(edited, [stored]), [])

    def test_unsaved_sessions_have_no_identity(self) -> None:
        a = make()
        b = make(name="B")
        self.assertEqual(find_conflicts(a, [b]), [b])

    def test_symmetry(self) -> None:
        samples = [
            make(day=d, start_period=p, duration=dur, start_week=sw, end_week=sw + span, parity=par)
            for d in (1, 2)
            for p in (1, 2, 4)
            for dur in (1, 2)
            for sw in (1, 2)
            for span in (0, 6)
            for par in WeekParity
        ]
        for a in samples:
            for b in samples:
                if a is b:
                    continue
                self.assertEqual(bool(find_conflicts(a, [b])), bool(find_conflicts(b, [a])))

    def test_find_all_conflicts_lists_each_pair_once(self) -> None:
        a = make(name="A")
        b = make(name="B", start_period=2)
        c = make(name="C", start_period=5)
        pairs = find_all_conflicts([a, b, c])
        self.assertEqual(pairs, [(a, b)])


if __name__ == "__main__":
    unittest.main()
