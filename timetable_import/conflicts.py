"""
Conflict detection.

Two weekly sessions conflict if they meet on the same weekday, in at least one
common week, and their period intervals overlap.

Week rule:
    ranges [start_week, end_week] intersect AND
    (either side is ALL-parity OR both sides have the same parity)
    An ODD and an EVEN session never share a calendar week.
Period rule:
    max(start) <= min(end) on the closed intervals [start, start+duration-1]
"""

from __future__ import annotations

from typing import Sequence

from timetable_import.model import CanonicalSession, WeekParity


def _weeks_overlap(a: CanonicalSession, b: CanonicalSession) -> bool:
    if max(a.start_week, b.start_week) > min(a.end_week, b.end_week):
        return False
    if a.week_parity is WeekParity.ALL or b.week_parity is WeekParity.ALL:
        return True
    return a.week_parity is b.week_parity


def _periods_overlap(a: CanonicalSession, b: CanonicalSession) -> bool:
    return max(a.start_period, b.start_period) <= min(a.end_period, b.end_period)


def _same_identity(a: CanonicalSession, b: CanonicalSession) -> bool:
    # session_id 0 means "never stored" and carries no identity
    if a is b:
        return True
    return a.session_id != 0 and a.session_id == b.session_id


def sessions_conflict(a: CanonicalSession, b: CanonicalSession) -> bool:
    """
    Symmetric overlap test for two sessions (identity is not considered).
    """
    if a.day_of_week != b.day_of_week:
        return False
    return _weeks_overlap(a, b) and _periods_overlap(a, b)


def find_conflicts(
    target: CanonicalSession, existing: Sequence[CanonicalSession]
) -> list[CanonicalSession]:
    """
    Return every session in `existing` that overlaps `target`.

    A candidate with the same identity as `target` is skipped, so an edited
    session is not reported as conflicting with its stored self.
    """
    return [
        other
        for other in existing
        if not _same_identity(target, other) and sessions_conflict(target, other)
    ]


def find_all_conflicts(
    sessions: Sequence[CanonicalSession],
) -> list[tuple[CanonicalSession, CanonicalSession]]:
    """
    Find conflicting session pairs (A,B), each pair appears once (i<j).
    """
    conflicts: list[tuple[CanonicalSession, CanonicalSession]] = []

    # O(n^2) is fine for a single student's timetable
    for i in range(len(sessions)):
        a = sessions[i]
        for j in range(i + 1, len(sessions)):
            b = sessions[j]
            if _same_identity(a, b):
                continue
            if sessions_conflict(a, b):
                conflicts.append((a, b))

    return conflicts
