"""
Range folding.

Collapses discrete week numbers / period numbers into the minimal list of
ranges that reconstructs exactly the same set.

Week rule:
    the step of a range is taken from its first gap and must be 1 or 2;
    any later gap that differs closes the range and starts a new one.
Period rule:
    only gaps of exactly 1 continue a range.
"""

from __future__ import annotations

from typing import Iterable, List

from timetable_import.model import PeriodRange, WeekParity, WeekRange


def _build_week_range(start: int, end: int, step: int) -> WeekRange:
    if step == 2:
        parity = WeekParity.ODD if start % 2 == 1 else WeekParity.EVEN
    else:
        parity = WeekParity.ALL
    return WeekRange(start_week=start, end_week=end, week_parity=parity)


def split_weeks(weeks: Iterable[int]) -> List[WeekRange]:
    """
    Fold week numbers into WeekRanges (ALL / ODD / EVEN).

    {1,3,5,7,9} -> [(1, 9, ODD)]
    {1,2,3,4,7,8} -> [(1, 4, ALL), (7, 8, ALL)]
    """
    ordered = sorted(set(weeks))
    if not ordered:
        return []

    ranges: List[WeekRange] = []
    start = prev = ordered[0]
    step = 0

    for current in ordered[1:]:
        diff = current - prev
        if step == 0:
            step = diff
        if step in (1, 2) and diff == step:
            prev = current
            continue
        # gap does not match the established step -> close the current range
        ranges.append(_build_week_range(start, prev, step))
        start = prev = current
        step = 0

    ranges.append(_build_week_range(start, prev, step))
    return ranges


def split_periods(periods: Iterable[int]) -> List[PeriodRange]:
    """
    Fold period numbers into contiguous PeriodRanges.

    {1,2,3,5,6} -> [(1, 3), (5, 2)]
    """
    ordered = sorted(set(periods))
    if not ordered:
        return []

    ranges: List[PeriodRange] = []
    start = prev = ordered[0]

    for current in ordered[1:]:
        if current - prev != 1:
            ranges.append(PeriodRange(start_period=start, duration=prev - start + 1))
            start = current
        prev = current

    ranges.append(PeriodRange(start_period=start, duration=prev - start + 1))
    return ranges


def expand_week_range(week_range: WeekRange) -> List[int]:
    """
    Inverse of split_weeks for a single range.
    """
    return [
        w
        for w in range(week_range.start_week, week_range.end_week + 1)
        if week_range.week_parity.includes(w)
    ]
