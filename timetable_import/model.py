"""
Central data model definitions used across the project.

Every importer (scraping script, ICS file, third-party JSON) ends up producing
CanonicalSession objects, so:
- all modules share the same field names
- the range splitter, conflict detector and storage agree on one shape
- week parity is always a WeekParity member, never a bare int
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, List, Optional, Tuple


class WeekParity(IntEnum):
    """
    Which semester weeks a recurring block happens in.

    The integer values are the persisted "week type" (0=all, 1=odd, 2=even).
    """

    ALL = 0
    ODD = 1
    EVEN = 2

    @classmethod
    def coerce(cls, value: Any) -> "WeekParity":
        """
        Accept a member, its int value or its name ("odd", "EVEN", ...).
        Raises ValueError for anything else.
        """
        if isinstance(value, WeekParity):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid week parity: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip().upper()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text]
            except KeyError:
                raise ValueError(f"Invalid week parity: {value!r}") from None
        raise ValueError(f"Invalid week parity: {value!r}")

    def includes(self, week: int) -> bool:
        if self is WeekParity.ODD:
            return week % 2 == 1
        if self is WeekParity.EVEN:
            return week % 2 == 0
        return True


@dataclass(frozen=True)
class WeekRange:
    """
    One contiguous run of weeks, optionally restricted to odd/even weeks.
    """

    start_week: int
    end_week: int
    week_parity: WeekParity = WeekParity.ALL


@dataclass(frozen=True)
class PeriodRange:
    """
    One contiguous run of class periods ("sections") on a single day.
    """

    start_period: int
    duration: int

    @property
    def end_period(self) -> int:
        return self.start_period + self.duration - 1


@dataclass(frozen=True)
class CanonicalSession:
    """
    One contiguous-week, contiguous-period, single-weekday occurrence of a course.

    This is the atomic unit handed to the persistence sink.
    session_id is 0 for sessions that were never stored.
    """

    name: str
    teacher: str
    location: str
    day_of_week: int
    start_period: int
    duration: int
    start_week: int
    end_week: int
    week_parity: WeekParity = WeekParity.ALL
    session_id: int = 0

    @property
    def end_period(self) -> int:
        return self.start_period + self.duration - 1

    def is_valid(self) -> bool:
        return (
            1 <= self.day_of_week <= 7
            and self.start_period >= 1
            and self.duration >= 1
            and self.start_week >= 1
            and self.end_week >= self.start_week
            and isinstance(self.week_parity, WeekParity)
        )

    def weeks(self) -> List[int]:
        """
        Concrete week numbers this session meets in.
        """
        return [
            w for w in range(self.start_week, self.end_week + 1) if self.week_parity.includes(w)
        ]

    def to_course(self, semester_id: int = 1, color: str = "") -> "CanonicalCourse":
        return CanonicalCourse(
            name=self.name,
            teacher=self.teacher,
            location=self.location,
            day_of_week=self.day_of_week,
            start_period=self.start_period,
            duration=self.duration,
            start_week=self.start_week,
            end_week=self.end_week,
            week_parity=self.week_parity,
            session_id=self.session_id,
            semester_id=semester_id,
            color=color,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "teacher": self.teacher,
            "location": self.location,
            "dayOfWeek": self.day_of_week,
            "startPeriod": self.start_period,
            "duration": self.duration,
            "startWeek": self.start_week,
            "endWeek": self.end_week,
            "weekParity": self.week_parity.name,
        }


@dataclass(frozen=True)
class CanonicalCourse(CanonicalSession):
    """
    Final domain entity owned by the persistence layer.
    """

    semester_id: int = 1
    color: str = ""


@dataclass(frozen=True)
class ThirdPartyCourse:
    """
    A course in the third-party exchange format, before folding.

    weeks and periods are the discrete, as-received sets (sorted, distinct).
    """

    name: str
    teacher: str
    position: str
    day: int
    weeks: Tuple[int, ...]
    periods: Tuple[int, ...]


@dataclass(frozen=True)
class ThirdPartyResult:
    courses: List[ThirdPartyCourse] = field(default_factory=list)
    # Secondary blob some providers attach ("timetable"), passed through unvalidated
    auxiliary_payload: Optional[str] = None


@dataclass(frozen=True)
class IcsEvent:
    summary: str
    location: str
    description: str
    start: datetime
    end: Optional[datetime]
    recurrence_rule: Optional[str]
    recurrence_dates: List[datetime] = field(default_factory=list)
    exception_dates: List[datetime] = field(default_factory=list)


@dataclass(frozen=True)
class IngestResult:
    """
    What one ingestion run hands back to the caller.

    max_period / max_week let the caller auto-configure how many sections per
    day and how many weeks the semester shows.
    """

    sessions: List[CanonicalSession]
    max_period: int
    max_week: int
    source_format: str
    auxiliary_payload: Optional[str] = None

    @classmethod
    def from_sessions(
        cls,
        sessions: List[CanonicalSession],
        source_format: str,
        auxiliary_payload: Optional[str] = None,
    ) -> "IngestResult":
        max_period = max((s.end_period for s in sessions), default=0)
        max_week = max((s.end_week for s in sessions), default=0)
        return cls(
            sessions=list(sessions),
            max_period=max_period,
            max_week=max_week,
            source_format=source_format,
            auxiliary_payload=auxiliary_payload,
        )
