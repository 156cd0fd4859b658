"""
Read-only import settings.

This module manages the file:

    data/settings.json

It supplies the "section -> wall-clock time" table and the default session
duration. Like the session store, loading never crashes: a missing or broken
file simply yields the defaults.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, List, Optional, Tuple

DEFAULT_MAX_DAILY_SECTIONS = 12
DEFAULT_SESSION_DURATION = 2
DEFAULT_TOTAL_WEEKS = 20


@dataclass(frozen=True)
class SectionTime:
    start: str  # "HH:MM"
    end: str  # "HH:MM"


@dataclass(frozen=True)
class ImportSettings:
    section_times: Tuple[SectionTime, ...] = field(default_factory=tuple)
    default_duration: int = DEFAULT_SESSION_DURATION
    max_daily_sections: int = DEFAULT_MAX_DAILY_SECTIONS
    total_weeks: int = DEFAULT_TOTAL_WEEKS

    def section_time(self, period: int) -> Optional[SectionTime]:
        """
        Clock times of a 1-based period, or None if the table does not cover it.
        """
        if 1 <= period <= len(self.section_times):
            return self.section_times[period - 1]
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "section_times": [[t.start, t.end] for t in self.section_times],
            "default_duration": self.default_duration,
            "max_daily_sections": self.max_daily_sections,
            "total_weeks": self.total_weeks,
        }


def _default_settings_path() -> Path:
    """
    Return the default path of settings.json inside the package.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "settings.json"


def _valid_hhmm(text: str) -> bool:
    try:
        datetime.strptime(text, "%H:%M")
    except ValueError:
        return False
    return True


def parse_section_times(value: Any) -> Tuple[SectionTime, ...]:
    """
    Accept [["08:00", "08:45"], ...] or the compact "08:00,08:45|08:55,09:40".

    Malformed entries are skipped.
    """
    pairs: List[Any] = []
    if isinstance(value, str):
        pairs = [chunk.split(",") for chunk in value.split("|") if chunk.strip()]
    elif isinstance(value, list):
        pairs = value

    out: List[SectionTime] = []
    for pair in pairs:
        if isinstance(pair, dict):
            pair = [pair.get("start"), pair.get("end")]
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            continue
        start, end = (str(x).strip() for x in pair)
        if _valid_hhmm(start) and _valid_hhmm(end):
            out.append(SectionTime(start, end))
    return tuple(out)


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return default


def load_settings(path: str | Path | None = None) -> ImportSettings:
    """
    Load settings.json. Returns defaults if the file does not exist or is invalid.
    """
    settings_path = Path(path) if path is not None else _default_settings_path()
    if not settings_path.exists():
        return ImportSettings()

    try:
        data = json.loads(settings_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return ImportSettings()
    if not isinstance(data, dict):
        return ImportSettings()

    return ImportSettings(
        section_times=parse_section_times(data.get("section_times", [])),
        default_duration=_positive_int(data.get("default_duration"), DEFAULT_SESSION_DURATION),
        max_daily_sections=_positive_int(data.get("max_daily_sections"), DEFAULT_MAX_DAILY_SECTIONS),
        total_weeks=_positive_int(data.get("total_weeks"), DEFAULT_TOTAL_WEEKS),
    )


def save_settings(settings: ImportSettings, path: str | Path | None = None) -> None:
    settings_path = Path(path) if path is not None else _default_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


def generate_section_times(
    max_sections: int,
    length_minutes: int,
    break_minutes: int,
    morning_start: str = "08:00",
    afternoon_section: int = 0,
    afternoon_start: str = "14:00",
    evening_section: int = 0,
    evening_start: str = "19:00",
) -> Tuple[SectionTime, ...]:
    """
    Batch-generate a section table.

    Sections follow each other with `break_minutes` in between; the sections
    numbered `afternoon_section` / `evening_section` (0 = none) restart at the
    given clock time instead.
    """
    restarts = {1: morning_start}
    if afternoon_section > 1:
        restarts[afternoon_section] = afternoon_start
    if evening_section > 1:
        restarts[evening_section] = evening_start

    out: List[SectionTime] = []
    previous_end: Optional[datetime] = None
    for section in range(1, max_sections + 1):
        if section in restarts or previous_end is None:
            start = datetime.strptime(restarts.get(section, morning_start), "%H:%M")
        else:
            start = previous_end + timedelta(minutes=break_minutes)
        end = start + timedelta(minutes=length_minutes)
        out.append(SectionTime(start.strftime("%H:%M"), end.strftime("%H:%M")))
        previous_end = end
    return tuple(out)
