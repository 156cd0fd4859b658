"""
Persistent storage for imported sessions.

This module manages the file:

    data/sessions.json

It is the file-backed persistence sink used by the CLI. The importers only
know the SessionSink protocol (save_sessions), so any other store can be
plugged into the orchestrator instead.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List

from timetable_import.model import CanonicalSession
from timetable_import.normalize import session_from_dict


def _default_sessions_path() -> Path:
    """
    Return the default path of sessions.json inside the package.

    Using a function instead of a constant makes testing easier,
    because tests can override the path.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "sessions.json"


class JsonSessionStore:
    """
    Sessions persisted as {"sessions": [...]}; ids are assigned on save.
    """

    def __init__(self, path: str | Path | None = None, append: bool = False) -> None:
        self.path = Path(path) if path is not None else _default_sessions_path()
        self.append = append

    def load(self) -> List[CanonicalSession]:
        """
        Returns an empty list if the file does not exist or is invalid.
        Invalid records are skipped.
        """
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            return []

        records = data.get("sessions", []) if isinstance(data, dict) else []
        if not isinstance(records, list):
            return []

        out: List[CanonicalSession] = []
        for record in records:
            session = session_from_dict(record)
            if session is not None:
                out.append(session)
        return out

    def save_sessions(self, sessions: Iterable[CanonicalSession]) -> None:
        """
        Write sessions, replacing the stored ones unless the store appends.

        Sessions without an id get the next free one.
        """
        existing = self.load() if self.append else []
        combined = [*existing, *sessions]
        next_id = max((s.session_id for s in combined), default=0) + 1

        records = []
        for session in combined:
            session_id = session.session_id
            if session_id == 0:
                session_id = next_id
                next_id += 1
            records.append({"id": session_id, **session.to_dict()})

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps({"sessions": records}, indent=2, ensure_ascii=False), encoding="utf-8"
        )
