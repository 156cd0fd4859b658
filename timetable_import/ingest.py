"""
Ingestion orchestrator.

raw text (scraped page, ICS file or JSON blob)
    -> format-specific parser
    -> canonical sessions
    -> persistence sink

Fallback order for non-ICS text:
    1. canonical session JSON (our own export / store format)
    2. third-party exchange JSON
    3. scraping script (given or bundled default) -> exchange JSON

If nothing yields a session, FormatDetectionError is raised and the sink is
not touched, so a wholly unrecognized source never causes a partial import.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from timetable_import import ics
from timetable_import.model import CanonicalSession, IngestResult
from timetable_import.normalize import (
    convert_to_canonical,
    parse_canonical_sessions,
    parse_third_party_result,
)
from timetable_import.script_host import ScriptExecutionError, ScriptHost, load_default_script
from timetable_import.settings import ImportSettings

logger = logging.getLogger(__name__)


class FormatDetectionError(Exception):
    """
    No supported format produced any session ("no sessions recognized").
    """


class SessionSink(Protocol):
    def save_sessions(self, sessions: Iterable[CanonicalSession]) -> None:
        ...


def looks_like_ics(raw: str) -> bool:
    head = raw.lstrip("\ufeff \t\r\n")[:64].upper()
    return head.startswith("BEGIN:VCALENDAR")


def _from_json(raw: str) -> Optional[IngestResult]:
    sessions = parse_canonical_sessions(raw)
    if sessions:
        return IngestResult.from_sessions(sessions, source_format="sessions-json")

    result = parse_third_party_result(raw)
    sessions = convert_to_canonical(result.courses)
    if sessions:
        return IngestResult.from_sessions(
            sessions, source_format="exchange-json", auxiliary_payload=result.auxiliary_payload
        )
    return None


def detect_sessions(
    raw: str,
    script: Optional[str] = None,
    host: Optional[ScriptHost] = None,
) -> IngestResult:
    """
    Try the JSON formats, then the scraping script.

    A failing bundled default script is logged and treated as "no sessions";
    a failing caller-supplied `script` raises ScriptExecutionError.
    """
    found = _from_json(raw)
    if found is not None:
        return found

    host = host or ScriptHost()
    try:
        output = host.execute(script if script is not None else load_default_script(), raw)
    except ScriptExecutionError as exc:
        if script is not None:
            raise
        logger.info("Default scraping script gave no result: %s", exc)
        return IngestResult.from_sessions([], source_format="none")

    found = _from_json(output)
    if found is not None:
        return IngestResult.from_sessions(
            found.sessions, source_format="script", auxiliary_payload=found.auxiliary_payload
        )
    return IngestResult.from_sessions([], source_format="none")


def ingest_ics(raw: str, settings: Optional[ImportSettings] = None) -> IngestResult:
    settings = settings or ImportSettings()
    sessions = ics.expand(raw, default_duration=settings.default_duration)
    return IngestResult.from_sessions(sessions, source_format="ics")


def ingest(
    raw: str,
    sink: SessionSink,
    script: Optional[str] = None,
    settings: Optional[ImportSettings] = None,
    host: Optional[ScriptHost] = None,
) -> IngestResult:
    """
    Recognize `raw`, convert it and hand every session to `sink` in one call.

    Raises FormatDetectionError if no format yields a session, and
    ScriptExecutionError if a caller-supplied script fails. The sink is not
    touched in either case.
    """
    if looks_like_ics(raw):
        result = ingest_ics(raw, settings)
    else:
        result = detect_sessions(raw, script=script, host=host)

    if not result.sessions:
        raise FormatDetectionError("no sessions recognized")

    logger.info("Recognized %d sessions (%s)", len(result.sessions), result.source_format)
    sink.save_sessions(result.sessions)
    return result
