"""
Sandboxed execution of timetable scraping scripts.

A scraping script is untrusted JavaScript that turns a timetable page into the
exchange JSON. Each call to ScriptHost.execute:

- creates one QuickJS runtime (memory and time limited, no I/O)
- installs small browser stand-ins (console, setTimeout, window, document)
- loads the script and probes which entry point it offers
- runs the entry point; promise results are settled by draining the
  runtime's job queue a bounded number of times
- closes the runtime on every exit path

Entry points, checked in this order:
    scheduleHtmlProvider(html, token, extra)  [+ scheduleHtmlParser, scheduleTimer]
    scheduleHtmlParser(html)
    parse(html)
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import quickjs

logger = logging.getLogger(__name__)


PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_SCRIPT_PATH = PACKAGE_DIR / "parsers" / "default_scraper.js"

MAX_POLL_ITERATIONS = 200
MAX_JOBS_PER_DRAIN = 1000
DEFAULT_MEMORY_LIMIT = 64 * 1024 * 1024
DEFAULT_TIME_LIMIT_SECONDS = 10.0
DEFAULT_MAX_STACK_SIZE = 1024 * 1024
# wall-clock budget for one execute() call, across all job drains
DEFAULT_TOTAL_SECONDS = 30.0
MAX_CONSOLE_LINES = 200


class ScriptExecutionError(Exception):
    """
    The script could not be run: no entry point, it threw, or its promise rejected.
    """


class EntryPoint(Enum):
    PROVIDER = "provider"
    PARSER_ONLY = "parser"
    LEGACY_PARSE = "parse"


@dataclass(frozen=True)
class FlowState:
    """
    Snapshot of the script's outcome, read out of the sandbox in one call.
    """

    resolved: bool
    value: str
    error: Optional[str]


class ScriptRuntime(Protocol):
    supports_microtasks: bool

    def evaluate(self, code: str) -> Any:
        """Run code; raise ScriptExecutionError if it throws."""

    def drain_microtasks(self, deadline: Optional[float] = None) -> bool:
        """Run pending jobs until none are left or time.monotonic() passes deadline; True if one ran."""

    def close(self) -> None:
        """Release the interpreter. Called exactly once per runtime."""


# ---------------------------------------------------------------------------
# QuickJS binding
# ---------------------------------------------------------------------------


class QuickJsRuntime:
    """
    One isolated QuickJS context with no host callables: console output is
    buffered inside the sandbox and collected by the host with each state read.
    """

    supports_microtasks = True

    def __init__(
        self,
        memory_limit: int = DEFAULT_MEMORY_LIMIT,
        time_limit: float = DEFAULT_TIME_LIMIT_SECONDS,
        max_stack_size: int = DEFAULT_MAX_STACK_SIZE,
    ) -> None:
        self._context: Optional[quickjs.Context] = quickjs.Context()
        self._context.set_memory_limit(memory_limit)
        self._context.set_time_limit(time_limit)
        self._context.set_max_stack_size(max_stack_size)

    def _ctx(self) -> quickjs.Context:
        if self._context is None:
            raise ScriptExecutionError("runtime already closed")
        return self._context

    def evaluate(self, code: str) -> Any:
        try:
            return self._ctx().eval(code)
        except (quickjs.JSException, MemoryError) as exc:
            raise ScriptExecutionError(str(exc)) from exc

    def drain_microtasks(self, deadline: Optional[float] = None) -> bool:
        ctx = self._ctx()
        ran = False
        try:
            for _ in range(MAX_JOBS_PER_DRAIN):
                if deadline is not None and time.monotonic() >= deadline:
                    break
                if not ctx.execute_pending_job():
                    break
                ran = True
        except (quickjs.JSException, MemoryError) as exc:
            raise ScriptExecutionError(str(exc)) from exc
        return ran

    def close(self) -> None:
        # the context and its runtime are freed when the last reference goes
        context, self._context = self._context, None
        del context


# ---------------------------------------------------------------------------
# JavaScript glue
# ---------------------------------------------------------------------------

_POLYFILLS = r"""
(function (g) {
  g.__console = [];
  function emit(level, args) {
    var parts = [];
    for (var i = 0; i < args.length; i++) {
      var a = args[i];
      try { parts.push(typeof a === 'string' ? a : String(JSON.stringify(a))); }
      catch (e) { parts.push(String(a)); }
    }
    if (g.__console.length < __CONSOLE_LIMIT__) g.__console.push(level + ': ' + parts.join(' '));
  }
  g.console = {
    log: function () { emit('log', arguments); },
    info: function () { emit('info', arguments); },
    debug: function () { emit('debug', arguments); },
    warn: function () { emit('warn', arguments); },
    error: function () { emit('error', arguments); }
  };
  var timerId = 0;
  g.setTimeout = function (fn) {
    var args = Array.prototype.slice.call(arguments, 2);
    timerId += 1;
    if (typeof fn === 'function') fn.apply(null, args);
    return timerId;
  };
  g.setInterval = g.setTimeout;
  g.clearTimeout = function () {};
  g.clearInterval = g.clearTimeout;
  g.window = g;
  g.self = g;
  g.document = {
    body: null,
    documentElement: null,
    querySelector: function () { return null; },
    querySelectorAll: function () { return []; },
    getElementById: function () { return null; },
    getElementsByTagName: function () { return []; },
    getElementsByClassName: function () { return []; }
  };
})(globalThis);
"""

_PROBE = r"""
(typeof scheduleHtmlProvider === 'function') ? 'provider' :
(typeof scheduleHtmlParser === 'function') ? 'parser' :
(typeof parse === 'function') ? 'parse' : ''
"""

_DRIVER = r"""
var __flow = { resolved: false, value: undefined, error: null };
(function () {
  var flow = __flow;
  var input = __INPUT__, token = __TOKEN__, extra = __EXTRA__;
  function settle(v) { flow.value = v; flow.resolved = true; }
  function fail(e) {
    flow.error = (e !== null && e !== undefined && e.message !== undefined) ? String(e.message) : String(e);
    flow.resolved = true;
  }
  function step(v, next) {
    if (v !== null && v !== undefined && typeof v.then === 'function') {
      v.then(function (r) { try { next(r); } catch (e) { fail(e); } }, fail);
    } else {
      next(v);
    }
  }
  function compose(payload, timerRes) {
    if (timerRes === null || timerRes === undefined) return payload;
    var obj = payload;
    if (typeof payload === 'string') {
      try { obj = JSON.parse(payload); } catch (e) { return payload; }
    }
    if (Array.isArray(obj)) return { courses: obj, timetable: timerRes };
    if (obj !== null && typeof obj === 'object') {
      if (!('timetable' in obj)) obj.timetable = timerRes;
      return obj;
    }
    return payload;
  }
  try {
    __BODY__
  } catch (e) {
    fail(e);
  }
})();
"""

_BODIES = {
    EntryPoint.PARSER_ONLY: "step(scheduleHtmlParser(input), settle);",
    EntryPoint.LEGACY_PARSE: "step(parse(input), settle);",
    EntryPoint.PROVIDER: r"""
    step(scheduleHtmlProvider(input, token, extra), function (providerRes) {
      if (providerRes === 'do not continue') { settle(providerRes); return; }
      var hasParser = typeof scheduleHtmlParser === 'function';
      var hasTimer = typeof scheduleTimer === 'function';
      function finish(parserRes) {
        var payload = (hasParser && parserRes !== null && parserRes !== undefined) ? parserRes : providerRes;
        if (!hasTimer) { settle(payload); return; }
        step(scheduleTimer({ providerRes: providerRes, parserRes: parserRes }), function (timerRes) {
          settle(compose(payload, timerRes));
        });
      }
      if (hasParser) { step(scheduleHtmlParser(providerRes), finish); } else { finish(undefined); }
    });
    """,
}

_READ_STATE = r"""
JSON.stringify({
  console: Array.isArray(globalThis.__console) ? globalThis.__console.splice(0) : [],
  resolved: __flow.resolved === true,
  error: __flow.error === null ? null : String(__flow.error),
  value: (function (v) {
    if (v === null || v === undefined) return '';
    if (typeof v === 'string') return v;
    try { var s = JSON.stringify(v); return s === undefined ? String(v) : s; }
    catch (e) { return String(v); }
  })(__flow.value)
})
"""


def _js_literal(value: str) -> str:
    # JSON text is a valid JS expression
    return json.dumps(value)


def _build_driver(entry: EntryPoint, raw_input: str, auth_token: str, extra: str) -> str:
    slots = {
        "BODY": _BODIES[entry],
        "INPUT": _js_literal(raw_input),
        "TOKEN": _js_literal(auth_token),
        "EXTRA": _js_literal(extra),
    }
    # single pass, so placeholder-like text inside the inputs is left alone
    return re.sub(r"__(BODY|INPUT|TOKEN|EXTRA)__", lambda m: slots[m.group(1)], _DRIVER)


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------


class ScriptHost:
    """
    Runs scraping scripts, one fresh runtime per call.
    """

    def __init__(
        self,
        runtime_factory: Callable[[], ScriptRuntime] = QuickJsRuntime,
        max_poll_iterations: int = MAX_POLL_ITERATIONS,
        max_total_seconds: float = DEFAULT_TOTAL_SECONDS,
    ) -> None:
        self._runtime_factory = runtime_factory
        self._max_poll_iterations = max_poll_iterations
        self._max_total_seconds = max_total_seconds

    def execute(self, script: str, raw_input: str, auth_token: str = "", extra: str = "") -> str:
        """
        Run `script` against `raw_input` and return its output as a string.

        Raises ScriptExecutionError if the script has no entry point, throws,
        or its promise rejects. A promise that never settles within the poll
        budget (or before max_total_seconds run out) is not an error: whatever
        value exists is returned.
        """
        deadline = time.monotonic() + self._max_total_seconds
        runtime = self._runtime_factory()
        try:
            return self._run(runtime, script, raw_input, auth_token, extra, deadline)
        finally:
            runtime.close()

    def _run(
        self,
        runtime: ScriptRuntime,
        script: str,
        raw_input: str,
        auth_token: str,
        extra: str,
        deadline: float,
    ) -> str:
        runtime.evaluate(_POLYFILLS.replace("__CONSOLE_LIMIT__", str(MAX_CONSOLE_LINES)))
        try:
            runtime.evaluate(script)
        except ScriptExecutionError as exc:
            raise ScriptExecutionError(f"script failed to load: {exc}") from exc

        entry = self.detect_entry_point(runtime)
        logger.debug("Running script via %s entry point", entry.value)

        runtime.evaluate(_build_driver(entry, raw_input, auth_token, extra))
        state = self._read_state(runtime)
        if not state.resolved:
            state = self._poll(runtime, deadline)

        if state.error is not None:
            raise ScriptExecutionError(state.error)
        if not state.resolved:
            logger.warning("Script did not settle within the poll budget, using partial result")
        return state.value

    @staticmethod
    def detect_entry_point(runtime: ScriptRuntime) -> EntryPoint:
        tag = runtime.evaluate(_PROBE)
        for entry in EntryPoint:
            if entry.value == tag:
                return entry
        raise ScriptExecutionError("no compatible entry function")

    def _poll(self, runtime: ScriptRuntime, deadline: float) -> FlowState:
        if not runtime.supports_microtasks:
            return self._read_state(runtime)

        state = FlowState(resolved=False, value="", error=None)
        for _ in range(self._max_poll_iterations):
            if time.monotonic() >= deadline:
                logger.warning("Script ran out of time after %.1fs", self._max_total_seconds)
                break
            runtime.drain_microtasks(deadline)
            state = self._read_state(runtime)
            if state.resolved:
                break
        return state

    @staticmethod
    def _read_state(runtime: ScriptRuntime) -> FlowState:
        raw = runtime.evaluate(_READ_STATE)
        try:
            data = json.loads(raw) if isinstance(raw, str) else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        for line in data.get("console") or []:
            logger.debug("script console.%s", line)
        error = data.get("error")
        value = data.get("value")
        return FlowState(
            resolved=bool(data.get("resolved", False)),
            value=value if isinstance(value, str) else "",
            error=error if isinstance(error, str) else None,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_default_script() -> str:
    """
    The bundled regex-based scraper used when no script is given.
    """
    return DEFAULT_SCRIPT_PATH.read_text(encoding="utf-8")


def execute(script: str, raw_input: str, auth_token: str = "", extra: str = "") -> str:
    return ScriptHost().execute(script, raw_input, auth_token, extra)
