"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    session_started = "session_started"

    # Import lifecycle
    import_started = "import_started"
    import_completed = "import_completed"
    import_failed = "import_failed"

    # Editing
    row_added = "row_added"
    row_removed = "row_removed"
    cell_updated = "cell_updated"
    edit_blocked = "edit_blocked"

    # Export
    export_completed = "export_completed"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

HEADER_NOT_FOUND = "header_not_found"
EMPTY_SOURCE = "empty_source"
UNSUPPORTED_FILE = "unsupported_file"
UNREADABLE_FILE = "unreadable_file"
EDIT_BLOCKED = "edit_blocked"
INVALID_ROW_INDEX = "invalid_row_index"


def import_error_code(exc: BaseException) -> str | None:
    """Error code for an import failure, or None for other exceptions."""
    from invoicegrid.errors import (
        EmptySourceError,
        HeaderNotFoundError,
        UnreadableFileError,
        UnsupportedFileError,
    )

    codes = {
        HeaderNotFoundError: HEADER_NOT_FOUND,
        EmptySourceError: EMPTY_SOURCE,
        UnsupportedFileError: UNSUPPORTED_FILE,
        UnreadableFileError: UNREADABLE_FILE,
    }
    for exc_type, code in codes.items():
        if isinstance(exc, exc_type):
            return code
    return None


# ---------------------------------------------------------------------------
# Context truncation
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 256


def truncate_context(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *context* with long string values truncated.

    Cell values are user text and can be arbitrarily long; the log keeps
    the first 256 characters.
    """
    out: dict[str, Any] = {}
    for k, v in context.items():
        if isinstance(v, dict):
            out[k] = truncate_context(v)
        elif isinstance(v, str) and len(v) > _MAX_VALUE_LEN:
            out[k] = v[:_MAX_VALUE_LEN] + "...[truncated]"
        else:
            out[k] = v
    return out


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.import_completed.value: {"filename", "rows"},
    EventType.import_failed.value: {"filename"},
    EventType.row_removed.value: {"row_index"},
    EventType.cell_updated.value: {"row_index", "column"},
    EventType.edit_blocked.value: {"column"},
    EventType.export_completed.value: {"format", "rows"},
}


def _validate_attribution(event: GridEvent) -> GridEvent:
    """Check required context keys; downgrade to warning if missing."""
    raw_type = event.event_type.value if isinstance(event.event_type, EventType) else event.event_type
    required = _EVENT_REQUIRED_KEYS.get(raw_type, set())
    missing = required - set(event.context.keys())
    if not missing:
        return event
    ctx = dict(event.context)
    ctx["_missing_attribution"] = sorted(missing)
    return event.model_copy(update={"level": EventLevel.warning, "context": ctx})


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GridEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_session_dir`` is called.
_sink: Any = None  # EventSink | None


def open_sink(session_dir: Any) -> Any:
    """Build an EventSink for *session_dir* from its logging options.

    Reads ``logging_fsync`` and ``logging_tail_bytes`` from
    ``invoicegrid.yaml``; an unreadable config falls back to defaults.
    """
    from pathlib import Path

    from invoicegrid.config import load_config
    from invoicegrid.logging.sink import EventSink

    fsync = False
    tail_bytes = None
    try:
        cfg = load_config(Path(session_dir))
        fsync = bool(cfg.get("logging_fsync", False))
        tb = cfg.get("logging_tail_bytes")
        if tb is not None:
            tail_bytes = int(tb)
    except (OSError, ValueError, TypeError):
        _stderr_warning("could not read logging options; using defaults")

    return EventSink(Path(session_dir), fsync=fsync, tail_bytes=tail_bytes)


def set_session_dir(session_dir: Any) -> None:
    """Configure the module-level event sink for a session directory.

    Call this early in a CLI command.  If it is never called, ``emit()``
    without an explicit sink silently discards events.  Long-lived
    objects such as ``EditorService`` hold their own sink instead.
    """
    global _sink
    _sink = open_sink(session_dir)


def reset_sink() -> None:
    """Detach the module-level sink (events are discarded afterwards)."""
    global _sink
    _sink = None


def get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float | None = None
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if _last_stderr_ts is not None and now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    try:
        print(f"[invoicegrid] {msg}", file=sys.stderr)
    except Exception:
        pass


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: GridEvent, *, sink: Any = None) -> None:
    """Write an event to *sink*, or to the module-level sink when None.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.
    """
    try:
        if sink is None:
            sink = get_sink()
        if sink is None:
            return
        event = event.model_copy(update={"context": truncate_context(event.context)})
        event = _validate_attribution(event)
        sink.write(event)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    sink: Any = None,
) -> None:
    """Convenience: emit an info-level event."""
    emit(
        GridEvent(
            level=EventLevel.info,
            event_type=event_type,
            message=message,
            context=context or {},
        ),
        sink=sink,
    )


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    sink: Any = None,
) -> None:
    """Convenience: emit a warning-level event."""
    emit(
        GridEvent(
            level=EventLevel.warning,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        sink=sink,
    )


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    sink: Any = None,
) -> None:
    """Convenience: emit an error-level event."""
    emit(
        GridEvent(
            level=EventLevel.error,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        sink=sink,
    )
