"""Structured event logging for invoicegrid.

Provides a unified event schema, a filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from invoicegrid.logging.events import (
    EventLevel,
    EventType,
    GridEvent,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    get_sink,
    open_sink,
    reset_sink,
    set_session_dir,
    truncate_context,
)
from invoicegrid.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "GridEvent",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "get_sink",
    "open_sink",
    "reset_sink",
    "set_session_dir",
    "truncate_context",
]
