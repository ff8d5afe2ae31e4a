"""Filesystem NDJSON event sink with locked appends.

Events are appended as one JSON line per event to
``<session_dir>/logs/events.ndjson``.  Writes use
``json.dumps(sort_keys=True)`` for deterministic output.

Appends hold an exclusive ``fcntl.flock`` and reads a shared one.  On
platforms without ``fcntl`` (Windows), locking is skipped.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator

from invoicegrid.logging.events import GridEvent

try:
    import fcntl
except ImportError:
    fcntl = None  # type: ignore[assignment]

# Default tail-read size (2 MB)
_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024

_MAX_READ_LIMIT = 2000


@contextmanager
def _locked(f: IO[bytes], exclusive: bool) -> Iterator[IO[bytes]]:
    if fcntl is None:
        yield f
        return
    fcntl.flock(f.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield f
    finally:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class EventSink:
    """Append-only NDJSON log for one editing session.

    The ``logs/`` directory is created on the first write; reading a
    session that never logged leaves the filesystem untouched.
    """

    def __init__(self, session_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = session_dir / "logs"
        self._fsync = fsync
        self._tail_bytes = tail_bytes if tail_bytes is not None else _DEFAULT_TAIL_BYTES

    @property
    def path(self) -> Path:
        return self.logs_dir / "events.ndjson"

    def write(self, event: GridEvent) -> None:
        """Append *event* to the session log."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "ab") as f, _locked(f, exclusive=True):
            f.write(line.encode("utf-8"))
            f.flush()
            if self._fsync:
                os.fsync(f.fileno())

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Read events most-recent-first, optionally filtered.

        Only the last ``tail_bytes`` of the file are read, so very old
        events drop out of view on large logs.
        """
        events = [
            e for e in reversed(self._read_events())
            if (not level or e.get("level") == level)
            and (not event_type or e.get("event_type") == event_type)
        ]
        return events[:min(limit, _MAX_READ_LIMIT)]

    def _read_events(self) -> list[dict[str, Any]]:
        """Parse the log tail, skipping blank and corrupt lines."""
        if not self.path.exists():
            return []
        events: list[dict[str, Any]] = []
        for line in self._read_tail().splitlines():
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events

    def _read_tail(self) -> str:
        with open(self.path, "rb") as f, _locked(f, exclusive=False):
            size = os.fstat(f.fileno()).st_size
            if size <= self._tail_bytes:
                return f.read().decode("utf-8", errors="replace")
            f.seek(size - self._tail_bytes)
            data = f.read()
        # first line of a partial read is likely cut
        cut = data.find(b"\n")
        if cut >= 0:
            data = data[cut + 1:]
        return data.decode("utf-8", errors="replace")
