"""Service layer between the editing engine and any presentation layer.

The FastAPI server goes through :class:`EditorService`.  It owns one
:class:`InvoiceStore` and one event sink, applies session configuration,
brackets imports with the loading flag, and records events.  Public
methods return JSON-ready dicts, except ``export`` which returns file bytes.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any

from invoicegrid import __version__
from invoicegrid.config import load_config
from invoicegrid.errors import (
    EditBlockedError,
    ImportFailedError,
    InvalidRowIndexError,
    UnreadableFileError,
)
from invoicegrid.export import export_grid, write_csv, write_xlsx
from invoicegrid.importer import normalize_grid, read_grid
from invoicegrid.logging.events import (
    EDIT_BLOCKED,
    INVALID_ROW_INDEX,
    EventType,
    emit_error,
    emit_info,
    emit_warning,
    import_error_code,
    open_sink,
)
from invoicegrid.rows import COLUMNS, CellValue
from invoicegrid.store import ActiveCell, InvoiceStore


class EditorService:
    """In-memory editing session bound to a session directory.

    Parameters
    ----------
    session_dir : Path
        Holds ``invoicegrid.yaml`` (optional) and ``logs/``.
    store : InvoiceStore | None
        Store to wrap.  Defaults to a store seeded with
        ``initial_blank_rows`` blank rows.
    """

    def __init__(self, session_dir: Path | None = None, store: InvoiceStore | None = None) -> None:
        if session_dir is None:
            raise ValueError("session_dir is required")

        self.session_dir = session_dir.resolve()
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.config = load_config(self.session_dir)

        self.sink = open_sink(self.session_dir)

        if store is None:
            store = InvoiceStore.with_blank_rows(int(self.config["initial_blank_rows"]))
        self.store = store

        emit_info(
            EventType.session_started,
            f"Editor session started ({len(self.store)} rows)",
            {"session_dir": str(self.session_dir), "version": __version__},
            sink=self.sink,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self) -> dict[str, Any]:
        """Full editor state: rows, view, totals, filters, sort, flags."""
        return self.store.snapshot()

    def get_columns(self) -> list[dict[str, Any]]:
        return [c.model_dump() for c in COLUMNS]

    def get_view(self) -> dict[str, Any]:
        """Filtered, sorted rows with their storage index, plus totals."""
        indices = self.store.view_indices()
        rows = self.store.rows
        return {
            "rows": [{"index": i, "row": rows[i].to_dict()} for i in indices],
            "totals": self.store.totals(),
            "total_rows": len(rows),
        }

    # ------------------------------------------------------------------
    # Row edits
    # ------------------------------------------------------------------

    def append_row(self) -> dict[str, Any]:
        row = self.store.append_row()
        emit_info(
            EventType.row_added,
            f"Row {len(self.store)} added",
            {"row_index": len(self.store) - 1},
            sink=self.sink,
        )
        return {"ok": True, "row": row.to_dict(), "n_rows": len(self.store)}

    def remove_row(self, index: int) -> dict[str, Any]:
        """Remove a row; raises InvalidRowIndexError when out of range."""
        try:
            self.store.remove_row(index)
        except InvalidRowIndexError as exc:
            emit_warning(
                EventType.row_removed,
                str(exc),
                {"row_index": index},
                error_code=INVALID_ROW_INDEX,
                sink=self.sink,
            )
            raise
        emit_info(
            EventType.row_removed,
            f"Row {index + 1} removed",
            {"row_index": index},
            sink=self.sink,
        )
        return {"ok": True, "n_rows": len(self.store)}

    def update_cell(self, row_index: int, column: str, value: CellValue) -> dict[str, Any]:
        """Write one cell; calculated columns raise EditBlockedError."""
        try:
            row = self.store.update_cell(row_index, column, value)
        except EditBlockedError as exc:
            emit_warning(
                EventType.edit_blocked,
                str(exc),
                {"row_index": row_index, "column": column},
                error_code=EDIT_BLOCKED,
                sink=self.sink,
            )
            raise
        emit_info(
            EventType.cell_updated,
            f"Cell {column} of row {row_index + 1} updated",
            {"row_index": row_index, "column": column, "value": value},
            sink=self.sink,
        )
        return {"ok": True, "row": row.to_dict()}

    # ------------------------------------------------------------------
    # Query state
    # ------------------------------------------------------------------

    def set_filter(self, column: str, pattern: str) -> dict[str, Any]:
        self.store.set_filter(column, pattern)
        return {"ok": True, "filters": self.store.filters}

    def clear_filters(self) -> dict[str, Any]:
        self.store.clear_filters()
        return {"ok": True, "filters": {}}

    def toggle_sort(self, column: str) -> dict[str, Any]:
        directive = self.store.toggle_sort(column)
        return {"ok": True, "sort": directive.model_dump()}

    def set_loading(self, loading: bool) -> dict[str, Any]:
        self.store.set_loading(loading)
        return {"ok": True, "is_loading": self.store.is_loading}

    def set_active_cell(self, row: int | None, column: str | None) -> dict[str, Any]:
        """Point the editor at a cell, or clear the pointer when either part is None."""
        if row is None or column is None:
            self.store.set_active_cell(None)
        else:
            self.store.set_active_cell(ActiveCell(row=row, column=column))
        active = self.store.active_cell
        return {"ok": True, "active_cell": active.model_dump() if active else None}

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def import_upload(self, file_bytes: bytes, filename: str) -> dict[str, Any]:
        """Replace the collection with the rows of an uploaded file.

        All-or-nothing: on any ImportFailedError the store keeps its
        previous rows and the error propagates to the caller.

        Args:
            file_bytes: Raw bytes of the uploaded file.
            filename: Original filename; its suffix picks the decoder.

        Returns:
            Dict with ``ok``, ``rows`` (count) and ``filename``.
        """
        max_bytes = int(self.config["max_upload_bytes"])
        self.store.set_loading(True)
        emit_info(
            EventType.import_started,
            f"Import started: {filename}",
            {"filename": filename, "bytes": len(file_bytes)},
            sink=self.sink,
        )
        try:
            if len(file_bytes) > max_bytes:
                raise UnreadableFileError(
                    filename, f"file is {len(file_bytes)} bytes, limit is {max_bytes}"
                )
            grid = read_grid(file_bytes, filename)
            rows = normalize_grid(
                grid,
                header_marker=str(self.config["header_marker"]),
                trailer_marker=str(self.config["trailer_marker"]),
            )
        except ImportFailedError as exc:
            emit_error(
                EventType.import_failed,
                str(exc),
                {"filename": filename},
                error_code=import_error_code(exc),
                sink=self.sink,
            )
            raise
        finally:
            self.store.set_loading(False)

        self.store.replace_all(rows)
        emit_info(
            EventType.import_completed,
            f"Imported {len(rows)} rows from {filename}",
            {"filename": filename, "rows": len(rows)},
            sink=self.sink,
        )
        return {"ok": True, "rows": len(rows), "filename": filename}

    def export(self, fmt: str = "xlsx", *, include_totals: bool = False) -> bytes:
        """Serialize the current view to xlsx or csv bytes."""
        if fmt not in ("xlsx", "csv"):
            raise ValueError(f"Unsupported export format: {fmt!r}")

        view = self.store.view()
        grid = export_grid(view, include_totals=include_totals)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / f"invoice.{fmt}"
            if fmt == "xlsx":
                write_xlsx(grid, path, sheet_title=str(self.config["export_sheet_title"]))
            else:
                write_csv(grid, path)
            data = path.read_bytes()

        emit_info(
            EventType.export_completed,
            f"Exported {len(view)} rows as {fmt}",
            {"format": fmt, "rows": len(view), "totals": include_totals},
            sink=self.sink,
        )
        return data

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def tail_events(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        return self.sink.read_global(level=level, event_type=event_type, limit=limit)
