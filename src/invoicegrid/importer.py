"""Spreadsheet import: decode an uploaded file and normalize it into rows.

Two stages:

- ``read_grid`` decodes sheet 1 of an ``.xlsx`` workbook (openpyxl) or a
  ``.csv`` file (polars) into a row-major grid of raw values.
- ``normalize_grid`` locates the header row by its first-cell marker,
  skips blank and trailer rows, maps fixed column positions into the row
  schema and recalculates every row.

The header row only locates the data region; column order comes from the
static ``IMPORT_LAYOUT`` table.
"""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Sequence

import polars as pl

from invoicegrid.errors import (
    EmptySourceError,
    HeaderNotFoundError,
    UnreadableFileError,
    UnsupportedFileError,
)
from invoicegrid.recalc import parse_number, recalculate, to_number
from invoicegrid.rows import COLUMNS, Cell, CellValue, Row, format_value

logger = logging.getLogger(__name__)

DEFAULT_HEADER_MARKER = "SR NO"
DEFAULT_TRAILER_MARKER = "TOTAL"

# Source column position -> schema key.  Positions 4, 6, 10 and 12 of the
# invoice layout carry nothing the row model keeps.
IMPORT_LAYOUT: dict[int, str] = {
    0: "sr_no",
    1: "hs_code",
    2: "hts_code",
    3: "marks_nos",
    5: "description",
    7: "rate",
    8: "boxes",
    9: "qty",
    11: "exchange_rate",
    13: "net_weight",
}

_NUMERIC_FIELDS = frozenset({"rate", "boxes", "qty", "exchange_rate", "net_weight"})

XLSX_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv",)


# ────────────────────────────────────────────────────────────────
# Normalization
# ────────────────────────────────────────────────────────────────


def _first_cell_text(row: Sequence[Any]) -> str:
    if not row:
        return ""
    return format_value(row[0]).strip().upper()


def _is_blank_row(row: Sequence[Any]) -> bool:
    return all(format_value(v).strip() == "" for v in row)


def find_header_row(grid: Sequence[Sequence[Any]], marker: str = DEFAULT_HEADER_MARKER) -> int:
    """Return the 0-based index of the first row whose first cell is *marker*.

    Raises:
        HeaderNotFoundError: No row starts with the marker.
    """
    wanted = marker.strip().upper()
    for idx, row in enumerate(grid):
        if _first_cell_text(row) == wanted:
            return idx
    raise HeaderNotFoundError(marker)


def _serial(raw: Any, position: int) -> int | float:
    parsed = parse_number(raw)
    if not parsed:
        return position
    if isinstance(parsed, float) and parsed.is_integer():
        return int(parsed)
    return parsed


def _row_from_source(source: Sequence[Any], position: int) -> Row:
    cells: dict[str, Cell] = {
        col.key: Cell(value=0 if col.is_calculated else "", is_calculated=col.is_calculated)
        for col in COLUMNS
    }
    for pos, key in IMPORT_LAYOUT.items():
        raw = source[pos] if pos < len(source) else ""
        if key == "sr_no":
            cells[key] = Cell(value=_serial(raw, position), is_calculated=True)
        elif key in _NUMERIC_FIELDS:
            cells[key] = Cell(value=to_number(raw))
        else:
            cells[key] = Cell(value=format_value(raw).strip())
    return recalculate(Row(**cells))


def normalize_grid(
    grid: Sequence[Sequence[Any]],
    *,
    header_marker: str = DEFAULT_HEADER_MARKER,
    trailer_marker: str = DEFAULT_TRAILER_MARKER,
) -> list[Row]:
    """Turn a decoded grid into a complete, recalculated set of rows.

    Args:
        grid: Row-major raw cell values (strings/numbers).
        header_marker: First-cell text identifying the header row.
        trailer_marker: First-cell text identifying total rows to skip.

    Returns:
        Rows ready to replace the collection wholesale.

    Raises:
        EmptySourceError: The grid has no rows.
        HeaderNotFoundError: No header row was found.
    """
    if not grid:
        raise EmptySourceError()

    header_idx = find_header_row(grid, header_marker)
    trailer = trailer_marker.strip().upper()

    rows: list[Row] = []
    skipped = 0
    for source in grid[header_idx + 1:]:
        if not source or _is_blank_row(source) or _first_cell_text(source) == trailer:
            skipped += 1
            continue
        rows.append(_row_from_source(source, len(rows) + 1))

    logger.debug(
        "normalized grid: header at %d, %d rows kept, %d skipped",
        header_idx, len(rows), skipped,
    )
    return rows


# ────────────────────────────────────────────────────────────────
# File decoding
# ────────────────────────────────────────────────────────────────


def _grid_value(value: Any) -> CellValue:
    """Convert a decoded cell into a grid value (blank/missing -> "")."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def _drop_blank_rows(rows: list[list[CellValue]]) -> list[list[CellValue]]:
    return [r for r in rows if not _is_blank_row(r)]


def _read_xlsx(data: bytes, filename: str) -> list[list[CellValue]]:
    import openpyxl
    from openpyxl.utils.exceptions import InvalidFileException

    try:
        wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise UnreadableFileError(filename, str(exc)) from exc

    try:
        if not wb.worksheets:
            return []
        ws = wb.worksheets[0]
        rows = [
            [_grid_value(v) for v in row]
            for row in ws.iter_rows(values_only=True)
        ]
    finally:
        wb.close()
    return _drop_blank_rows(rows)


def _read_csv(data: bytes, filename: str) -> list[list[CellValue]]:
    text = data.decode("utf-8-sig", errors="replace")
    if not text.strip():
        return []

    # Invoice CSVs are ragged (title rows above the header).  A synthetic
    # header as wide as the widest line fixes the frame width, so short
    # lines are null-padded whatever the first line looks like.  Quoted
    # separators only overestimate, which adds empty trailing columns.
    width = max(line.count(",") for line in text.splitlines()) + 1
    header = ",".join(f"column_{i + 1}" for i in range(width))

    try:
        df = pl.read_csv(
            io.BytesIO(f"{header}\n{text}".encode("utf-8")),
            has_header=True,
            infer_schema=False,
            truncate_ragged_lines=True,
        )
    except pl.exceptions.NoDataError:
        return []
    except pl.exceptions.PolarsError as exc:
        raise UnreadableFileError(filename, str(exc)) from exc

    rows = [[_grid_value(v) for v in row] for row in df.iter_rows()]
    return _drop_blank_rows(rows)


def read_grid(data: bytes, filename: str) -> list[list[CellValue]]:
    """Decode an uploaded file into a row-major grid.

    Only the first worksheet of a workbook is read.  Blank or missing cells
    become ``""`` and fully blank rows are dropped; row order is kept.

    Raises:
        UnsupportedFileError: The extension has no decoder.
        UnreadableFileError: The contents could not be decoded.
    """
    suffix = Path(filename).suffix.lower()
    if suffix in XLSX_SUFFIXES:
        return _read_xlsx(data, filename)
    if suffix in CSV_SUFFIXES:
        return _read_csv(data, filename)
    raise UnsupportedFileError(filename)


def import_file(
    data: bytes,
    filename: str,
    *,
    header_marker: str = DEFAULT_HEADER_MARKER,
    trailer_marker: str = DEFAULT_TRAILER_MARKER,
) -> list[Row]:
    """Decode and normalize an uploaded file in one step."""
    grid = read_grid(data, filename)
    return normalize_grid(grid, header_marker=header_marker, trailer_marker=trailer_marker)
