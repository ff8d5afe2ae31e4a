"""Export the current view back to a spreadsheet grid / file."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import polars as pl

from invoicegrid.query import column_totals
from invoicegrid.rows import COLUMNS, CellValue, ColumnSpec, Row, format_value

TOTAL_LABEL = "TOTAL"


def export_grid(
    rows: Sequence[Row],
    columns: Sequence[ColumnSpec] = COLUMNS,
    *,
    include_totals: bool = False,
) -> list[list[CellValue]]:
    """Build a header row of labels followed by one row of raw values per row.

    With *include_totals*, a trailing ``TOTAL`` row carries the column
    totals; calculated columns are left blank there.
    """
    grid: list[list[CellValue]] = [[c.label for c in columns]]
    for row in rows:
        grid.append([row.cell(c.key).value for c in columns])

    if include_totals:
        totals = column_totals(rows, columns)
        trailer: list[CellValue] = []
        for idx, col in enumerate(columns):
            if idx == 0:
                trailer.append(TOTAL_LABEL)
            else:
                trailer.append(totals.get(col.key, ""))
        grid.append(trailer)
    return grid


def write_xlsx(
    grid: Sequence[Sequence[CellValue]],
    path: Path,
    *,
    sheet_title: str = "Invoice",
    columns: Sequence[ColumnSpec] = COLUMNS,
) -> Path:
    """Write *grid* to a single-sheet workbook at *path*.

    *columns* must be the specs the grid was built from; their widths size
    the sheet columns.
    """
    import openpyxl
    from openpyxl.styles import Font
    from openpyxl.utils import get_column_letter

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title
    for r in grid:
        ws.append(list(r))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for idx, col in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(col.width // 7, 8)
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(str(path))
    wb.close()
    return path


def write_csv(grid: Sequence[Sequence[CellValue]], path: Path) -> Path:
    """Write *grid* to CSV at *path*; the first grid row is the header."""
    if not grid:
        raise ValueError("Cannot write an empty grid")
    header = [str(h) for h in grid[0]]
    data = {
        name: [format_value(r[i]) if i < len(r) else "" for r in grid[1:]]
        for i, name in enumerate(header)
    }
    df = pl.DataFrame(data, schema={name: pl.String for name in header})
    path.parent.mkdir(parents=True, exist_ok=True)
    df.write_csv(path)
    return path


def write_export(
    rows: Sequence[Row],
    path: Path,
    columns: Sequence[ColumnSpec] = COLUMNS,
    *,
    include_totals: bool = False,
    sheet_title: str = "Invoice",
) -> Path:
    """Export *rows* to *path*, choosing the format from its suffix."""
    grid = export_grid(rows, columns, include_totals=include_totals)
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return write_xlsx(grid, path, sheet_title=sheet_title, columns=columns)
    if suffix == ".csv":
        return write_csv(grid, path)
    raise ValueError(f"Unsupported export format: {path.suffix!r}. Use .xlsx or .csv")
