"""View-only filter/sort transforms and column totals.

Nothing here mutates the collection: every function returns a new list.
Filtering runs before sorting, and sorting carries each row's storage
position so ties keep their input order.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Iterable, Literal, Sequence

import polars as pl
from pydantic import BaseModel, ConfigDict

from invoicegrid.recalc import is_numeric, parse_number, to_number
from invoicegrid.rows import COLUMNS, CellValue, ColumnSpec, Row, format_value, get_column


# ────────────────────────────────────────────────────────────────
# Sort directive
# ────────────────────────────────────────────────────────────────


class SortDirective(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    direction: Literal["asc", "desc"] = "asc"


def toggle_sort_direction(current: SortDirective | None, column: str) -> SortDirective:
    """Next directive after a sort click on *column*.

    Same column sorted ascending flips to descending; every other prior
    state (no sort, another column, or descending) resets to ascending.
    """
    if current is not None and current.column == column and current.direction == "asc":
        return SortDirective(column=column, direction="desc")
    return SortDirective(column=column, direction="asc")


# ────────────────────────────────────────────────────────────────
# Transforms
# ────────────────────────────────────────────────────────────────

_ROW_IDX_COL = "__view_row_idx__"


def _text_frame(rows: Sequence[Row], keys: Iterable[str]) -> pl.DataFrame:
    """String frame of the rendered cells at *keys*, plus a row index."""
    data = {key: [format_value(row.cell(key).value) for row in rows] for key in keys}
    schema = {key: pl.String for key in data}
    return pl.DataFrame(data, schema=schema).with_row_index(_ROW_IDX_COL)


def _filter_indices(rows: Sequence[Row], filters: dict[str, str]) -> list[int]:
    active = {key: pattern for key, pattern in filters.items() if pattern}
    for key in active:
        get_column(key)
    if not active:
        return list(range(len(rows)))

    result = _text_frame(rows, active)
    for key, pattern in active.items():
        result = result.filter(
            pl.col(key).str.to_lowercase().str.contains(pattern.lower(), literal=True)
        )
    return result.get_column(_ROW_IDX_COL).to_list()


def _compare_values(a: CellValue, b: CellValue) -> int:
    if is_numeric(a) and is_numeric(b):
        return (a > b) - (a < b)
    sa, sb = str(a), str(b)
    return (sa > sb) - (sa < sb)


def view_indices(
    rows: Sequence[Row],
    filters: dict[str, str] | None = None,
    sort: SortDirective | None = None,
) -> list[int]:
    """Storage positions of the rows in the filtered, sorted view.

    Transform order: index -> filter -> sort.
    """
    indices = _filter_indices(rows, filters or {})
    if sort is None:
        return indices

    column = sort.column
    get_column(column)

    # Numbers and text mix in one column, so ordering goes through a
    # comparator rather than a polars sort key.
    def _cmp(i: int, j: int) -> int:
        return _compare_values(rows[i].cell(column).value, rows[j].cell(column).value)

    # list.sort is stable, and stays stable with reverse=True
    return sorted(indices, key=cmp_to_key(_cmp), reverse=sort.direction == "desc")


def filtered_view(rows: Sequence[Row], filters: dict[str, str] | None) -> list[Row]:
    """Rows whose cells contain every non-empty pattern (case-insensitive)."""
    return [rows[i] for i in view_indices(rows, filters)]


def sorted_view(rows: Sequence[Row], sort: SortDirective | None) -> list[Row]:
    """Rows ordered by *sort*; ``None`` keeps input order."""
    return [rows[i] for i in view_indices(rows, None, sort)]


# ────────────────────────────────────────────────────────────────
# Totals
# ────────────────────────────────────────────────────────────────


def column_totals(
    rows: Iterable[Row],
    columns: Sequence[ColumnSpec] = COLUMNS,
) -> dict[str, float]:
    """Sum each non-calculated column over *rows*.

    Only values that parse as numbers count.  Columns with no parseable
    value are left out of the result rather than reported as zero.
    """
    rows = list(rows)
    keys = [col.key for col in columns if not col.is_calculated]
    if not keys:
        return {}

    data: dict[str, list[float | None]] = {}
    for key in keys:
        values = [row.cell(key).value for row in rows]
        data[key] = [
            float(to_number(v)) if parse_number(v) is not None else None
            for v in values
        ]
    df = pl.DataFrame(data, schema={key: pl.Float64 for key in keys})

    sums = df.select(pl.all().sum()).row(0, named=True)
    counts = df.select(pl.all().count()).row(0, named=True)
    return {key: sums[key] for key in keys if counts[key]}
