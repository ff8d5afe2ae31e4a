"""Collection store: the ordered rows plus transient editor state.

``InvoiceStore`` is an ordinary owned object.  Every mutation replaces
whole rows, so a row is never observed half-updated.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict

from invoicegrid.errors import EditBlockedError, InvalidRowIndexError
from invoicegrid.query import SortDirective, column_totals, toggle_sort_direction, view_indices
from invoicegrid.recalc import RECALC_TRIGGERS, recalculate
from invoicegrid.rows import COLUMNS, Cell, CellValue, Row, blank_row, get_column


class ActiveCell(BaseModel):
    """Pointer to the cell the presentation layer is editing."""

    model_config = ConfigDict(frozen=True)

    row: int
    column: str


class InvoiceStore:
    """Ordered invoice rows with filter, sort, loading and active-cell state.

    Parameters
    ----------
    rows : Iterable[Row] | None
        Initial rows, taken as-is (callers guarantee they are consistent).
    """

    def __init__(self, rows: Iterable[Row] | None = None) -> None:
        self._rows: list[Row] = list(rows or [])
        self._filters: dict[str, str] = {}
        self._sort: SortDirective | None = None
        self.active_cell: ActiveCell | None = None
        self.is_loading = False

    @classmethod
    def with_blank_rows(cls, count: int) -> InvoiceStore:
        """Create a store seeded with *count* blank rows numbered 1..count."""
        return cls(blank_row(sr_no=i + 1) for i in range(count))

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[Row]:
        return list(self._rows)

    @property
    def filters(self) -> dict[str, str]:
        return dict(self._filters)

    @property
    def sort(self) -> SortDirective | None:
        return self._sort

    def __len__(self) -> int:
        return len(self._rows)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._rows):
            raise InvalidRowIndexError(index, len(self._rows))

    def view_indices(self) -> list[int]:
        """Storage positions of the filtered, sorted view."""
        return view_indices(self._rows, self._filters, self._sort)

    def view(self) -> list[Row]:
        return [self._rows[i] for i in self.view_indices()]

    def totals(self) -> dict[str, float]:
        """Totals of the non-calculated columns over the filtered view."""
        return column_totals(self.view())

    # ------------------------------------------------------------------
    # Row mutations
    # ------------------------------------------------------------------

    def replace_all(self, rows: Iterable[Row]) -> None:
        """Replace the whole collection.  No recalculation is performed."""
        self._rows = list(rows)

    def append_row(self) -> Row:
        """Append a blank, already-calculated row numbered ``len + 1``."""
        row = blank_row(sr_no=len(self._rows) + 1)
        self._rows.append(row)
        return row

    def remove_row(self, index: int) -> Row:
        """Remove the row at *index* and renumber the rest 1..n.

        Raises:
            InvalidRowIndexError: *index* is outside ``[0, len)``.
        """
        self._check_index(index)
        removed = self._rows[index]
        remaining = self._rows[:index] + self._rows[index + 1:]
        self._rows = [
            row.with_cell("sr_no", row.sr_no.model_copy(update={"value": pos + 1}))
            for pos, row in enumerate(remaining)
        ]
        return removed

    def update_cell(self, row_index: int, column: str, value: CellValue) -> Row:
        """Write a raw user value into one cell and return the new row.

        Edits to rate, boxes, qty or exchange rate recalculate the row.

        Raises:
            UnknownColumnError: *column* is not a schema key.
            EditBlockedError: *column* is calculated or read-only.
            InvalidRowIndexError: *row_index* is out of range.
        """
        spec = get_column(column)
        if spec.is_calculated or not spec.editable:
            raise EditBlockedError(column)
        self._check_index(row_index)

        row = self._rows[row_index]
        old = row.cell(column)
        new_row = row.with_cell(
            column,
            Cell(value=value, is_highlighted=old.is_highlighted, is_calculated=False),
        )
        if column in RECALC_TRIGGERS:
            new_row = recalculate(new_row)
        self._rows[row_index] = new_row
        return new_row

    def highlight_cell(self, row_index: int, column: str, highlighted: bool = True) -> Row:
        """Set the highlight flag on one cell."""
        get_column(column)
        self._check_index(row_index)
        row = self._rows[row_index]
        cell = row.cell(column).model_copy(update={"is_highlighted": highlighted})
        self._rows[row_index] = row.with_cell(column, cell)
        return self._rows[row_index]

    # ------------------------------------------------------------------
    # Query state
    # ------------------------------------------------------------------

    def set_filter(self, column: str, pattern: str) -> None:
        """Set (or with an empty pattern, clear) the filter on *column*."""
        get_column(column)
        if pattern:
            self._filters[column] = pattern
        else:
            self._filters.pop(column, None)

    def clear_filters(self) -> None:
        self._filters = {}

    def toggle_sort(self, column: str) -> SortDirective:
        """Cycle the sort on *column*: asc -> desc -> asc."""
        get_column(column)
        self._sort = toggle_sort_direction(self._sort, column)
        return self._sort

    def clear_sort(self) -> None:
        self._sort = None

    # ------------------------------------------------------------------
    # Advisory presentation state
    # ------------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self.is_loading = bool(loading)

    def set_active_cell(self, cell: ActiveCell | None) -> None:
        self.active_cell = cell

    def snapshot(self) -> dict[str, Any]:
        """Plain-dict state for the presentation layer."""
        indices = self.view_indices()
        return {
            "rows": [row.to_dict() for row in self._rows],
            "view": [
                {"index": i, "row": self._rows[i].to_dict()} for i in indices
            ],
            "totals": column_totals(self._rows[i] for i in indices),
            "filters": dict(self._filters),
            "sort": self._sort.model_dump() if self._sort else None,
            "is_loading": self.is_loading,
            "active_cell": self.active_cell.model_dump() if self.active_cell else None,
            "columns": [c.model_dump() for c in COLUMNS],
        }
