"""Row model: cells, invoice line-item rows and the static column table.

Rows and cells are immutable pydantic models.  Mutations elsewhere in the
package always build a new cell or row and swap it in whole.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, model_validator

from invoicegrid.errors import UnknownColumnError

CellValue = Union[str, int, float]


class Cell(BaseModel):
    """A single cell: raw value plus presentation/ownership flags."""

    model_config = ConfigDict(frozen=True)

    value: CellValue = ""
    is_highlighted: bool = False
    is_calculated: bool = False


class Row(BaseModel):
    """One invoice line item.  Every schema key is required."""

    model_config = ConfigDict(frozen=True)

    sr_no: Cell
    hs_code: Cell
    hts_code: Cell
    marks_nos: Cell
    description: Cell
    rate: Cell
    boxes: Cell
    qty: Cell
    product_value_usd: Cell
    exchange_rate: Cell
    product_value_inr: Cell
    net_weight: Cell
    amount: Cell
    discount: Cell
    net_amount: Cell

    def cell(self, key: str) -> Cell:
        """Return the cell at *key*, raising UnknownColumnError if not a schema key."""
        if key not in COLUMN_KEYS:
            raise UnknownColumnError(key)
        return getattr(self, key)

    def with_cell(self, key: str, cell: Cell) -> Row:
        """Return a copy of this row with *key* replaced by *cell*."""
        if key not in COLUMN_KEYS:
            raise UnknownColumnError(key)
        return self.model_copy(update={key: cell})

    def raw_values(self) -> list[CellValue]:
        """Raw cell values in schema order."""
        return [getattr(self, key).value for key in COLUMN_KEYS]

    def to_dict(self) -> dict[str, Any]:
        return {key: getattr(self, key).model_dump() for key in COLUMN_KEYS}


# ────────────────────────────────────────────────────────────────
# Column descriptors
# ────────────────────────────────────────────────────────────────


class ColumnSpec(BaseModel):
    """Static metadata for one schema column."""

    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    width: int
    editable: bool
    is_calculated: bool = False

    @model_validator(mode="after")
    def _calculated_is_read_only(self) -> ColumnSpec:
        if self.is_calculated and self.editable:
            raise ValueError(f"Calculated column {self.key!r} cannot be editable")
        return self


COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec(key="sr_no", label="Sr No", width=60, editable=False, is_calculated=True),
    ColumnSpec(key="hs_code", label="HS CODE", width=100, editable=True),
    ColumnSpec(key="hts_code", label="HTS CODE", width=100, editable=True),
    ColumnSpec(key="marks_nos", label="MARKS & NOS", width=100, editable=True),
    ColumnSpec(key="description", label="DESCRIPTION OF GOODS", width=300, editable=True),
    ColumnSpec(key="rate", label="RATE IN USD", width=100, editable=True),
    ColumnSpec(key="boxes", label="TOTAL No. OF BOXES", width=120, editable=True),
    ColumnSpec(key="qty", label="TOTAL QTY", width=100, editable=True),
    ColumnSpec(key="product_value_usd", label="PRODUCT VALUE IN USD", width=150, editable=False, is_calculated=True),
    ColumnSpec(key="exchange_rate", label="EXCHANGE RATE", width=120, editable=True),
    ColumnSpec(key="product_value_inr", label="PRODUCT VALUE IN INR", width=150, editable=False, is_calculated=True),
    ColumnSpec(key="net_weight", label="Net Weight", width=100, editable=True),
    ColumnSpec(key="amount", label="AMOUNT", width=120, editable=False, is_calculated=True),
    ColumnSpec(key="discount", label="DISCOUNT", width=120, editable=False, is_calculated=True),
    ColumnSpec(key="net_amount", label="NET AMOUNT", width=120, editable=False, is_calculated=True),
)

COLUMN_KEYS: tuple[str, ...] = tuple(c.key for c in COLUMNS)

_COLUMNS_BY_KEY: dict[str, ColumnSpec] = {c.key: c for c in COLUMNS}


def get_column(key: str) -> ColumnSpec:
    """Look up a column descriptor by key."""
    try:
        return _COLUMNS_BY_KEY[key]
    except KeyError:
        raise UnknownColumnError(key) from None


def format_value(value: Any) -> str:
    """Render a raw value as text; integral floats drop the trailing ``.0``."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def blank_row(sr_no: int = 1) -> Row:
    """Build an empty row with every calculated cell already derived.

    Input cells hold ``""``; the derived cells come out of the
    recalculation engine as zeros, so the row is consistent from creation.
    """
    from invoicegrid.recalc import recalculate

    cells: dict[str, Cell] = {}
    for col in COLUMNS:
        if col.is_calculated:
            cells[col.key] = Cell(value=0, is_calculated=True)
        else:
            cells[col.key] = Cell(value="")
    cells["sr_no"] = Cell(value=sr_no, is_calculated=True)
    return recalculate(Row(**cells))
