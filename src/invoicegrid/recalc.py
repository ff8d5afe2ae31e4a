"""Recalculation engine: the only place monetary formulas live.

``recalculate`` is a pure, total function of a row's input cells.  It
never raises on malformed input; unparseable numbers count as zero.
"""

from __future__ import annotations

import math
import re
from typing import Any

from invoicegrid.rows import Cell, Row

DISCOUNT_RATE = 0.15
DISCOUNT_CAP = 50.0

# Columns whose edits require the row to be recalculated.
RECALC_TRIGGERS = frozenset({"rate", "boxes", "qty", "exchange_rate"})

DERIVED_COLUMNS = (
    "product_value_usd",
    "amount",
    "discount",
    "net_amount",
    "product_value_inr",
)

# Leading float prefix: "12.5kg" -> 12.5, "  -3e2 " -> -300
_FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def is_numeric(value: Any) -> bool:
    """True for int/float values (bool excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_number(value: Any) -> float | None:
    """Parse *value* as a number, returning None when nothing parses.

    Numeric values are returned unchanged.  Text is parsed from its leading
    numeric prefix, ignoring surrounding whitespace.
    """
    if is_numeric(value):
        return value
    if value is None or isinstance(value, bool):
        return None
    m = _FLOAT_PREFIX_RE.match(str(value))
    if not m:
        return None
    return float(m.group(1))


def to_number(value: Any) -> float:
    """Coerce a raw cell value to a number, defaulting to ``0``."""
    parsed = parse_number(value)
    if parsed is None or math.isnan(parsed):
        return 0
    return parsed


def _derived(cell: Cell, value: float) -> Cell:
    return Cell(value=value, is_highlighted=cell.is_highlighted, is_calculated=True)


def recalculate(row: Row) -> Row:
    """Return a copy of *row* with every derived cell recomputed.

    Always computed from the current inputs (rate, boxes, qty and exchange
    rate), never from the previous derived values.
    """
    rate = to_number(row.rate.value)
    boxes = to_number(row.boxes.value)
    qty = to_number(row.qty.value)
    exchange_rate = to_number(row.exchange_rate.value)

    product_value_usd = rate * qty
    amount = rate * boxes * qty
    discount = min(amount * DISCOUNT_RATE, DISCOUNT_CAP)
    net_amount = amount - discount
    product_value_inr = product_value_usd * exchange_rate

    return row.model_copy(update={
        "product_value_usd": _derived(row.product_value_usd, product_value_usd),
        "amount": _derived(row.amount, amount),
        "discount": _derived(row.discount, discount),
        "net_amount": _derived(row.net_amount, net_amount),
        "product_value_inr": _derived(row.product_value_inr, product_value_inr),
    })
