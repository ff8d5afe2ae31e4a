"""Shared fixtures: invoice grids and workbook builders."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

HEADER = [
    "SR No", "HS CODE", "HTS CODE", "MARKS & NOS", "PKG", "DESCRIPTION OF GOODS",
    "UNIT", "RATE IN USD", "TOTAL No. OF BOXES", "TOTAL QTY", "PRODUCT VALUE IN USD",
    "EXCHANGE RATE", "PRODUCT VALUE IN INR", "Net Weight",
]


def data_line(
    sr: Any, hs: str, description: str, rate: Any, boxes: Any, qty: Any,
    exchange_rate: Any = 80, net_weight: Any = 1.5,
) -> list[Any]:
    """One source row in the 14-column invoice layout."""
    return [
        sr, hs, f"{hs}.00", "ACME/1", "CTN", description,
        "PCS", rate, boxes, qty, "", exchange_rate, "", net_weight,
    ]


@pytest.fixture
def invoice_grid() -> list[list[Any]]:
    """Title rows, header at index 2, three data rows and a TOTAL trailer."""
    return [
        ["COMMERCIAL INVOICE"],
        ["Exporter: ACME Exports", "", "Invoice No: 42"],
        HEADER,
        data_line(1, "7318", "Steel bolts", 2, 3, 10),
        data_line(2, "1204", "Linseed oil", "1.5", "4", "20", exchange_rate="82.5"),
        data_line(3, "8471", "Steel cabinet", 100, 10, 10),
        ["TOTAL", "", "", "", "", "", "", "", 17, 40],
    ]


@pytest.fixture
def make_xlsx(tmp_path: Path):
    """Factory writing a grid to a single-sheet workbook with openpyxl."""
    openpyxl = pytest.importorskip("openpyxl")

    def _make(grid: list[list[Any]], filename: str = "invoice.xlsx") -> Path:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Invoice"
        for row in grid:
            ws.append([None if v == "" else v for v in row])
        path = tmp_path / filename
        wb.save(str(path))
        wb.close()
        return path

    return _make


@pytest.fixture(autouse=True)
def _detach_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    from invoicegrid.logging import reset_sink

    reset_sink()
    yield
    reset_sink()
