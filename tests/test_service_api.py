"""Tests for the editor service and its HTTP API."""

from __future__ import annotations

import io
from pathlib import Path

import openpyxl
import pytest

from invoicegrid.errors import EditBlockedError, HeaderNotFoundError, UnreadableFileError
from invoicegrid.ui.service import EditorService


@pytest.fixture
def session_dir(tmp_path: Path) -> Path:
    return tmp_path / "session"


@pytest.fixture
def service(session_dir: Path) -> EditorService:
    return EditorService(session_dir=session_dir)


@pytest.fixture
def client(session_dir: Path):
    from fastapi.testclient import TestClient

    from invoicegrid.ui.server import create_app

    app = create_app(session_dir)
    return TestClient(app)


@pytest.fixture
def invoice_xlsx(make_xlsx, invoice_grid) -> Path:
    return make_xlsx(invoice_grid)


def _upload(client, path: Path, filename: str | None = None):
    return client.post(
        "/api/import",
        files={"file": (filename or path.name, path.read_bytes(), "application/octet-stream")},
    )


# ────────────────────────────────────────────────────────────────
# Service
# ────────────────────────────────────────────────────────────────


class TestEditorService:
    def test_starts_with_blank_rows(self, service) -> None:
        state = service.get_state()
        assert len(state["rows"]) == 10
        assert state["is_loading"] is False

    def test_initial_rows_from_config(self, session_dir) -> None:
        session_dir.mkdir(parents=True)
        (session_dir / "invoicegrid.yaml").write_text("initial_blank_rows: 2\n")
        assert len(EditorService(session_dir=session_dir).store) == 2

    def test_requires_session_dir(self) -> None:
        with pytest.raises(ValueError):
            EditorService()

    def test_session_started_logged(self, service) -> None:
        events = service.tail_events(event_type="session_started")
        assert len(events) == 1

    def test_import_replaces_rows(self, service, invoice_xlsx) -> None:
        result = service.import_upload(invoice_xlsx.read_bytes(), invoice_xlsx.name)
        assert result == {"ok": True, "rows": 3, "filename": "invoice.xlsx"}
        assert len(service.store) == 3
        assert service.store.is_loading is False
        types = [e["event_type"] for e in service.tail_events()]
        assert types[:2] == ["import_completed", "import_started"]

    def test_failed_import_keeps_rows(self, service, make_xlsx) -> None:
        path = make_xlsx([["no header"], [1, 2, 3]], filename="bad.xlsx")
        before = service.store.rows
        with pytest.raises(HeaderNotFoundError):
            service.import_upload(path.read_bytes(), path.name)
        assert service.store.rows == before
        assert service.store.is_loading is False
        (evt,) = service.tail_events(event_type="import_failed")
        assert evt["level"] == "error"
        assert evt["error_code"] == "header_not_found"

    def test_upload_size_limit(self, session_dir, invoice_xlsx) -> None:
        session_dir.mkdir(parents=True)
        (session_dir / "invoicegrid.yaml").write_text("max_upload_bytes: 10\n")
        svc = EditorService(session_dir=session_dir)
        with pytest.raises(UnreadableFileError):
            svc.import_upload(invoice_xlsx.read_bytes(), invoice_xlsx.name)
        assert len(svc.store) == 10

    def test_sessions_keep_separate_logs(self, tmp_path) -> None:
        first = EditorService(session_dir=tmp_path / "a")
        second = EditorService(session_dir=tmp_path / "b")
        first.append_row()
        second.update_cell(0, "rate", 3)

        first_types = [e["event_type"] for e in first.tail_events()]
        second_types = [e["event_type"] for e in second.tail_events()]
        assert first_types == ["row_added", "session_started"]
        assert second_types == ["cell_updated", "session_started"]

    def test_service_does_not_touch_module_sink(self, service) -> None:
        from invoicegrid.logging import get_sink

        assert get_sink() is None

    def test_edit_blocked_logged(self, service) -> None:
        with pytest.raises(EditBlockedError):
            service.update_cell(0, "amount", 5)
        (evt,) = service.tail_events(event_type="edit_blocked")
        assert evt["error_code"] == "edit_blocked"
        assert evt["context"]["column"] == "amount"

    def test_view_carries_storage_index(self, service, invoice_xlsx) -> None:
        service.import_upload(invoice_xlsx.read_bytes(), invoice_xlsx.name)
        service.set_filter("description", "cabinet")
        view = service.get_view()
        assert [r["index"] for r in view["rows"]] == [2]
        assert view["total_rows"] == 3
        assert view["totals"]["qty"] == 10

    def test_export_view(self, service, invoice_xlsx) -> None:
        service.import_upload(invoice_xlsx.read_bytes(), invoice_xlsx.name)
        service.set_filter("description", "steel")
        data = service.export("xlsx", include_totals=True)
        wb = openpyxl.load_workbook(io.BytesIO(data))
        ws = wb.active
        assert ws.title == "Invoice"
        assert ws.max_row == 4
        assert ws.cell(row=4, column=1).value == "TOTAL"
        wb.close()

    def test_export_bad_format(self, service) -> None:
        with pytest.raises(ValueError):
            service.export("pdf")


# ────────────────────────────────────────────────────────────────
# HTTP API
# ────────────────────────────────────────────────────────────────


class TestReadEndpoints:
    def test_state(self, client) -> None:
        resp = client.get("/api/state")
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["rows"]) == 10
        assert body["sort"] is None

    def test_columns(self, client) -> None:
        cols = client.get("/api/columns").json()
        assert cols[0]["key"] == "sr_no"
        assert len(cols) == 15
        calc = {c["key"] for c in cols if c["is_calculated"]}
        assert "net_amount" in calc
        assert "rate" not in calc


class TestRowEndpoints:
    def test_append_and_remove(self, client) -> None:
        resp = client.post("/api/rows")
        assert resp.json()["n_rows"] == 11
        assert resp.json()["row"]["sr_no"]["value"] == 11
        resp = client.delete("/api/rows/0")
        assert resp.json()["n_rows"] == 10
        rows = client.get("/api/state").json()["rows"]
        assert [r["sr_no"]["value"] for r in rows] == list(range(1, 11))

    def test_remove_out_of_range(self, client) -> None:
        resp = client.delete("/api/rows/99")
        assert resp.status_code == 404

    def test_update_cell_recalculates(self, client) -> None:
        client.post("/api/cells", json={"row": 0, "column": "rate", "value": 2})
        client.post("/api/cells", json={"row": 0, "column": "boxes", "value": 3})
        resp = client.post("/api/cells", json={"row": 0, "column": "qty", "value": "10"})
        assert resp.status_code == 200
        row = resp.json()["row"]
        assert row["amount"]["value"] == 60
        assert row["net_amount"]["value"] == pytest.approx(51)

    def test_update_calculated_conflict(self, client) -> None:
        resp = client.post("/api/cells", json={"row": 0, "column": "discount", "value": 1})
        assert resp.status_code == 409

    def test_update_unknown_column(self, client) -> None:
        resp = client.post("/api/cells", json={"row": 0, "column": "colour", "value": "red"})
        assert resp.status_code == 400

    def test_update_bad_row(self, client) -> None:
        resp = client.post("/api/cells", json={"row": 50, "column": "rate", "value": 1})
        assert resp.status_code == 404


class TestQueryEndpoints:
    def test_filter_and_sort(self, client, invoice_xlsx) -> None:
        _upload(client, invoice_xlsx)
        client.post("/api/filters", json={"column": "description", "pattern": "steel"})
        resp = client.post("/api/sort", json={"column": "rate"})
        assert resp.json()["sort"] == {"column": "rate", "direction": "asc"}
        resp = client.post("/api/sort", json={"column": "rate"})
        assert resp.json()["sort"]["direction"] == "desc"
        view = client.get("/api/view").json()
        assert [r["row"]["description"]["value"] for r in view["rows"]] == ["Steel cabinet", "Steel bolts"]

    def test_clear_filters(self, client) -> None:
        client.post("/api/filters", json={"column": "description", "pattern": "x"})
        assert client.get("/api/view").json()["rows"] == []
        client.delete("/api/filters")
        assert len(client.get("/api/view").json()["rows"]) == 10

    def test_filter_unknown_column(self, client) -> None:
        resp = client.post("/api/filters", json={"column": "colour", "pattern": "x"})
        assert resp.status_code == 400

    def test_active_cell_and_loading(self, client) -> None:
        resp = client.post("/api/active-cell", json={"row": 2, "column": "qty"})
        assert resp.json()["active_cell"] == {"row": 2, "column": "qty"}
        resp = client.post("/api/active-cell", json={})
        assert resp.json()["active_cell"] is None
        resp = client.post("/api/loading", json={"loading": True})
        assert resp.json()["is_loading"] is True


class TestImportExportEndpoints:
    def test_import(self, client, invoice_xlsx) -> None:
        resp = _upload(client, invoice_xlsx)
        assert resp.status_code == 200
        assert resp.json()["rows"] == 3
        rows = client.get("/api/state").json()["rows"]
        assert rows[2]["net_amount"]["value"] == 9950

    def test_import_csv(self, client) -> None:
        body = "SR NO,HS\n1,7318,,,,Bolts,,2,3,10,,80,,1\n".encode()
        resp = client.post("/api/import", files={"file": ("lines.csv", body, "text/csv")})
        assert resp.status_code == 200
        assert resp.json()["rows"] == 1

    def test_import_unsupported(self, client, invoice_xlsx) -> None:
        resp = _upload(client, invoice_xlsx, filename="invoice.pdf")
        assert resp.status_code == 422

    def test_import_without_header(self, client, make_xlsx) -> None:
        path = make_xlsx([["Invoice"], ["x", "y"]], filename="nohdr.xlsx")
        resp = _upload(client, path)
        assert resp.status_code == 422
        assert "SR NO" in resp.json()["detail"]
        assert len(client.get("/api/state").json()["rows"]) == 10

    def test_export_csv(self, client, invoice_xlsx) -> None:
        _upload(client, invoice_xlsx)
        resp = client.get("/api/export", params={"format": "csv", "totals": "true"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="invoice.csv"' in resp.headers["content-disposition"]
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("Sr No,HS CODE")
        assert lines[-1].startswith("TOTAL")
        assert len(lines) == 5

    def test_export_xlsx(self, client) -> None:
        resp = client.get("/api/export")
        assert resp.status_code == 200
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        assert wb.active.max_row == 11
        wb.close()

    def test_export_bad_format(self, client) -> None:
        resp = client.get("/api/export", params={"format": "pdf"})
        assert resp.status_code == 422


class TestEventsEndpoint:
    def test_events_newest_first(self, client) -> None:
        client.post("/api/rows")
        client.post("/api/cells", json={"row": 0, "column": "amount", "value": 1})
        events = client.get("/api/events").json()
        assert events[0]["event_type"] == "edit_blocked"
        assert events[1]["event_type"] == "row_added"
        assert events[-1]["event_type"] == "session_started"

    def test_events_filtered(self, client) -> None:
        client.post("/api/cells", json={"row": 0, "column": "amount", "value": 1})
        events = client.get("/api/events", params={"level": "warning"}).json()
        assert [e["event_type"] for e in events] == ["edit_blocked"]
        events = client.get("/api/events", params={"type": "row_added"}).json()
        assert events == []
