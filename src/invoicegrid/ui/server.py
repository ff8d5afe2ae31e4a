"""FastAPI server for the invoice editor.

Routes are thin wrappers over :class:`EditorService`.  Each app instance
owns its own service; there is no process-wide store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, NoReturn, Union

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from invoicegrid.errors import (
    EditBlockedError,
    ImportFailedError,
    InvalidRowIndexError,
    InvoiceGridError,
    UnknownColumnError,
)
from invoicegrid.ui.service import EditorService

_EXPORT_MEDIA_TYPES = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


def create_app(session_dir: Path, service: EditorService | None = None) -> FastAPI:
    """Create the FastAPI application for an editing session.

    Args:
        session_dir: Directory holding ``invoicegrid.yaml`` and ``logs/``.
        service: Pre-built service (tests); created from *session_dir* if None.

    Returns:
        Configured FastAPI instance.
    """
    from invoicegrid import __version__

    svc = service or EditorService(session_dir=session_dir)

    app = FastAPI(title="invoicegrid", version=__version__)
    app.state.service = svc
    app.include_router(_api_router(svc))
    return app


def _raise_http(exc: InvoiceGridError) -> NoReturn:
    """Map a core error to an HTTP error response."""
    if isinstance(exc, InvalidRowIndexError):
        raise HTTPException(404, str(exc))
    if isinstance(exc, EditBlockedError):
        raise HTTPException(409, str(exc))
    if isinstance(exc, ImportFailedError):
        raise HTTPException(422, str(exc))
    if isinstance(exc, UnknownColumnError):
        raise HTTPException(400, str(exc))
    raise HTTPException(400, str(exc))


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CellUpdateRequest(BaseModel):
    row: int
    column: str
    value: Union[str, int, float] = ""


class FilterRequest(BaseModel):
    column: str
    pattern: str = ""


class SortRequest(BaseModel):
    column: str


class ActiveCellRequest(BaseModel):
    row: int | None = None
    column: str | None = None


class LoadingRequest(BaseModel):
    loading: bool


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


def _api_router(svc: EditorService):
    from fastapi import APIRouter

    router = APIRouter(prefix="/api")

    # -- Reads --

    @router.get("/state")
    async def get_state() -> dict[str, Any]:
        return svc.get_state()

    @router.get("/columns")
    async def get_columns() -> list[dict[str, Any]]:
        return svc.get_columns()

    @router.get("/view")
    async def get_view() -> dict[str, Any]:
        return svc.get_view()

    # -- Rows --

    @router.post("/rows")
    async def append_row() -> dict[str, Any]:
        return svc.append_row()

    @router.delete("/rows/{index}")
    async def remove_row(index: int) -> dict[str, Any]:
        try:
            return svc.remove_row(index)
        except InvoiceGridError as exc:
            _raise_http(exc)

    @router.post("/cells")
    async def update_cell(req: CellUpdateRequest) -> dict[str, Any]:
        try:
            return svc.update_cell(req.row, req.column, req.value)
        except InvoiceGridError as exc:
            _raise_http(exc)

    # -- Filter / sort --

    @router.post("/filters")
    async def set_filter(req: FilterRequest) -> dict[str, Any]:
        try:
            return svc.set_filter(req.column, req.pattern)
        except InvoiceGridError as exc:
            _raise_http(exc)

    @router.delete("/filters")
    async def clear_filters() -> dict[str, Any]:
        return svc.clear_filters()

    @router.post("/sort")
    async def toggle_sort(req: SortRequest) -> dict[str, Any]:
        try:
            return svc.toggle_sort(req.column)
        except InvoiceGridError as exc:
            _raise_http(exc)

    # -- Presentation state --

    @router.post("/active-cell")
    async def set_active_cell(req: ActiveCellRequest) -> dict[str, Any]:
        return svc.set_active_cell(req.row, req.column)

    @router.post("/loading")
    async def set_loading(req: LoadingRequest) -> dict[str, Any]:
        return svc.set_loading(req.loading)

    # -- Import / export --

    @router.post("/import")
    async def import_file(file: UploadFile = File(...)) -> dict[str, Any]:
        data = await file.read()
        try:
            return svc.import_upload(data, file.filename or "upload.xlsx")
        except InvoiceGridError as exc:
            _raise_http(exc)

    @router.get("/export")
    async def export_view(
        format: str = Query("xlsx", pattern="^(xlsx|csv)$"),
        totals: bool = Query(False),
    ) -> Response:
        data = svc.export(format, include_totals=totals)
        return Response(
            content=data,
            media_type=_EXPORT_MEDIA_TYPES[format],
            headers={"Content-Disposition": f'attachment; filename="invoice.{format}"'},
        )

    # -- Events --

    @router.get("/events")
    async def get_events(
        level: str | None = Query(None),
        event_type: str | None = Query(None, alias="type"),
        limit: int = Query(200, ge=1, le=2000),
    ) -> list[dict[str, Any]]:
        return svc.tail_events(level=level, event_type=event_type, limit=limit)

    return router
