"""/exports -- file exports of the last query, and snapshot management."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from tracklens.api.deps import get_export_dispatcher
from tracklens.core.errors import ExportError
from tracklens.core.logging import get_logger
from tracklens.pipeline.export_dispatcher import ExportDispatcher
from tracklens.services.base import RetentionSettings, ZipFileType

logger = get_logger(__name__)
router = APIRouter()

_XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ZipRequest(BaseModel):
    dates: list[date] = Field(default_factory=list)
    file_type: str = Field("markdown", description="markdown | pdf | csv | both | all")


class DatesResponse(BaseModel):
    dates: list[date]


def _http_error(exc: ExportError) -> HTTPException:
    return HTTPException(status_code=502 if exc.is_upstream else 400, detail=str(exc))


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/csv")
def csv_endpoint(dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    """CSV of the last successful query."""
    try:
        content = dispatcher.export_csv()
    except ExportError as exc:
        raise _http_error(exc)
    return _attachment(content, "text/csv", "query_export.csv")


@router.post("/excel")
def excel_endpoint(dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        content = dispatcher.export_excel()
    except ExportError as exc:
        raise _http_error(exc)
    return _attachment(content, _XLSX, "query_export.xlsx")


@router.post("/zip")
def zip_endpoint(req: ZipRequest, dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        content = dispatcher.export_zip(req.dates, req.file_type)
    except ExportError as exc:
        raise _http_error(exc)
    return _attachment(content, "application/zip", f"snapshots_{len(req.dates)}_files.zip")


@router.get("/snapshots", response_model=DatesResponse)
def list_snapshots_endpoint(dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        return DatesResponse(dates=dispatcher.available_dates())
    except ExportError as exc:
        raise _http_error(exc)


@router.post("/snapshots")
def save_snapshot_endpoint(dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        saved = dispatcher.save_snapshot()
    except ExportError as exc:
        raise _http_error(exc)
    return {"success": True, "date": saved.isoformat()}


@router.delete("/snapshots/{day}", response_model=DatesResponse)
def delete_snapshot_endpoint(day: date, dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        return DatesResponse(dates=dispatcher.delete_snapshot(day))
    except ExportError as exc:
        raise _http_error(exc)


@router.get("/retention")
def get_retention_endpoint(dispatcher: ExportDispatcher = Depends(get_export_dispatcher)):
    try:
        settings = dispatcher.retention_settings()
    except ExportError as exc:
        raise _http_error(exc)
    return settings.model_dump(by_alias=True)


@router.put("/retention")
def put_retention_endpoint(
    req: RetentionSettings, dispatcher: ExportDispatcher = Depends(get_export_dispatcher)
):
    try:
        settings = dispatcher.update_retention_settings(req)
    except ExportError as exc:
        raise _http_error(exc)
    return {"success": True, "settings": settings.model_dump(by_alias=True)}
