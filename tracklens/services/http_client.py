"""
Tracker server client -- implements every collaborator contract over HTTP.

All calls share one ``httpx.Client`` carrying the bearer token.  Failures
are re-raised in pipeline terms:

  query side   (queries, templates, populated trackers) -> UpstreamQueryError
  export side  (exports, snapshots, retention)          -> ExportError
"""
from __future__ import annotations

from datetime import date
from typing import Any

import httpx

from tracklens.core.config import get_settings
from tracklens.core.errors import ExportError, TrackLensError, UpstreamQueryError
from tracklens.core.logging import get_logger
from tracklens.pipeline.params import FieldType, QueryParams, RecordKind
from tracklens.pipeline.records import MULTI_PAYLOAD_KEYS, align_buckets
from tracklens.services.base import FieldTemplate, RetentionSettings, ZipFileType

logger = get_logger(__name__)


class TrackerHttpClient:
    """Talks to the tracker server's ``/api`` endpoints.

    Parameters
    ----------
    base_url : str, optional
        Server root; defaults to ``Settings.tracker_api_url``.
    token : str, optional
        Bearer token; defaults to ``Settings.tracker_api_token``.
    transport : httpx.BaseTransport, optional
        Injected transport (e.g. ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        settings = get_settings()
        self._token = settings.tracker_api_token if token is None else token
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.Client(
            base_url=(base_url or settings.tracker_api_url).rstrip("/"),
            headers=headers,
            timeout=settings.http_timeout_seconds if timeout is None else timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "TrackerHttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ── Transport ───────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        error_cls: type[TrackLensError],
        **kwargs: Any,
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.warning("%s %s -> %d: %s", method, path, exc.response.status_code, detail)
            raise error_cls(f"{method} {path} returned {exc.response.status_code}: {detail}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise error_cls(f"{method} {path} failed: {exc}") from exc
        return resp

    def _json(self, method: str, path: str, error_cls: type[TrackLensError], **kwargs: Any) -> Any:
        resp = self._request(method, path, error_cls, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls(f"{method} {path} returned invalid JSON") from exc

    # ── QueryService ────────────────────────────────────

    def _query(self, kind: RecordKind, params: QueryParams) -> dict[str, Any]:
        raw = self._json(
            "POST", f"/api/queries/{kind.value}", UpstreamQueryError, json=params.to_payload()
        )
        return _align_entries(kind, raw)

    def query_tasks(self, params: QueryParams) -> dict[str, Any]:
        return self._query(RecordKind.TASKS, params)

    def query_fields(self, params: QueryParams) -> dict[str, Any]:
        return self._query(RecordKind.FIELDS, params)

    def query_counters(self, params: QueryParams) -> dict[str, Any]:
        return self._query(RecordKind.COUNTERS, params)

    def query_timers(self, params: QueryParams) -> dict[str, Any]:
        return self._query(RecordKind.TIMERS, params)

    # ── FieldTemplateRegistry ───────────────────────────

    def get_custom_field_templates(self) -> list[FieldTemplate]:
        data = self._json("GET", "/api/custom-field-templates", UpstreamQueryError)
        return [FieldTemplate.model_validate(t) for t in data.get("templates", [])]

    def get_populated_fields(self, start_date: date, end_date: date) -> list[dict[str, str]]:
        data = self._json(
            "POST",
            "/api/queries/populated-fields",
            UpstreamQueryError,
            json={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        return [
            {"key": f["key"], "fieldType": f.get("fieldType") or FieldType.TEXT.value}
            for f in data.get("fields", [])
            if isinstance(f, dict) and f.get("key")
        ]

    def _populated(self, what: str, start_date: date, end_date: date) -> list[str]:
        data = self._json(
            "POST",
            f"/api/queries/populated-{what}",
            UpstreamQueryError,
            json={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        return [item["name"] if isinstance(item, dict) else str(item) for item in data.get(what, [])]

    def get_populated_counters(self, start_date: date, end_date: date) -> list[str]:
        return self._populated("counters", start_date, end_date)

    def get_populated_timers(self, start_date: date, end_date: date) -> list[str]:
        return self._populated("timers", start_date, end_date)

    # ── ExportService ───────────────────────────────────

    def _export_body(self, kind: RecordKind, params: QueryParams) -> dict[str, Any]:
        return {"type": kind.value, "queryParams": params.to_payload()}

    def export_csv(self, record_kind: RecordKind, params: QueryParams) -> bytes:
        resp = self._request(
            "POST", "/api/exports/csv", ExportError, json=self._export_body(record_kind, params)
        )
        return resp.content

    def export_excel(self, record_kind: RecordKind, params: QueryParams) -> bytes:
        """Excel export; tracker servers without an Excel route answer 404."""
        try:
            resp = self._request(
                "POST", "/api/exports/excel", ExportError, json=self._export_body(record_kind, params)
            )
        except ExportError as exc:
            cause = exc.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code == 404:
                raise ExportError("Excel export is not supported by this tracker server") from None
            raise
        return resp.content

    def export_zip(self, dates: list[date], file_type: ZipFileType) -> bytes:
        # The zip endpoint is opened as a browser download, so it reads the
        # token from the body instead of the Authorization header.
        body = {
            "dates": [d.isoformat() for d in dates],
            "fileType": ZipFileType(file_type).value,
            "token": self._token,
        }
        resp = self._request("POST", "/api/exports/download-zip", ExportError, json=body)
        return resp.content

    # ── SnapshotStore ───────────────────────────────────

    def available_dates(self) -> list[date]:
        data = self._json("GET", "/api/exports/available-dates", ExportError)
        return sorted(date.fromisoformat(d) for d in data.get("dates", []))

    def get_snapshot(self, day: date) -> dict[str, Any]:
        data = self._json("GET", f"/api/exports/snapshot/{day.isoformat()}", ExportError)
        return data.get("snapshot", {})

    def save_snapshot(self) -> date:
        data = self._json("POST", "/api/exports/save-snapshot", ExportError)
        return date.fromisoformat(data["date"])

    def delete_snapshot(self, day: date) -> list[date]:
        data = self._json("DELETE", f"/api/exports/snapshot/{day.isoformat()}", ExportError)
        return sorted(date.fromisoformat(d) for d in data.get("dates", []))

    def retention_settings(self) -> RetentionSettings:
        data = self._json("GET", "/api/exports/retention-settings", ExportError)
        return RetentionSettings.model_validate(data)

    def update_retention_settings(self, settings: RetentionSettings) -> RetentionSettings:
        data = self._json(
            "PUT",
            "/api/exports/retention-settings",
            ExportError,
            json=settings.model_dump(by_alias=True),
        )
        return RetentionSettings.model_validate(data.get("settings", data))


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.text[:200]


def _align_entries(kind: RecordKind, raw: Any) -> Any:
    """Pad a multi-key response so every entry covers the same bucket dates.

    The tracker server only lists dates on which a key has a value.
    Payloads that are not well-formed are returned untouched for the
    orchestrator to reject.
    """
    if kind not in MULTI_PAYLOAD_KEYS or not isinstance(raw, dict):
        return raw
    list_key, _ = MULTI_PAYLOAD_KEYS[kind]
    entries = raw.get(list_key)
    if not isinstance(entries, list) or len(entries) < 2:
        return raw
    if not all(
        isinstance(e, dict)
        and isinstance(e.get("data"), list)
        and all(isinstance(b, dict) and isinstance(b.get("date", b.get("period")), str) for b in e["data"])
        for e in entries
    ):
        return raw
    aligned = align_buckets({i: e["data"] for i, e in enumerate(entries)})
    return {**raw, list_key: [{**e, "data": aligned[i]} for i, e in enumerate(entries)]}
