"""
Local export service -- CSV for a query, zip bundles for snapshots.

CSV layouts follow the tracker server:

  tasks        Date,Task,Status,Created At,Completed At,Time to Complete (min)
  single key   Date,Field Name,Value        (Counter Name / Timer Name)
  multi key    Date,<key 1>,<key 2>,...     one row per date, blank if missing

Currency values render as ``$x.xx``.  Zip bundles hold one Markdown file
(YAML front matter + sections) per snapshot and/or one combined CSV.
Excel and PDF rendering are only available from the tracker server.
"""
from __future__ import annotations

import io
from datetime import date
from typing import Any
from zipfile import ZIP_DEFLATED, ZipFile

import pandas as pd
import yaml
from sqlalchemy.engine import Engine

from tracklens.core.errors import ExportError
from tracklens.core.logging import get_logger
from tracklens.db.bucketing import Observation, minutes_to_complete
from tracklens.db.connection import get_engine
from tracklens.db.repository import SqlQueryService
from tracklens.db.snapshots import SqlSnapshotStore
from tracklens.pipeline.params import FieldType, QueryParams, RecordKind
from tracklens.services.base import ZipFileType

logger = get_logger(__name__)

TASK_COLUMNS = ["Date", "Task", "Status", "Created At", "Completed At", "Time to Complete (min)"]

_NAME_HEADERS: dict[RecordKind, str] = {
    RecordKind.FIELDS: "Field Name",
    RecordKind.COUNTERS: "Counter Name",
    RecordKind.TIMERS: "Timer Name",
}

_ZIP_PARTS: dict[ZipFileType, set[str]] = {
    ZipFileType.MARKDOWN: {"markdown"},
    ZipFileType.PDF: {"pdf"},
    ZipFileType.CSV: {"csv"},
    ZipFileType.BOTH: {"markdown", "pdf"},
    ZipFileType.ALL: {"markdown", "pdf", "csv"},
}


def format_value(value: Any, field_type: FieldType | None) -> Any:
    if value is None:
        return ""
    if field_type is FieldType.CURRENCY:
        return f"${float(value):.2f}"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def format_duration(seconds: int) -> str:
    """``3725`` -> ``1h 2m 5s``."""
    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def _to_csv(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


class LocalExportService:
    def __init__(
        self,
        engine: Engine | None = None,
        query_service: SqlQueryService | None = None,
        snapshot_store: SqlSnapshotStore | None = None,
    ):
        engine = engine or get_engine()
        self._queries = query_service or SqlQueryService(engine)
        self._snapshots = snapshot_store or SqlSnapshotStore(engine)

    # ── Query CSV ───────────────────────────────────────

    def export_csv(self, record_kind: RecordKind, params: QueryParams) -> bytes:
        kind = RecordKind(record_kind)
        if kind is RecordKind.TASKS:
            df = self._tasks_frame(params)
        else:
            series = self._observations(kind, params)
            if len(series) == 1:
                df = self._single_frame(kind, *series[0])
            else:
                df = self._matrix_frame(series)
        logger.info("CSV export kind=%s rows=%d", kind.value, len(df))
        return _to_csv(df)

    def export_excel(self, record_kind: RecordKind, params: QueryParams) -> bytes:
        raise ExportError("Excel export requires the tracker server (QUERY_BACKEND=http)")

    def _tasks_frame(self, params: QueryParams) -> pd.DataFrame:
        rows = [
            {
                "Date": t.day.isoformat(),
                "Task": t.text,
                "Status": "Completed" if t.done else "Incomplete",
                "Created At": t.created_at.isoformat(sep=" ", timespec="seconds") if t.created_at else "",
                "Completed At": t.completed_at.isoformat(sep=" ", timespec="seconds") if t.completed_at else "",
                "Time to Complete (min)": format_value(minutes_to_complete(t), None),
            }
            for t in self._queries.task_rows(params)
        ]
        return pd.DataFrame(rows, columns=TASK_COLUMNS, dtype=object)

    def _observations(
        self, kind: RecordKind, params: QueryParams
    ) -> list[tuple[str, FieldType | None, list[Observation]]]:
        if params.start_date is None or params.end_date is None:
            raise ExportError("Start date and end date required")
        out = []
        for key in params.selection:
            if kind is RecordKind.FIELDS:
                ftype = self._queries.field_type_of(key)
                obs = self._queries.field_observations(key, params.start_date, params.end_date, ftype)
            else:
                ftype = None
                obs = self._queries.tracker_observations(
                    kind.value, key, params.start_date, params.end_date
                )
            out.append((key, ftype, [o for o in obs if o.value is not None]))
        return out

    @staticmethod
    def _single_frame(
        kind: RecordKind, key: str, ftype: FieldType | None, obs: list[Observation]
    ) -> pd.DataFrame:
        name_header = _NAME_HEADERS[kind]
        rows = [
            {"Date": o.day.isoformat(), name_header: key, "Value": format_value(o.value, ftype)}
            for o in obs
        ]
        return pd.DataFrame(rows, columns=["Date", name_header, "Value"], dtype=object)

    @staticmethod
    def _matrix_frame(series: list[tuple[str, FieldType | None, list[Observation]]]) -> pd.DataFrame:
        by_date: dict[str, dict[str, Any]] = {}
        for key, ftype, obs in series:
            for o in obs:
                by_date.setdefault(o.day.isoformat(), {})[key] = format_value(o.value, ftype)
        columns = ["Date"] + [key for key, _, _ in series]
        rows = [{"Date": d, **values} for d, values in sorted(by_date.items())]
        return pd.DataFrame(rows, columns=columns, dtype=object).fillna("")

    # ── Snapshot zip ────────────────────────────────────

    def export_zip(self, dates: list[date], file_type: ZipFileType) -> bytes:
        parts = _ZIP_PARTS[ZipFileType(file_type)]
        if "pdf" in parts:
            raise ExportError("PDF export requires the tracker server (QUERY_BACKEND=http)")

        found = []
        for day in sorted(set(dates)):
            state = self._snapshots.get_snapshot(day)
            if state is None:
                logger.warning("Snapshot not found for %s -- skipped", day)
                continue
            found.append(state)
        if not found:
            raise ExportError("None of the selected dates has a snapshot")

        buf = io.BytesIO()
        with ZipFile(buf, mode="w", compression=ZIP_DEFLATED) as zf:
            if "csv" in parts:
                zf.writestr("snapshots_combined.csv", _to_csv(snapshots_frame(found)))
            if "markdown" in parts:
                for state in found:
                    zf.writestr(f"snapshot_{state['date']}.md", snapshot_markdown(state))
        logger.info("Zip export: %d snapshot(s), parts=%s", len(found), sorted(parts))
        return buf.getvalue()


# ── Snapshot renderers ──────────────────────────────────


def snapshot_markdown(state: dict[str, Any]) -> str:
    """Markdown document with YAML front matter for one snapshot."""
    tasks = state.get("tasks", [])
    front = {
        "date": state["date"],
        "custom_fields": state.get("customFields", {}),
        "counters": state.get("counters", {}),
        "timers": {
            name: {"seconds": secs, "formatted": format_duration(secs)}
            for name, secs in state.get("timers", {}).items()
        },
        "tasks_total": len(tasks),
        "tasks_completed": sum(1 for t in tasks if t.get("done")),
    }
    lines = ["---", yaml.safe_dump(front, sort_keys=False, allow_unicode=True).rstrip(), "---", ""]
    lines.append(f"# Daily Journal - {state['date']}")
    lines.append("")
    if tasks:
        lines.append("## Tasks")
        lines.extend(f"- [{'x' if t.get('done') else ' '}] {t.get('text', '')}" for t in tasks)
        lines.append("")
    if state.get("customFields"):
        lines.append("## Daily Fields")
        lines.extend(f"- **{k}**: {v if v not in (None, '') else '-'}" for k, v in state["customFields"].items())
        lines.append("")
    return "\n".join(lines)


def snapshots_frame(states: list[dict[str, Any]]) -> pd.DataFrame:
    """One summary row per snapshot for the combined CSV."""
    rows = []
    for state in states:
        tasks = state.get("tasks", [])
        rows.append({
            "Date": state["date"],
            "Tasks": len(tasks),
            "Completed Tasks": sum(1 for t in tasks if t.get("done")),
            "Custom Fields": "; ".join(f"{k}: {v}" for k, v in state.get("customFields", {}).items()),
            "Counters": "; ".join(f"{k}: {v}" for k, v in state.get("counters", {}).items()),
            "Timers": "; ".join(
                f"{k}: {format_duration(v)}" for k, v in state.get("timers", {}).items()
            ),
        })
    return pd.DataFrame(
        rows, columns=["Date", "Tasks", "Completed Tasks", "Custom Fields", "Counters", "Timers"]
    )
