"""
SQL-backed query service and field template registry.

Reads the local tracker database and answers with the same payload shapes
as the tracker server:

  single key  -> {fieldKey, fieldType, data, summary}
  multi key   -> {fieldKeys, fields: [{fieldKey, fieldType, data, summary}, ...]}

(``counterName``/``counters`` and ``timerName``/``timers`` alike).  Multi-key
series are aligned to the same bucket dates before they are returned.
"""
from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import Table, and_, select
from sqlalchemy.engine import Engine

from tracklens.core.logging import get_logger
from tracklens.db.bucketing import (
    TRACKER,
    Observation,
    TaskRow,
    aggregate,
    parse_field_value,
    summarize_values,
    task_buckets,
    task_stats,
)
from tracklens.db.connection import get_engine
from tracklens.db.schema import (
    counter_values,
    counters,
    custom_field_templates,
    daily_custom_fields,
    daily_tasks,
    ensure_schema,
    timer_values,
    timers,
)
from tracklens.pipeline.params import CompletionStatus, FieldType, QueryParams
from tracklens.pipeline.records import align_buckets, resolve_field_type
from tracklens.services.base import FieldTemplate

logger = get_logger(__name__)


def _require_range(params: QueryParams) -> tuple[date, date]:
    if params.start_date is None or params.end_date is None:
        raise ValueError("Start date and end date required")
    return params.start_date, params.end_date


class SqlQueryService:
    """Query service + template registry over SQLAlchemy Core."""

    def __init__(self, engine: Engine | None = None):
        self._engine = engine or get_engine()
        ensure_schema(self._engine)

    # ── Tasks ───────────────────────────────────────────

    def query_tasks(self, params: QueryParams) -> dict[str, Any]:
        start, end = _require_range(params)
        tasks = self.task_rows(params)
        logger.info("Tasks query %s..%s -> %d task(s)", start, end, len(tasks))
        return {
            "data": task_buckets(tasks, params.grouping, start),
            "summary": task_stats(tasks),
        }

    def task_rows(self, params: QueryParams) -> list[TaskRow]:
        """Raw task rows in scope of ``params`` (used by CSV export)."""
        start, end = _require_range(params)
        stmt = (
            select(daily_tasks)
            .where(daily_tasks.c.date >= start, daily_tasks.c.date <= end)
            .order_by(daily_tasks.c.date, daily_tasks.c.order_index, daily_tasks.c.id)
        )
        if params.completion_status is CompletionStatus.COMPLETED:
            stmt = stmt.where(daily_tasks.c.done.is_(True))
        elif params.completion_status is CompletionStatus.INCOMPLETE:
            stmt = stmt.where(daily_tasks.c.done.is_(False))
        with self._engine.connect() as conn:
            return [
                TaskRow(
                    day=r.date, text=r.text, done=bool(r.done),
                    created_at=r.created_at, completed_at=r.completed_at,
                )
                for r in conn.execute(stmt)
            ]

    # ── Custom fields ───────────────────────────────────

    def field_type_of(self, key: str) -> FieldType:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(custom_field_templates.c.field_type).where(custom_field_templates.c.key == key)
            ).first()
        if row is None:
            raise LookupError(f"Field template not found: '{key}'")
        return resolve_field_type(row.field_type)

    def field_observations(self, key: str, start: date, end: date, field_type: FieldType) -> list[Observation]:
        stmt = (
            select(daily_custom_fields.c.date, daily_custom_fields.c.value)
            .where(
                daily_custom_fields.c.key == key,
                daily_custom_fields.c.date >= start,
                daily_custom_fields.c.date <= end,
            )
            .order_by(daily_custom_fields.c.date)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [Observation(day=r.date, value=parse_field_value(r.value, field_type)) for r in rows]

    def query_fields(self, params: QueryParams) -> dict[str, Any]:
        start, end = _require_range(params)
        series = {}
        for key in params.selection:
            field_type = self.field_type_of(key)
            obs = self.field_observations(key, start, end, field_type)
            series[key] = {
                "fieldKey": key,
                "fieldType": field_type.value,
                "data": aggregate(obs, field_type, params.grouping, start),
                "summary": summarize_values([o.value for o in obs], field_type),
            }
        logger.info("Fields query %s..%s keys=%s", start, end, list(params.selection))
        return self._shape(series, "fieldKeys", "fields")

    # ── Counters & timers ───────────────────────────────

    def tracker_observations(
        self, kind: str, name: str, start: date, end: date
    ) -> list[Observation]:
        names, values, value_col, fk = self._tracker_tables(kind)
        with self._engine.connect() as conn:
            tracker_id = conn.execute(select(names.c.id).where(names.c.name == name)).scalar()
            if tracker_id is None:
                raise LookupError(f"Unknown {kind[:-1]} '{name}'")
            rows = conn.execute(
                select(values.c.date, values.c[value_col])
                .where(values.c[fk] == tracker_id, values.c.date >= start, values.c.date <= end)
                .order_by(values.c.date)
            ).all()
        return [Observation(day=r[0], value=r[1]) for r in rows]

    def _query_trackers(self, kind: str, params: QueryParams) -> dict[str, Any]:
        start, end = _require_range(params)
        entry_key = "counterName" if kind == "counters" else "timerName"
        series = {}
        for name in params.selection:
            obs = self.tracker_observations(kind, name, start, end)
            series[name] = {
                entry_key: name,
                "data": aggregate(obs, TRACKER, params.grouping, start),
                "summary": summarize_values([o.value for o in obs], TRACKER),
            }
        logger.info("%s query %s..%s names=%s", kind.title(), start, end, list(params.selection))
        return self._shape(series, f"{entry_key}s", kind)

    def query_counters(self, params: QueryParams) -> dict[str, Any]:
        return self._query_trackers("counters", params)

    def query_timers(self, params: QueryParams) -> dict[str, Any]:
        return self._query_trackers("timers", params)

    @staticmethod
    def _tracker_tables(kind: str) -> tuple[Table, Table, str, str]:
        if kind == "counters":
            return counters, counter_values, "value", "counter_id"
        if kind == "timers":
            return timers, timer_values, "seconds", "timer_id"
        raise ValueError(f"Unknown tracker kind '{kind}'")

    @staticmethod
    def _shape(
        series: dict[str, dict[str, Any]], keys_key: str, list_key: str
    ) -> dict[str, Any]:
        if len(series) == 1:
            return next(iter(series.values()))
        aligned = align_buckets({k: s["data"] for k, s in series.items()})
        entries = [{**s, "data": aligned[k]} for k, s in series.items()]
        return {keys_key: list(series), list_key: entries}

    # ── FieldTemplateRegistry ───────────────────────────

    def get_custom_field_templates(self) -> list[FieldTemplate]:
        stmt = select(custom_field_templates).order_by(
            custom_field_templates.c.order_index, custom_field_templates.c.id
        )
        with self._engine.connect() as conn:
            return [
                FieldTemplate(id=r.id, key=r.key, field_type=resolve_field_type(r.field_type))
                for r in conn.execute(stmt)
            ]

    def get_populated_fields(self, start_date: date, end_date: date) -> list[dict[str, str]]:
        stmt = (
            select(daily_custom_fields.c.key, custom_field_templates.c.field_type)
            .distinct()
            .select_from(
                daily_custom_fields.outerjoin(
                    custom_field_templates,
                    custom_field_templates.c.key == daily_custom_fields.c.key,
                )
            )
            .where(
                daily_custom_fields.c.date >= start_date,
                daily_custom_fields.c.date <= end_date,
                daily_custom_fields.c.value.is_not(None),
                daily_custom_fields.c.value != "",
            )
            .order_by(daily_custom_fields.c.key)
        )
        with self._engine.connect() as conn:
            return [
                {"key": r.key, "fieldType": r.field_type or FieldType.TEXT.value}
                for r in conn.execute(stmt)
            ]

    def _populated(self, kind: str, start_date: date, end_date: date) -> list[str]:
        names, values, value_col, fk = self._tracker_tables(kind)
        stmt = (
            select(names.c.name)
            .distinct()
            .select_from(names.join(values, values.c[fk] == names.c.id))
            .where(and_(
                values.c.date >= start_date,
                values.c.date <= end_date,
                values.c[value_col] > 0,
            ))
            .order_by(names.c.name)
        )
        with self._engine.connect() as conn:
            return list(conn.execute(stmt).scalars())

    def get_populated_counters(self, start_date: date, end_date: date) -> list[str]:
        return self._populated("counters", start_date, end_date)

    def get_populated_timers(self, start_date: date, end_date: date) -> list[str]:
        return self._populated("timers", start_date, end_date)
