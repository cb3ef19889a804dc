"""
Snapshot store -- one JSON state per date, with count / age retention.

A snapshot captures everything tracked on its date: tasks, custom field
values, counters and timers.  Saving a date that already has a snapshot
replaces it.  Retention is applied after every save and settings update:
snapshots older than ``max_days`` go first, then the oldest beyond
``max_count``.
"""
from __future__ import annotations

import json
from datetime import date, timedelta
from typing import Any, Callable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Connection, Engine

from tracklens.core.config import get_settings
from tracklens.core.logging import get_logger
from tracklens.db.connection import get_engine
from tracklens.db.schema import (
    counter_values,
    counters,
    daily_custom_fields,
    daily_tasks,
    ensure_schema,
    snapshot_settings,
    snapshots,
    timer_values,
    timers,
)
from tracklens.services.base import RetentionSettings

logger = get_logger(__name__)

_SETTINGS_ROW_ID = 1


def capture_state(conn: Connection, day: date) -> dict[str, Any]:
    """Build the snapshot document for ``day``."""
    tasks = conn.execute(
        select(daily_tasks)
        .where(daily_tasks.c.date == day)
        .order_by(daily_tasks.c.order_index, daily_tasks.c.id)
    ).all()
    fields = conn.execute(
        select(daily_custom_fields.c.key, daily_custom_fields.c.value)
        .where(daily_custom_fields.c.date == day)
        .order_by(daily_custom_fields.c.key)
    ).all()
    counter_rows = conn.execute(
        select(counters.c.name, counter_values.c.value)
        .select_from(counters.join(counter_values, counter_values.c.counter_id == counters.c.id))
        .where(counter_values.c.date == day)
        .order_by(counters.c.name)
    ).all()
    timer_rows = conn.execute(
        select(timers.c.name, timer_values.c.seconds)
        .select_from(timers.join(timer_values, timer_values.c.timer_id == timers.c.id))
        .where(timer_values.c.date == day)
        .order_by(timers.c.name)
    ).all()
    return {
        "date": day.isoformat(),
        "tasks": [
            {
                "text": t.text,
                "done": bool(t.done),
                "createdAt": t.created_at.isoformat() if t.created_at else None,
                "completedAt": t.completed_at.isoformat() if t.completed_at else None,
            }
            for t in tasks
        ],
        "customFields": {r.key: r.value for r in fields},
        "counters": {r.name: r.value for r in counter_rows},
        "timers": {r.name: r.seconds for r in timer_rows},
    }


class SqlSnapshotStore:
    """Snapshot persistence over SQLAlchemy Core.

    ``today`` is injectable so retention can be exercised deterministically.
    """

    def __init__(self, engine: Engine | None = None, today: Callable[[], date] = date.today):
        self._engine = engine or get_engine()
        self._today = today
        ensure_schema(self._engine)

    def available_dates(self) -> list[date]:
        """Snapshot dates, oldest first."""
        with self._engine.connect() as conn:
            return list(conn.execute(select(snapshots.c.date).order_by(snapshots.c.date)).scalars())

    def get_snapshot(self, day: date) -> dict[str, Any] | None:
        with self._engine.connect() as conn:
            raw = conn.execute(
                select(snapshots.c.state_json).where(snapshots.c.date == day)
            ).scalar()
        return json.loads(raw) if raw is not None else None

    def save_snapshot(self, day: date | None = None) -> date:
        day = day or self._today()
        with self._engine.begin() as conn:
            state = capture_state(conn, day)
            conn.execute(delete(snapshots).where(snapshots.c.date == day))
            conn.execute(insert(snapshots).values(date=day, state_json=json.dumps(state)))
            self._prune(conn, self._read_settings(conn))
        logger.info("Snapshot saved for %s (%d task(s))", day, len(state["tasks"]))
        return day

    def delete_snapshot(self, day: date) -> list[date]:
        """Delete one snapshot and return the remaining dates."""
        with self._engine.begin() as conn:
            deleted = conn.execute(delete(snapshots).where(snapshots.c.date == day)).rowcount
        if not deleted:
            raise LookupError(f"No snapshot for {day}")
        logger.info("Snapshot deleted for %s", day)
        return self.available_dates()

    # ── Retention ───────────────────────────────────────

    def retention_settings(self) -> RetentionSettings:
        with self._engine.connect() as conn:
            return self._read_settings(conn)

    def update_retention_settings(self, settings: RetentionSettings) -> RetentionSettings:
        with self._engine.begin() as conn:
            values = {"max_days": settings.max_days, "max_count": settings.max_count}
            exists = conn.execute(
                select(snapshot_settings.c.id).where(snapshot_settings.c.id == _SETTINGS_ROW_ID)
            ).first()
            if exists:
                conn.execute(
                    update(snapshot_settings)
                    .where(snapshot_settings.c.id == _SETTINGS_ROW_ID)
                    .values(**values)
                )
            else:
                conn.execute(insert(snapshot_settings).values(id=_SETTINGS_ROW_ID, **values))
            pruned = self._prune(conn, settings)
        logger.info(
            "Retention updated: max_days=%d max_count=%d (pruned %d)",
            settings.max_days, settings.max_count, pruned,
        )
        return settings

    @staticmethod
    def _read_settings(conn: Connection) -> RetentionSettings:
        row = conn.execute(
            select(snapshot_settings).where(snapshot_settings.c.id == _SETTINGS_ROW_ID)
        ).first()
        if row is None:
            defaults = get_settings()
            return RetentionSettings(
                max_count=defaults.snapshot_max_count, max_days=defaults.snapshot_max_days
            )
        return RetentionSettings(max_count=row.max_count, max_days=row.max_days)

    def _prune(self, conn: Connection, settings: RetentionSettings) -> int:
        cutoff = self._today() - timedelta(days=settings.max_days)
        removed = conn.execute(delete(snapshots).where(snapshots.c.date < cutoff)).rowcount

        keep = select(snapshots.c.date).order_by(snapshots.c.date.desc()).limit(settings.max_count)
        kept = set(conn.execute(keep).scalars())
        if kept:
            removed += conn.execute(delete(snapshots).where(snapshots.c.date.not_in(kept))).rowcount
        if removed:
            logger.info("Pruned %d snapshot(s) older than %s or beyond %d", removed, cutoff, settings.max_count)
        return removed
