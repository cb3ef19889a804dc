"""
Query audit log -- one row per orchestrator run, accepted or not.

The table is created automatically on first use.
"""
from __future__ import annotations

import json
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from tracklens.core.logging import get_logger
from tracklens.db.connection import get_engine
from tracklens.db.schema import ensure_schema, query_logs
from tracklens.pipeline.params import QueryParams

logger = get_logger(__name__)


class QueryLog:
    def __init__(self, engine: Engine | None = None):
        self._engine = engine or get_engine()
        ensure_schema(self._engine)

    def record(
        self,
        params: QueryParams,
        *,
        outcome: str,
        bucket_count: int = 0,
        reason: str | None = None,
        latency_ms: int = 0,
    ) -> None:
        """Insert one row into the query log table."""
        row = {
            "record_kind": params.record_kind.value,
            "selection": json.dumps(list(params.selection)) if params.selection else None,
            "start_date": params.start_date,
            "end_date": params.end_date,
            "grouping": params.grouping.value,
            "bucket_count": bucket_count,
            "outcome": outcome,
            "reason": reason,
            "latency_ms": latency_ms,
        }
        with self._engine.begin() as conn:
            conn.execute(insert(query_logs).values(**row))
        logger.debug("Query logged: kind=%s outcome=%s", row["record_kind"], outcome)

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent log rows first."""
        stmt = select(query_logs).order_by(query_logs.c.id.desc()).limit(limit)
        with self._engine.connect() as conn:
            rows = [dict(r._mapping) for r in conn.execute(stmt)]
        for r in rows:
            r["selection"] = json.loads(r["selection"]) if r["selection"] else []
        return rows
