"""
Table definitions for the local tracker database.

  daily_tasks              -- one row per task, dated
  custom_field_templates   -- declared custom fields and their type
  daily_custom_fields      -- one value per (date, field key), stored as text
  counters / counter_values  -- named counters and their daily totals
  timers / timer_values      -- named timers and their daily seconds
  snapshots                -- one JSON state per date
  snapshot_settings        -- single-row retention settings
  query_logs               -- audit row per orchestrator run
"""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Engine

from tracklens.core.logging import get_logger

logger = get_logger(__name__)

metadata = MetaData()

daily_tasks = Table(
    "daily_tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("date", Date, nullable=False, index=True),
    Column("text", Text, nullable=False),
    Column("done", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=True),
    Column("completed_at", DateTime, nullable=True),
    Column("order_index", Integer, nullable=False, default=0),
)

custom_field_templates = Table(
    "custom_field_templates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(200), nullable=False, unique=True),
    Column("field_type", String(20), nullable=False, default="text"),
    Column("order_index", Integer, nullable=False, default=0),
)

daily_custom_fields = Table(
    "daily_custom_fields",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("date", Date, nullable=False, index=True),
    Column("key", String(200), nullable=False),
    Column("value", Text, nullable=True),
    UniqueConstraint("date", "key"),
)

counters = Table(
    "counters",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False, unique=True),
)

counter_values = Table(
    "counter_values",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("counter_id", Integer, ForeignKey("counters.id", ondelete="CASCADE"), nullable=False),
    Column("date", Date, nullable=False, index=True),
    Column("value", Integer, nullable=False, default=0),
    UniqueConstraint("counter_id", "date"),
)

timers = Table(
    "timers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False, unique=True),
)

timer_values = Table(
    "timer_values",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("timer_id", Integer, ForeignKey("timers.id", ondelete="CASCADE"), nullable=False),
    Column("date", Date, nullable=False, index=True),
    Column("seconds", Integer, nullable=False, default=0),
    UniqueConstraint("timer_id", "date"),
)

snapshots = Table(
    "snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("date", Date, nullable=False, unique=True),
    Column("state_json", Text, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

snapshot_settings = Table(
    "snapshot_settings",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("max_days", Integer, nullable=False),
    Column("max_count", Integer, nullable=False),
)

query_logs = Table(
    "query_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("record_kind", String(20), nullable=False),
    Column("selection", Text, nullable=True),  # JSON array
    Column("start_date", Date, nullable=True),
    Column("end_date", Date, nullable=True),
    Column("grouping", String(10), nullable=False),
    Column("bucket_count", Integer, nullable=False, default=0),
    Column("outcome", String(20), nullable=False),
    Column("reason", Text, nullable=True),
    Column("latency_ms", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)


def ensure_schema(engine: Engine) -> None:
    """Create any missing tables.  Safe to call repeatedly."""
    metadata.create_all(engine, checkfirst=True)
    logger.debug("Schema ensured on %s", engine.url.render_as_string(hide_password=True))
