"""
Grouping of dated observations into buckets, for the local data source.

Pure functions; the repository feeds them rows and returns their output
as the query-service payload.  Bucket dates are the period start:

  day    -- the observation date
  week   -- the Monday of its week
  month  -- the first of its month
  year   -- January 1st
  none   -- a single bucket dated at the range start

Per-bucket records use the same camelCase keys as the tracker server.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable

from tracklens.pipeline.params import (
    CATEGORICAL_FIELD_TYPES,
    NUMERIC_FIELD_TYPES,
    FieldType,
    Grouping,
)


@dataclass(frozen=True)
class Observation:
    day: date
    value: Any


@dataclass(frozen=True)
class TaskRow:
    day: date
    text: str
    done: bool
    created_at: datetime | None = None
    completed_at: datetime | None = None


# ── Periods ─────────────────────────────────────────────


def period_start(day: date, grouping: Grouping, range_start: date | None = None) -> date:
    """Return the bucket date ``day`` falls into."""
    if grouping is Grouping.NONE:
        return range_start or day
    if grouping is Grouping.WEEK:
        return day - timedelta(days=day.weekday())
    if grouping is Grouping.MONTH:
        return day.replace(day=1)
    if grouping is Grouping.YEAR:
        return day.replace(month=1, day=1)
    return day


def group_by_period(
    items: Iterable[Any],
    grouping: Grouping,
    range_start: date | None,
    day_of: Callable[[Any], date],
) -> dict[date, list[Any]]:
    """Group items by period start, in ascending bucket order."""
    groups: dict[date, list[Any]] = {}
    for item in sorted(items, key=day_of):
        groups.setdefault(period_start(day_of(item), grouping, range_start), []).append(item)
    return groups


# ── Field value parsing ─────────────────────────────────


def parse_field_value(raw: str | None, field_type: FieldType) -> Any:
    """Convert a stored text value; ``None`` for blank or unparseable input."""
    if raw is None or not str(raw).strip():
        return None
    raw = str(raw).strip()
    if field_type in NUMERIC_FIELD_TYPES:
        try:
            return float(raw.lstrip("$").replace(",", ""))
        except ValueError:
            return None
    if field_type is FieldType.BOOLEAN:
        return raw.lower() in ("true", "1", "yes")
    return raw


# ── Per-bucket aggregation ──────────────────────────────


def _last_of_day(values: list[Any], grouping: Grouping) -> Any:
    return values[-1] if grouping is Grouping.DAY and values else None


def numeric_bucket(period: date, values: list[float], grouping: Grouping) -> dict[str, Any]:
    total = sum(values)
    return {
        "date": period.isoformat(),
        "value": _last_of_day(values, grouping),
        "min": min(values),
        "max": max(values),
        "avg": total / len(values),
        "sum": total,
        "count": len(values),
    }


def boolean_bucket(period: date, values: list[bool], grouping: Grouping) -> dict[str, Any]:
    true_count = sum(1 for v in values if v is True)
    false_count = sum(1 for v in values if v is False)
    total = len(values)
    return {
        "date": period.isoformat(),
        "value": _last_of_day(values, grouping),
        "trueCount": true_count,
        "falseCount": false_count,
        "totalCount": total,
        "truePercentage": true_count / total * 100 if total else 0.0,
        "count": total,
    }


def _categorical_stats(values: list[Any]) -> dict[str, Any]:
    counts = Counter(str(v) for v in values)
    most_common = counts.most_common(1)
    return {
        "count": len(values),
        "uniqueCount": len(counts),
        "mostCommonValue": most_common[0][0] if most_common else None,
        "mostCommonCount": most_common[0][1] if most_common else 0,
    }


def categorical_bucket(period: date, values: list[str], grouping: Grouping) -> dict[str, Any]:
    return {
        "date": period.isoformat(),
        "value": _last_of_day(values, grouping),
        **_categorical_stats(values),
    }


def tracker_bucket(period: date, values: list[float], grouping: Grouping) -> dict[str, Any]:
    """Counters and timers carry the numeric and the categorical view."""
    bucket = numeric_bucket(period, values, grouping)
    bucket.update(_categorical_stats(values))
    return bucket


TRACKER = "tracker"

_BUCKET_BUILDERS: dict[str, Callable[[date, list[Any], Grouping], dict[str, Any]]] = {
    FieldType.BOOLEAN.value: boolean_bucket,
    FieldType.NUMBER.value: numeric_bucket,
    FieldType.CURRENCY.value: numeric_bucket,
    TRACKER: tracker_bucket,
    **{ft.value: categorical_bucket for ft in CATEGORICAL_FIELD_TYPES},
}


def aggregate(
    observations: Iterable[Observation],
    shape: FieldType | str,
    grouping: Grouping,
    range_start: date | None = None,
) -> list[dict[str, Any]]:
    """Bucket observations and aggregate each bucket for ``shape``.

    ``shape`` is a field type, or ``"tracker"`` for counters and timers.
    Observations with a ``None`` value are dropped first.
    """
    shape_key = shape.value if isinstance(shape, FieldType) else shape
    build = _BUCKET_BUILDERS[shape_key]
    present = [o for o in observations if o.value is not None]
    groups = group_by_period(present, grouping, range_start, lambda o: o.day)
    return [build(period, [o.value for o in obs], grouping) for period, obs in groups.items()]


# ── Service summaries ───────────────────────────────────


def summarize_values(values: list[Any], shape: FieldType | str) -> dict[str, Any]:
    """Summary over raw observations (not over buckets)."""
    shape_key = shape.value if isinstance(shape, FieldType) else shape
    present = [v for v in values if v is not None]
    if shape_key == FieldType.BOOLEAN.value:
        true_count = sum(1 for v in present if v is True)
        total = len(present)
        return {
            "overall_true_count": true_count,
            "overall_false_count": sum(1 for v in present if v is False),
            "overall_true_percentage": true_count / total * 100 if total else 0.0,
            "total_count": total,
        }
    if shape_key in (FieldType.NUMBER.value, FieldType.CURRENCY.value, TRACKER):
        if not present:
            return {"total_count": 0}
        total = sum(present)
        return {
            "overall_min": min(present),
            "overall_max": max(present),
            "overall_avg": total / len(present),
            "overall_sum": total,
            "total_count": len(present),
        }
    stats = _categorical_stats(present)
    return {
        "total_count": stats["count"],
        "unique_count": stats["uniqueCount"],
        "most_common_value": stats["mostCommonValue"],
        "most_common_count": stats["mostCommonCount"],
    }


# ── Tasks ───────────────────────────────────────────────


def minutes_to_complete(task: TaskRow) -> int | None:
    if not (task.done and task.created_at and task.completed_at):
        return None
    return round((task.completed_at - task.created_at).total_seconds() / 60)


def task_stats(tasks: list[TaskRow]) -> dict[str, Any]:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.done)
    durations = [
        (t.completed_at - t.created_at).total_seconds()
        for t in tasks
        if t.done and t.created_at and t.completed_at
    ]
    avg_minutes = round(sum(durations) / len(durations) / 60) if durations else None
    return {
        "total": total,
        "completed": completed,
        "incomplete": total - completed,
        "completion_rate": completed / total if total else 0.0,
        "avg_time_to_complete_minutes": avg_minutes,
    }


def task_buckets(
    tasks: list[TaskRow], grouping: Grouping, range_start: date | None
) -> list[dict[str, Any]]:
    """One stats bucket per period.

    Ungrouped queries always return one bucket at the range start, even
    when it holds no tasks.
    """
    if grouping is Grouping.NONE:
        start = range_start or (min(t.day for t in tasks) if tasks else date.today())
        return [{"date": start.isoformat(), "stats": task_stats(tasks)}]
    groups = group_by_period(tasks, grouping, range_start, lambda t: t.day)
    return [{"date": period.isoformat(), "stats": task_stats(rows)} for period, rows in groups.items()]
