"""
Field-type normalizer -- raw per-bucket records -> (series, summary).

Dispatch is two-level: record kind first, then (for custom fields only)
the declared field type.  Both levels collapse into one raw bucket variant
(see ``records.bucket_model_for``), and each variant has exactly one point
builder and one summary builder below.

Null policy per variant:
  tasks        -- stats pass through; completionRate = rate * 100, 1 dp
  boolean      -- value -> 1 / 0 / None; truePercentage 1 dp or None;
                  counts and the whole summary default absent numbers to 0
                  ("no observations")
  number/currency -- value/min/max/avg/sum 2 dp or None; count unchanged
  categorical, counters, timers -- count/uniqueCount/mostCommon* default
                  to 0 / ""; tracker value/sum 2 dp or None

An empty bucket list gives an empty series and no summary: "no data", not
an error.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable

from tracklens.core.logging import get_logger
from tracklens.core.utils import round_or_none
from tracklens.pipeline.params import FieldType, RecordKind
from tracklens.pipeline.records import (
    BooleanFieldBucket,
    CategoricalFieldBucket,
    NumericFieldBucket,
    RawBucket,
    TaskBucket,
    TrackerBucket,
    parse_buckets,
    resolve_field_type,
)
from tracklens.pipeline.series import (
    MONEY_DIGITS,
    PERCENT_DIGITS,
    BooleanPoint,
    BooleanSummary,
    CategoricalPoint,
    CategoricalSummary,
    NumericPoint,
    NumericSummary,
    SeriesPoint,
    Summary,
    TaskPoint,
    TaskSummary,
    TrackerPoint,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class NormalizedSeries:
    """Uniform output of the normalizer for one series."""
    record_kind: RecordKind
    field_type: FieldType | None
    data: list[SeriesPoint] = field(default_factory=list)
    summary: Summary | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.data)

    @property
    def measures(self) -> list[float | None]:
        return [p.measure for p in self.data]

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [p.to_dict() for p in self.data],
            "summary": self.summary.to_dict() if self.summary is not None else None,
        }


def _first_present(*values: float | None) -> float | None:
    for v in values:
        if v is not None:
            return v
    return None


# ── Point builders ──────────────────────────────────────


def _task_point(b: TaskBucket) -> TaskPoint:
    return TaskPoint(
        date=b.date,
        total=b.stats.total,
        completed=b.stats.completed,
        incomplete=b.stats.incomplete,
        completion_rate=round(b.stats.completion_rate * 100, PERCENT_DIGITS),
        measure=b.stats.completed,
    )


def _boolean_point(b: BooleanFieldBucket) -> BooleanPoint:
    value = None if b.value is None else int(b.value)
    return BooleanPoint(
        date=b.date,
        value=value,
        true_count=b.true_count or 0,
        false_count=b.false_count or 0,
        total_count=b.total_count or 0,
        true_percentage=round_or_none(b.true_percentage, PERCENT_DIGITS),
        measure=_first_present(b.true_count, value),
    )


def _numeric_point(b: NumericFieldBucket) -> NumericPoint:
    return NumericPoint(
        date=b.date,
        value=round_or_none(b.value, MONEY_DIGITS),
        min=round_or_none(b.min, MONEY_DIGITS),
        max=round_or_none(b.max, MONEY_DIGITS),
        avg=round_or_none(b.avg, MONEY_DIGITS),
        sum=round_or_none(b.sum, MONEY_DIGITS),
        count=b.count,
        measure=_first_present(b.avg, b.value),
    )


def _categorical_point(b: CategoricalFieldBucket) -> CategoricalPoint:
    return CategoricalPoint(
        date=b.date,
        count=b.count or 0,
        unique_count=b.unique_count or 0,
        most_common_value=b.most_common_value or "",
        most_common_count=b.most_common_count or 0,
        measure=b.count,
    )


def _tracker_point(b: TrackerBucket) -> TrackerPoint:
    return TrackerPoint(
        date=b.date,
        count=b.count or 0,
        unique_count=b.unique_count or 0,
        most_common_value=b.most_common_value or "",
        most_common_count=b.most_common_count or 0,
        value=round_or_none(b.value, MONEY_DIGITS),
        sum=round_or_none(b.sum, MONEY_DIGITS),
        measure=_first_present(b.sum, b.value, b.avg),
    )


# ── Summary builders ────────────────────────────────────


def _task_summary(buckets: list[TaskBucket], service: dict[str, Any] | None) -> TaskSummary:
    if service:
        return TaskSummary.model_validate(service)
    total = sum(b.stats.total for b in buckets)
    completed = sum(b.stats.completed for b in buckets)
    return TaskSummary(
        total=total,
        completed=completed,
        incomplete=sum(b.stats.incomplete for b in buckets),
        completion_rate=completed / total if total else 0.0,
    )


def _boolean_summary(
    buckets: list[BooleanFieldBucket], service: dict[str, Any] | None
) -> BooleanSummary:
    if service:
        total = service.get("total_count") or 0
        true_count = service.get("overall_true_count") or 0
        false_count = service.get("overall_false_count") or 0
        pct = service.get("overall_true_percentage")
    else:
        true_count = sum(b.true_count or 0 for b in buckets)
        false_count = sum(b.false_count or 0 for b in buckets)
        total = sum(b.total_count or 0 for b in buckets)
        pct = None
    if pct is None:
        pct = true_count / total * 100 if total else 0.0
    return BooleanSummary(
        overall_true_count=true_count,
        overall_false_count=false_count,
        overall_true_percentage=round(pct, PERCENT_DIGITS),
        total_count=total,
    )


def _categorical_summary(
    buckets: list[CategoricalFieldBucket], service: dict[str, Any] | None
) -> CategoricalSummary:
    if service:
        return CategoricalSummary(
            total_count=service.get("total_count") or 0,
            unique_count=service.get("unique_count") or 0,
            most_common_value="" if service.get("most_common_value") is None
            else str(service["most_common_value"]),
            most_common_count=service.get("most_common_count") or 0,
        )
    # Per-bucket tallies only give a lower bound for the unique count.
    tally: Counter[str] = Counter()
    for b in buckets:
        if b.most_common_value:
            tally[b.most_common_value] += b.most_common_count or 0
    most_common = tally.most_common(1)
    return CategoricalSummary(
        total_count=sum(b.count or 0 for b in buckets),
        unique_count=max((b.unique_count or 0 for b in buckets), default=0),
        most_common_value=most_common[0][0] if most_common else "",
        most_common_count=most_common[0][1] if most_common else 0,
    )


def _numeric_summary(
    points: list[SeriesPoint], service: dict[str, Any] | None, count: int
) -> NumericSummary:
    service = service or {}
    total_count = service.get("total_count")
    return NumericSummary.from_measures(
        [p.measure for p in points],
        overall_sum=service.get("overall_sum"),
        overall_min=service.get("overall_min"),
        overall_max=service.get("overall_max"),
        overall_avg=service.get("overall_avg"),
        total_count=count if total_count is None else total_count,
    )


# ── Dispatch ────────────────────────────────────────────


_POINT_BUILDERS: dict[type, Callable[[Any], SeriesPoint]] = {
    TaskBucket: _task_point,
    BooleanFieldBucket: _boolean_point,
    NumericFieldBucket: _numeric_point,
    CategoricalFieldBucket: _categorical_point,
    TrackerBucket: _tracker_point,
}


def _summarise(
    buckets: list[RawBucket], points: list[SeriesPoint], service: dict[str, Any] | None
) -> Summary:
    first = buckets[0]
    if isinstance(first, TaskBucket):
        return _task_summary(buckets, service)  # type: ignore[arg-type]
    if isinstance(first, BooleanFieldBucket):
        return _boolean_summary(buckets, service)  # type: ignore[arg-type]
    if isinstance(first, CategoricalFieldBucket):
        return _categorical_summary(buckets, service)  # type: ignore[arg-type]
    # numeric fields, counters and timers
    count = sum(getattr(b, "count", 0) or 0 for b in buckets)
    return _numeric_summary(points, service, count)


def normalize_buckets(
    record_kind: RecordKind,
    field_type: FieldType | None,
    buckets: list[RawBucket],
    service_summary: dict[str, Any] | None = None,
) -> NormalizedSeries:
    """Normalize already-typed buckets.  Pure: same input, same output."""
    if not buckets:
        return NormalizedSeries(record_kind=record_kind, field_type=field_type)

    points = [_POINT_BUILDERS[type(b)](b) for b in buckets]
    summary = _summarise(buckets, points, service_summary)
    return NormalizedSeries(
        record_kind=record_kind, field_type=field_type, data=points, summary=summary,
    )


def normalize(
    record_kind: RecordKind | str,
    field_type: FieldType | str | None,
    raw_buckets: list[dict[str, Any]] | None,
    service_summary: dict[str, Any] | None = None,
) -> NormalizedSeries:
    """Reshape one series of raw bucket dicts into chart-ready points + summary.

    Parameters
    ----------
    record_kind : RecordKind | str
        tasks | fields | counters | timers.
    field_type : FieldType | str | None
        Declared custom-field type; ignored unless ``record_kind`` is fields.
        Missing types default to ``number``.
    raw_buckets : list[dict]
        Per-bucket records in bucket order; order is preserved.
    service_summary : dict, optional
        Aggregate returned by the query service alongside the buckets.
    """
    kind = RecordKind(record_kind)
    ftype = resolve_field_type(field_type) if kind is RecordKind.FIELDS else None
    buckets = parse_buckets(kind, ftype, raw_buckets)
    result = normalize_buckets(kind, ftype, buckets, service_summary)
    logger.debug(
        "Normalized %d bucket(s) kind=%s field_type=%s",
        len(result.data), kind.value, ftype.value if ftype else None,
    )
    return result
