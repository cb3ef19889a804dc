"""
Chart-ready series points and summaries.

Points serialise with camelCase keys for the rendering layer.  Every point
also carries ``measure``: the full-precision numeric value of its bucket,
excluded from serialisation, so that cross-series aggregation never runs on
presentation-rounded numbers.

``NumericSummary.trend`` and ``change_percent`` are derived values: build
them with ``NumericSummary.from_measures``.  The model validator rejects a
pair whose signs disagree.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from tracklens.core.utils import round_or_none

MONEY_DIGITS = 2
PERCENT_DIGITS = 1


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


# ── Points ──────────────────────────────────────────────


class SeriesPoint(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    date: str
    measure: float | None = Field(default=None, exclude=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TaskPoint(SeriesPoint):
    total: int
    completed: int
    incomplete: int
    completion_rate: float


class BooleanPoint(SeriesPoint):
    value: int | None
    true_count: int
    false_count: int
    total_count: int
    true_percentage: float | None


class NumericPoint(SeriesPoint):
    value: float | None
    min: float | None
    max: float | None
    avg: float | None
    sum: float | None
    count: int


class CategoricalPoint(SeriesPoint):
    count: int
    unique_count: int
    most_common_value: str
    most_common_count: int


class TrackerPoint(CategoricalPoint):
    value: float | None
    sum: float | None


class CombinedPoint(SeriesPoint):
    value: float | None
    count: int


# ── Summaries ───────────────────────────────────────────


class _Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class TaskSummary(_Summary):
    total: int = 0
    completed: int = 0
    incomplete: int = 0
    completion_rate: float = 0.0
    avg_time_to_complete_minutes: float | None = None

    def to_dict(self) -> dict[str, Any]:
        # avg time is only re-exposed when the service knows it
        data = self.model_dump(mode="json")
        if data["avg_time_to_complete_minutes"] is None:
            data.pop("avg_time_to_complete_minutes")
        return data


class BooleanSummary(_Summary):
    overall_true_count: int = 0
    overall_false_count: int = 0
    overall_true_percentage: float = 0.0
    total_count: int = 0


class CategoricalSummary(_Summary):
    total_count: int = 0
    unique_count: int = 0
    most_common_value: str = ""
    most_common_count: int = 0


class NumericSummary(_Summary):
    overall_sum: float | None = None
    overall_min: float | None = None
    overall_max: float | None = None
    overall_avg: float | None = None
    total_count: int | None = None
    field_count: int | None = None
    trend: Trend = Trend.STABLE
    change_percent: float | None = None

    @model_validator(mode="after")
    def _trend_agrees_with_change(self) -> "NumericSummary":
        cp = self.change_percent
        if cp is None:
            return self
        expected = _trend_for_sign(cp)
        if self.trend is not expected:
            raise ValueError(
                f"trend '{self.trend.value}' disagrees with change_percent {cp}"
            )
        return self

    @classmethod
    def from_measures(
        cls,
        measures: Sequence[float | None],
        *,
        overall_sum: float | None = None,
        overall_min: float | None = None,
        overall_max: float | None = None,
        overall_avg: float | None = None,
        total_count: int | None = None,
        field_count: int | None = None,
    ) -> "NumericSummary":
        """Build a summary from bucket measures in bucket order.

        Explicit ``overall_*`` values (e.g. computed by the service over raw
        observations) take precedence over the ones derived from
        ``measures``; trend and change are always derived from ``measures``.
        """
        present = [m for m in measures if m is not None]
        if present:
            derived_sum = sum(present)
            overall_sum = derived_sum if overall_sum is None else overall_sum
            overall_min = min(present) if overall_min is None else overall_min
            overall_max = max(present) if overall_max is None else overall_max
            overall_avg = derived_sum / len(present) if overall_avg is None else overall_avg

        trend, change = derive_trend(measures)
        return cls(
            overall_sum=round_or_none(overall_sum, MONEY_DIGITS),
            overall_min=round_or_none(overall_min, MONEY_DIGITS),
            overall_max=round_or_none(overall_max, MONEY_DIGITS),
            overall_avg=round_or_none(overall_avg, MONEY_DIGITS),
            total_count=total_count,
            field_count=field_count,
            trend=trend,
            change_percent=change,
        )


Summary = TaskSummary | BooleanSummary | CategoricalSummary | NumericSummary


# ── Trend ───────────────────────────────────────────────


def _trend_for_sign(value: float) -> Trend:
    if value > 0:
        return Trend.INCREASING
    if value < 0:
        return Trend.DECREASING
    return Trend.STABLE


def derive_trend(measures: Sequence[float | None]) -> tuple[Trend, float | None]:
    """Compare the two most recent non-null buckets.

    ``change_percent = (latest - second_latest) / |second_latest| * 100``,
    rounded to one decimal; the trend follows the sign of the rounded
    value.  A zero ``second_latest`` gives ``None`` and the trend follows
    the raw difference.  Fewer than two values: stable, ``None``.
    """
    present = [m for m in measures if m is not None]
    if len(present) < 2:
        return Trend.STABLE, None

    second_latest, latest = present[-2], present[-1]
    if second_latest == 0:
        return _trend_for_sign(latest - second_latest), None

    change = round((latest - second_latest) / abs(second_latest) * 100, PERCENT_DIGITS)
    return _trend_for_sign(change), change
