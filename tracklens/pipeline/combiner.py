"""
Multi-series combiner -- N aligned series -> one summed series + summary.

Per bucket the measures of all series are summed.  A null measure adds 0,
but a bucket where *every* series is null stays null.

The combined summary is computed over the summed series.  It is NOT
derived from the per-field summaries: min / max / avg do not distribute
over a field-wise sum, so min-of-mins or sum-of-avgs would be wrong.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from tracklens.core.errors import SeriesAlignmentError
from tracklens.core.logging import get_logger
from tracklens.core.utils import round_or_none
from tracklens.pipeline.normalizer import NormalizedSeries
from tracklens.pipeline.series import MONEY_DIGITS, CombinedPoint, NumericSummary, SeriesPoint

logger = get_logger(__name__)


@dataclass(frozen=True)
class CombinedSeries:
    data: list[CombinedPoint] = field(default_factory=list)
    summary: NumericSummary | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [p.to_dict() for p in self.data],
            "summary": self.summary.to_dict() if self.summary is not None else None,
        }


@dataclass(frozen=True)
class CombinedResult:
    field_keys: tuple[str, ...]
    combined: CombinedSeries

    def to_dict(self) -> dict[str, Any]:
        return {"fieldKeys": list(self.field_keys), "combined": self.combined.to_dict()}


def _points_of(series: NormalizedSeries | Sequence[SeriesPoint]) -> Sequence[SeriesPoint]:
    if isinstance(series, NormalizedSeries):
        return series.data
    return series


def _check_alignment(all_points: list[Sequence[SeriesPoint]], field_keys: Sequence[str]) -> None:
    if not all_points:
        raise ValueError("combine() needs at least one series")
    if len(field_keys) != len(all_points):
        raise ValueError(
            f"Got {len(all_points)} series but {len(field_keys)} field keys"
        )
    reference = [p.date for p in all_points[0]]
    for key, points in zip(field_keys, all_points):
        dates = [p.date for p in points]
        if dates != reference:
            raise SeriesAlignmentError(
                f"Series '{key}' buckets {dates} do not match {reference}"
            )


def combine(
    series_list: Sequence[NormalizedSeries | Sequence[SeriesPoint]],
    field_keys: Sequence[str],
) -> CombinedResult:
    """Sum aligned series bucket-by-bucket and summarise the summed series.

    Parameters
    ----------
    series_list : sequence
        Normalized series (or their point lists), all sharing the same
        bucket dates in the same order.
    field_keys : sequence[str]
        The selected keys, one per series.

    Raises
    ------
    SeriesAlignmentError
        If the series do not share their buckets.
    ValueError
        If there are no series or the key count does not match.
    """
    all_points = [_points_of(s) for s in series_list]
    _check_alignment(all_points, field_keys)

    sums: list[float | None] = []
    observations = 0
    data: list[CombinedPoint] = []
    for bucket in zip(*all_points):
        present = [p.measure for p in bucket if p.measure is not None]
        observations += len(present)
        total = sum(present) if present else None
        sums.append(total)
        data.append(CombinedPoint(
            date=bucket[0].date,
            value=round_or_none(total, MONEY_DIGITS),
            count=len(present),
            measure=total,
        ))

    summary = None
    if data:
        summary = NumericSummary.from_measures(
            sums, total_count=observations, field_count=len(field_keys),
        )

    logger.info(
        "Combined %d series over %d bucket(s): field_count=%d",
        len(all_points), len(data), len(field_keys),
    )
    return CombinedResult(
        field_keys=tuple(field_keys),
        combined=CombinedSeries(data=data, summary=summary),
    )
