"""
Chart specification for a normalized query result.

Given a QueryResult, picks the plotted columns for its (record kind,
field type), the y-axis domain, and the rows the UI should render.

Supported chart types:
  - line      (one point per bucket; the default)
  - bar       (per-bucket bars, or summary bars for numeric series)
  - table     (fallback when there is nothing to plot)
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from tracklens.core.logging import get_logger
from tracklens.pipeline.orchestrator import QueryResult
from tracklens.pipeline.params import NUMERIC_FIELD_TYPES, FieldType, RecordKind
from tracklens.pipeline.series import MONEY_DIGITS

logger = get_logger(__name__)

# ── Chart types ─────────────────────────────────────────

CHART_LINE = "line"
CHART_BAR = "bar"
CHART_TABLE = "table"

AUTO = "auto"
ZERO_BASED: list[Any] = [0, AUTO]


@dataclass
class ChartSpec:
    """Describes how a series should be visualised."""
    chart_type: str
    title: str
    x_column: str | None = None
    y_columns: list[str] = field(default_factory=list)
    y_domain: list[Any] = field(default_factory=lambda: list(ZERO_BASED))
    rows: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chart_type": self.chart_type,
            "title": self.title,
            "x_column": self.x_column,
            "y_columns": self.y_columns,
            "y_domain": self.y_domain,
            "rows": self.rows,
            "row_count": len(self.rows),
        }


# ── Y-axis scaling ──────────────────────────────────────


def padded_domain(values: list[float | None]) -> list[Any]:
    """Zoom the y-axis in on narrow ranges.

    If ``range < max * 0.2`` or ``range < 10`` the axis spans
    ``[floor(min - pad), ceil(max + pad)]`` with ``pad = max(range * 0.1, 5)``;
    otherwise it starts at zero.
    """
    present = [v for v in values if v is not None]
    if not present:
        return list(ZERO_BASED)
    lo, hi = min(present), max(present)
    span = hi - lo
    if span < hi * 0.2 or span < 10:
        pad = max(span * 0.1, 5)
        return [math.floor(lo - pad), math.ceil(hi + pad)]
    return list(ZERO_BASED)


def summary_bars(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse numeric rows into one bar per overall statistic."""
    def present(key: str) -> list[float]:
        return [r[key] for r in rows if r.get(key) is not None]

    bars = []
    values, avgs, sums = present("value"), present("avg"), present("sum")
    mins, maxs = present("min"), present("max")
    if values:
        bars.append({"metric": "Overall Value", "value": round(sum(values) / len(values), MONEY_DIGITS)})
    if avgs:
        bars.append({"metric": "Average", "value": round(sum(avgs) / len(avgs), MONEY_DIGITS)})
    if sums:
        bars.append({"metric": "Total Sum", "value": round(sum(sums), MONEY_DIGITS)})
    if mins:
        bars.append({"metric": "Minimum", "value": round(min(mins), MONEY_DIGITS)})
    if maxs:
        bars.append({"metric": "Maximum", "value": round(max(maxs), MONEY_DIGITS)})
    return bars


# ── Chart selection logic ───────────────────────────────

_NUMERIC_COLUMNS = ["value", "avg", "min", "max"]

_COLUMNS: dict[str, list[str]] = {
    "tasks": ["total", "completed", "incomplete"],
    "boolean": ["trueCount", "falseCount"],
    "numeric": _NUMERIC_COLUMNS,
    "categorical": ["count", "uniqueCount"],
    "tracker": ["value", "sum"],
    "combined": ["value"],
}


def _series_shape(result: QueryResult) -> str:
    if result.is_multi:
        return "combined"
    kind = result.params.record_kind
    if kind is RecordKind.TASKS:
        return "tasks"
    if kind in (RecordKind.COUNTERS, RecordKind.TIMERS):
        return "tracker"
    ftype = result.series[0].field_type
    if ftype is FieldType.BOOLEAN:
        return "boolean"
    if ftype in NUMERIC_FIELD_TYPES:
        return "numeric"
    return "categorical"


def suggest_chart(result: QueryResult, chart_type: str = CHART_LINE) -> ChartSpec:
    """Build a ``ChartSpec`` for a query result.

    Parameters
    ----------
    result : QueryResult
        Output of ``QueryOrchestrator.run``.
    chart_type : str
        ``line`` or ``bar``.

    Returns
    -------
    ChartSpec
        A chart specification for the UI to render.
    """
    title = _build_title(result)
    if not result.has_data:
        return ChartSpec(chart_type=CHART_TABLE, title=title, rows=[])

    if result.is_multi:
        rows = [p.to_dict() for p in result.combined.combined.data]
    else:
        rows = [p.to_dict() for p in result.primary.data]

    shape = _series_shape(result)
    y_columns = list(_COLUMNS[shape])

    if shape in ("numeric", "tracker", "combined"):
        if chart_type == CHART_BAR and shape != "combined":
            bars = summary_bars(rows)
            return ChartSpec(
                chart_type=CHART_BAR, title=title, x_column="metric",
                y_columns=["value"], y_domain=list(ZERO_BASED), rows=bars,
            )
        domain = padded_domain([r.get(c) for r in rows for c in y_columns])
    else:
        domain = list(ZERO_BASED)

    logger.debug("Chart: type=%s shape=%s rows=%d domain=%s", chart_type, shape, len(rows), domain)
    return ChartSpec(
        chart_type=CHART_BAR if chart_type == CHART_BAR else CHART_LINE,
        title=title,
        x_column="date",
        y_columns=y_columns,
        y_domain=domain,
        rows=rows,
    )


# ── Helpers ─────────────────────────────────────────────


def _build_title(result: QueryResult) -> str:
    params = result.params
    if params.record_kind is RecordKind.TASKS:
        parts = ["Tasks"]
    else:
        parts = [" + ".join(params.selection) or params.record_kind.value.title()]
    if params.grouping.value != "none":
        parts.append(f"by {params.grouping.value}")
    if params.start_date and params.end_date:
        parts.append(f"({params.start_date} to {params.end_date})")
    return " ".join(parts)
