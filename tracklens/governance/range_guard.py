"""
Date-range guardrails.

Rejects missing, inverted or over-wide date ranges before any query is
issued.  Caps depend on the record kind and grouping:

  tasks              -- always capped at 365 days, whatever the grouping
  fields / day       -- 365 days
  fields / week      -- 364 days
  fields / month+    -- uncapped
  counters / timers  -- uncapped here (selection emptiness is checked by
                        the orchestrator)

Unbounded per-day aggregation is what these caps protect against.
"""
from __future__ import annotations

from datetime import date

from tracklens.core.errors import QueryValidationError, RejectionReason
from tracklens.core.logging import get_logger
from tracklens.pipeline.params import Grouping, RecordKind

logger = get_logger(__name__)


# ── Thresholds ──────────────────────────────────────────

TASKS_MAX_DAYS = 365
FIELDS_MAX_DAYS: dict[Grouping, int] = {
    Grouping.DAY: 365,
    Grouping.WEEK: 364,
}


def max_span_days(record_kind: RecordKind, grouping: Grouping) -> int | None:
    """Return the widest allowed ``end - start`` in days, or ``None`` if uncapped."""
    if record_kind is RecordKind.TASKS:
        return TASKS_MAX_DAYS
    if record_kind is RecordKind.FIELDS:
        return FIELDS_MAX_DAYS.get(grouping)
    return None


def validate_range(
    record_kind: RecordKind,
    grouping: Grouping,
    start_date: date | None,
    end_date: date | None,
) -> QueryValidationError | None:
    """Check a date range; return the rejection, or ``None`` when the range is ok.

    Rules are applied in order: presence, ordering, then the per-kind cap.
    ``days_diff`` is ``end - start`` in whole days; whether the end day is
    inclusive is the caller's concern.
    """
    if start_date is None or end_date is None:
        return QueryValidationError(
            RejectionReason.MISSING_DATE, "Please select both start and end dates."
        )

    if end_date < start_date:
        return QueryValidationError(
            RejectionReason.INVERTED_RANGE, "End date must not be before start date."
        )

    days_diff = (end_date - start_date).days
    cap = max_span_days(record_kind, grouping)
    if cap is not None and days_diff > cap:
        return QueryValidationError(
            RejectionReason.RANGE_TOO_WIDE,
            f"Date range of {days_diff} days exceeds the {cap}-day limit for "
            f"{record_kind.value} grouped by {grouping.value}.",
        )

    return None


def check_range(
    record_kind: RecordKind,
    grouping: Grouping,
    start_date: date | None,
    end_date: date | None,
) -> None:
    """Raise :class:`QueryValidationError` if the range is rejected."""
    rejection = validate_range(record_kind, grouping, start_date, end_date)
    if rejection is not None:
        logger.warning(
            "Range rejected: kind=%s grouping=%s start=%s end=%s reason=%s",
            record_kind.value, grouping.value, start_date, end_date, rejection.reason.value,
        )
        raise rejection
