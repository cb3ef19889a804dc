"""
QueryParams -- the immutable description of one analytics query.

A submitted query is never mutated; a new submission builds a new value.
The export side replays the exact same value, so ``to_payload`` and
``from_payload`` must round-trip without drift.
"""
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RecordKind(str, Enum):
    TASKS = "tasks"
    FIELDS = "fields"
    COUNTERS = "counters"
    TIMERS = "timers"


class Grouping(str, Enum):
    NONE = "none"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class CompletionStatus(str, Enum):
    ALL = "all"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class FieldType(str, Enum):
    BOOLEAN = "boolean"
    NUMBER = "number"
    CURRENCY = "currency"
    TEXT = "text"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"


NUMERIC_FIELD_TYPES = frozenset({FieldType.NUMBER, FieldType.CURRENCY})
CATEGORICAL_FIELD_TYPES = frozenset({FieldType.TEXT, FieldType.DATE, FieldType.TIME, FieldType.DATETIME})

# Wire name of the selection list per record kind (tracker server body).
_SELECTION_KEYS: dict[RecordKind, str] = {
    RecordKind.FIELDS: "fieldKeys",
    RecordKind.COUNTERS: "counterNames",
    RecordKind.TIMERS: "timerNames",
}

# Legacy single-item aliases still accepted by the tracker server.
_SINGLE_SELECTION_KEYS: dict[RecordKind, str] = {
    RecordKind.FIELDS: "fieldKey",
    RecordKind.COUNTERS: "counterName",
    RecordKind.TIMERS: "timerName",
}


class QueryParams(BaseModel):
    """Validated-shape (not yet range-checked) query request."""

    model_config = ConfigDict(frozen=True)

    record_kind: RecordKind = Field(..., description="tasks | fields | counters | timers")
    selection: tuple[str, ...] = Field(
        default=(),
        description="Ordered field keys / counter names / timer names; always empty for tasks",
    )
    start_date: date | None = None
    end_date: date | None = None
    grouping: Grouping = Grouping.DAY
    completion_status: CompletionStatus = Field(
        CompletionStatus.ALL, description="Only meaningful for tasks"
    )

    @field_validator("selection", mode="before")
    @classmethod
    def _ordered_unique(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        seen: dict[str, None] = {}
        for item in value:
            item = str(item).strip()
            if item:
                seen.setdefault(item, None)
        return tuple(seen)

    @model_validator(mode="before")
    @classmethod
    def _tasks_have_no_selection(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("record_kind") == RecordKind.TASKS.value:
            data = {**data, "selection": ()}
        return data

    @property
    def is_multi(self) -> bool:
        return len(self.selection) > 1

    @property
    def requires_selection(self) -> bool:
        return self.record_kind is not RecordKind.TASKS

    # ── Wire format ─────────────────────────────────────

    def to_payload(self) -> dict[str, Any]:
        """Render the tracker server request body for this query."""
        payload: dict[str, Any] = {}
        if self.record_kind is RecordKind.TASKS:
            payload["completionStatus"] = self.completion_status.value
        else:
            payload[_SELECTION_KEYS[self.record_kind]] = list(self.selection)
        payload["startDate"] = self.start_date.isoformat() if self.start_date else None
        payload["endDate"] = self.end_date.isoformat() if self.end_date else None
        payload["groupBy"] = self.grouping.value
        return payload

    @classmethod
    def from_payload(cls, record_kind: RecordKind | str, payload: dict[str, Any]) -> "QueryParams":
        """Inverse of :meth:`to_payload`."""
        kind = RecordKind(record_kind)
        selection: list[str] = []
        if kind is not RecordKind.TASKS:
            selection = list(payload.get(_SELECTION_KEYS[kind]) or [])
            single = payload.get(_SINGLE_SELECTION_KEYS[kind])
            if not selection and single:
                selection = [single]
        return cls(
            record_kind=kind,
            selection=selection,
            start_date=payload.get("startDate") or None,
            end_date=payload.get("endDate") or None,
            grouping=payload.get("groupBy") or Grouping.DAY,
            completion_status=payload.get("completionStatus") or CompletionStatus.ALL,
        )
