"""
Raw bucket records as returned by the query service.

The payload shape depends on (record kind, field type).  Each shape is a
variant of the closed ``RawBucket`` union; ``bucket_model_for`` picks the
variant and ``parse_buckets`` validates a list of loosely-typed dicts.

Optional numbers stay ``None`` here.  Whether "absent" later becomes 0 or
stays "no data" is decided per field by the normalizer.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tracklens.pipeline.params import (
    CATEGORICAL_FIELD_TYPES,
    NUMERIC_FIELD_TYPES,
    FieldType,
    RecordKind,
)


class _RawModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


def _stringify(value: Any) -> str | None:
    return None if value is None else str(value)


def _bucket_date(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


Text = Annotated[str | None, BeforeValidator(_stringify)]
BucketDate = Annotated[str, BeforeValidator(_bucket_date)]


# ── Tasks ───────────────────────────────────────────────


class TaskStats(_RawModel):
    total: int = 0
    completed: int = 0
    incomplete: int = 0
    completion_rate: float = Field(0.0, alias="completion_rate")
    avg_time_to_complete_minutes: float | None = Field(None, alias="avg_time_to_complete_minutes")


class TaskBucket(_RawModel):
    kind: Literal["tasks"] = "tasks"
    date: BucketDate
    stats: TaskStats = Field(default_factory=TaskStats)


# ── Custom fields ───────────────────────────────────────


class BooleanFieldBucket(_RawModel):
    kind: Literal["boolean"] = "boolean"
    date: BucketDate
    value: bool | None = None
    true_count: int | None = None
    false_count: int | None = None
    total_count: int | None = None
    true_percentage: float | None = None


class NumericFieldBucket(_RawModel):
    kind: Literal["numeric"] = "numeric"
    date: BucketDate
    value: float | None = None
    min: float | None = None
    max: float | None = None
    avg: float | None = None
    sum: float | None = None
    count: int = 0


class CategoricalFieldBucket(_RawModel):
    kind: Literal["categorical"] = "categorical"
    date: BucketDate
    value: Text = None
    count: int | None = None
    unique_count: int | None = None
    most_common_value: Text = None
    most_common_count: int | None = None


# ── Counters & timers ───────────────────────────────────


class TrackerBucket(_RawModel):
    kind: Literal["tracker"] = "tracker"
    date: BucketDate
    value: float | None = None
    min: float | None = None
    max: float | None = None
    avg: float | None = None
    sum: float | None = None
    count: int | None = None
    unique_count: int | None = None
    most_common_value: Text = None
    most_common_count: int | None = None


RawBucket = Annotated[
    Union[TaskBucket, BooleanFieldBucket, NumericFieldBucket, CategoricalFieldBucket, TrackerBucket],
    Field(discriminator="kind"),
]

DEFAULT_FIELD_TYPE = FieldType.NUMBER


def resolve_field_type(field_type: FieldType | str | None) -> FieldType:
    """Coerce a declared field type, defaulting to ``number`` like the tracker server."""
    if field_type is None or field_type == "":
        return DEFAULT_FIELD_TYPE
    return FieldType(field_type)


def bucket_model_for(
    record_kind: RecordKind, field_type: FieldType | str | None = None
) -> type[_RawModel]:
    """Return the raw bucket variant for a (record kind, field type) pair."""
    if record_kind is RecordKind.TASKS:
        return TaskBucket
    if record_kind in (RecordKind.COUNTERS, RecordKind.TIMERS):
        return TrackerBucket

    ftype = resolve_field_type(field_type)
    if ftype is FieldType.BOOLEAN:
        return BooleanFieldBucket
    if ftype in NUMERIC_FIELD_TYPES:
        return NumericFieldBucket
    if ftype in CATEGORICAL_FIELD_TYPES:
        return CategoricalFieldBucket
    raise ValueError(f"No bucket shape for field type '{ftype.value}'")


def parse_buckets(
    record_kind: RecordKind,
    field_type: FieldType | str | None,
    raw: list[dict[str, Any]] | None,
) -> list[RawBucket]:
    """Validate raw per-bucket dicts into their typed variant, preserving order.

    Tracker servers sometimes label a bucket ``period`` instead of ``date``;
    both are accepted.
    """
    model = bucket_model_for(record_kind, field_type)
    buckets = []
    for item in raw or []:
        if not isinstance(item, dict):
            raise ValueError(f"bucket must be an object, got {type(item).__name__}")
        if "date" not in item and "period" in item:
            item = {**item, "date": item["period"]}
        item = {k: v for k, v in item.items() if k != "kind"}
        buckets.append(model.model_validate(item))
    return buckets


# ── Multi-key payloads ──────────────────────────────────

# (list key, per-entry key name) of a multi-key response
MULTI_PAYLOAD_KEYS: dict[RecordKind, tuple[str, str]] = {
    RecordKind.FIELDS: ("fields", "fieldKey"),
    RecordKind.COUNTERS: ("counters", "counterName"),
    RecordKind.TIMERS: ("timers", "timerName"),
}


def _label(bucket: dict[str, Any]) -> Any:
    return bucket.get("date", bucket.get("period"))


def align_buckets(series: dict[Any, list[dict[str, Any]]]) -> dict[Any, list[dict[str, Any]]]:
    """Give every series the union of bucket dates, ascending.

    A key with no bucket at some date gets ``{"date": ...}`` only, so its
    measure stays null rather than zero.
    """
    all_dates = sorted({_label(b) for buckets in series.values() for b in buckets})
    aligned = {}
    for key, buckets in series.items():
        by_date = {_label(b): b for b in buckets}
        aligned[key] = [by_date.get(d, {"date": d}) for d in all_dates]
    return aligned
