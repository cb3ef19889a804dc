"""
Contracts of the external collaborators the pipeline depends on.

  QueryService          -- raw per-bucket records for tasks / fields / counters / timers
  FieldTemplateRegistry -- declared custom fields and populated trackers
  ExportService         -- CSV / Excel / zip bytes for a query or for snapshots
  SnapshotStore         -- persisted point-in-time exports and their retention

Two implementations ship with tracklens: ``services.http_client`` talks to
the tracker server, ``db.*`` reads a local SQL database.
"""
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from tracklens.pipeline.params import FieldType, QueryParams, RecordKind


class ZipFileType(str, Enum):
    MARKDOWN = "markdown"
    PDF = "pdf"
    CSV = "csv"
    BOTH = "both"  # markdown + pdf
    ALL = "all"    # markdown + pdf + csv


class FieldTemplate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | None = None
    key: str
    field_type: FieldType = FieldType.TEXT


class RetentionSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_count: int = Field(100, alias="maxCount", ge=1)
    max_days: int = Field(30, alias="maxDays", ge=1)


@runtime_checkable
class QueryService(Protocol):
    """Issues one batched query per call and returns the service payload.

    Single-key payloads look like ``{data, summary, fieldType?}``; multi-key
    ones like ``{fieldKeys, fields: [{fieldKey, fieldType, data, summary}]}``
    (``counterNames``/``counters`` and ``timerNames``/``timers`` alike).
    """

    def query_tasks(self, params: QueryParams) -> dict[str, Any]: ...

    def query_fields(self, params: QueryParams) -> dict[str, Any]: ...

    def query_counters(self, params: QueryParams) -> dict[str, Any]: ...

    def query_timers(self, params: QueryParams) -> dict[str, Any]: ...


@runtime_checkable
class FieldTemplateRegistry(Protocol):
    def get_custom_field_templates(self) -> list[FieldTemplate]: ...

    def get_populated_fields(self, start_date: date, end_date: date) -> list[dict[str, str]]: ...

    def get_populated_counters(self, start_date: date, end_date: date) -> list[str]: ...

    def get_populated_timers(self, start_date: date, end_date: date) -> list[str]: ...


@runtime_checkable
class ExportService(Protocol):
    def export_csv(self, record_kind: RecordKind, params: QueryParams) -> bytes: ...

    def export_excel(self, record_kind: RecordKind, params: QueryParams) -> bytes: ...

    def export_zip(self, dates: list[date], file_type: ZipFileType) -> bytes: ...


@runtime_checkable
class SnapshotStore(Protocol):
    def available_dates(self) -> list[date]: ...

    def save_snapshot(self) -> date: ...

    def delete_snapshot(self, day: date) -> list[date]: ...

    def retention_settings(self) -> RetentionSettings: ...

    def update_retention_settings(self, settings: RetentionSettings) -> RetentionSettings: ...
