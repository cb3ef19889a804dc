"""
Query orchestrator -- selection check -> range guard -> one batched query ->
normalize -> (multi-select) combine.

One orchestrator is owned per UI session / view.  It retains the last
successful parameters and result so the export side can replay exactly
the same query.  A failed run leaves both untouched, so a caller may keep
showing the previous (stale but valid) result next to the error.

Runs are serialised with a lock: one query in flight per instance.  There
is no cancellation and no automatic retry.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from tracklens.core.errors import (
    QueryValidationError,
    RejectionReason,
    TrackLensError,
    UpstreamQueryError,
)
from tracklens.core.logging import get_logger
from tracklens.core.utils import timer
from tracklens.governance.range_guard import check_range
from tracklens.pipeline.combiner import CombinedResult, combine
from tracklens.pipeline.normalizer import NormalizedSeries, normalize
from tracklens.pipeline.params import FieldType, QueryParams, RecordKind
from tracklens.pipeline.records import DEFAULT_FIELD_TYPE, MULTI_PAYLOAD_KEYS
from tracklens.services.base import FieldTemplateRegistry, QueryService

logger = get_logger(__name__)

_SELECTION_LABELS: dict[RecordKind, str] = {
    RecordKind.FIELDS: "field",
    RecordKind.COUNTERS: "counter",
    RecordKind.TIMERS: "timer",
}


class AuditLog(Protocol):
    def record(
        self,
        params: QueryParams,
        *,
        outcome: str,
        bucket_count: int = 0,
        reason: str | None = None,
        latency_ms: int = 0,
    ) -> None: ...


# ── Results ─────────────────────────────────────────────


@dataclass(frozen=True)
class SeriesResult:
    key: str | None
    series: NormalizedSeries

    @property
    def field_type(self) -> FieldType | None:
        return self.series.field_type

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.key is not None:
            out["key"] = self.key
        if self.field_type is not None:
            out["fieldType"] = self.field_type.value
        out.update(self.series.to_dict())
        return out


@dataclass(frozen=True)
class QueryResult:
    """Normalized outcome of one ``run``."""
    params: QueryParams
    series: list[SeriesResult] = field(default_factory=list)
    combined: CombinedResult | None = None
    latency_ms: int = 0

    @property
    def is_multi(self) -> bool:
        return self.combined is not None

    @property
    def primary(self) -> NormalizedSeries:
        return self.series[0].series

    @property
    def has_data(self) -> bool:
        if self.combined is not None:
            return self.combined.combined.has_data
        return bool(self.series) and self.primary.has_data

    def to_dict(self) -> dict[str, Any]:
        if self.combined is not None:
            return {
                "recordKind": self.params.record_kind.value,
                "fieldKeys": list(self.combined.field_keys),
                "fields": [s.to_dict() for s in self.series],
                "combined": self.combined.combined.to_dict(),
            }
        out = {"recordKind": self.params.record_kind.value}
        out.update(self.series[0].to_dict())
        return out


# ── Orchestrator ────────────────────────────────────────


class QueryOrchestrator:
    """Top-level controller for analytics queries.

    Parameters
    ----------
    query_service : QueryService
        Collaborator that returns raw per-bucket records.
    template_registry : FieldTemplateRegistry, optional
        Used to resolve a custom field's declared type when the query
        service does not report it.
    audit_log : AuditLog, optional
        Receives one record per run, successful or not.
    """

    def __init__(
        self,
        query_service: QueryService,
        template_registry: FieldTemplateRegistry | None = None,
        audit_log: AuditLog | None = None,
    ):
        self._service = query_service
        self._registry = template_registry
        self._audit_log = audit_log
        self._lock = threading.Lock()
        self._last_params: QueryParams | None = None
        self._last_result: QueryResult | None = None
        self._field_types: dict[str, FieldType] | None = None

    @property
    def last_params(self) -> QueryParams | None:
        with self._lock:
            return self._last_params

    @property
    def last_result(self) -> QueryResult | None:
        with self._lock:
            return self._last_result

    def run(self, params: QueryParams) -> QueryResult:
        """Validate, query, normalize and (for multi-select) combine.

        Raises
        ------
        QueryValidationError
            Empty selection or a rejected date range; nothing was sent.
        UpstreamQueryError
            The query service failed or returned an unusable payload.
        """
        with self._lock:
            return self._run_locked(params)

    # ── Steps ───────────────────────────────────────────

    def _run_locked(self, params: QueryParams) -> QueryResult:
        logger.info(
            "Orchestrator.run | kind=%s | selection=%s | %s..%s | grouping=%s",
            params.record_kind.value, list(params.selection),
            params.start_date, params.end_date, params.grouping.value,
        )
        with timer() as t:
            try:
                self._check_selection(params)
                check_range(params.record_kind, params.grouping, params.start_date, params.end_date)
                raw = self._issue_query(params)
                result = self._build_result(params, raw)
            except QueryValidationError as exc:
                self._audit(params, outcome="rejected", reason=exc.reason.value)
                raise
            except UpstreamQueryError as exc:
                self._audit(params, outcome="upstream_error", reason=str(exc))
                raise

        result = QueryResult(
            params=params, series=result.series, combined=result.combined,
            latency_ms=t.ms,
        )
        self._last_params = params
        self._last_result = result

        bucket_count = len(result.series[0].series.data) if result.series else 0
        self._audit(params, outcome="ok", bucket_count=bucket_count, latency_ms=result.latency_ms)
        logger.info(
            "Query ok | kind=%s | buckets=%d | multi=%s | %d ms",
            params.record_kind.value, bucket_count, result.is_multi, result.latency_ms,
        )
        return result

    @staticmethod
    def _check_selection(params: QueryParams) -> None:
        if params.requires_selection and not params.selection:
            label = _SELECTION_LABELS[params.record_kind]
            logger.warning("Rejected %s query with empty selection", params.record_kind.value)
            raise QueryValidationError(
                RejectionReason.EMPTY_SELECTION, f"Please select at least one {label}."
            )

    def _issue_query(self, params: QueryParams) -> dict[str, Any]:
        """Exactly one service call per run; multi-select goes out as one batch."""
        dispatch: dict[RecordKind, Callable[[QueryParams], dict[str, Any]]] = {
            RecordKind.TASKS: self._service.query_tasks,
            RecordKind.FIELDS: self._service.query_fields,
            RecordKind.COUNTERS: self._service.query_counters,
            RecordKind.TIMERS: self._service.query_timers,
        }
        try:
            raw = dispatch[params.record_kind](params)
        except UpstreamQueryError:
            raise
        except Exception as exc:
            logger.exception("Query service failed for kind=%s", params.record_kind.value)
            raise UpstreamQueryError(f"{params.record_kind.value} query failed: {exc}") from exc

        if not isinstance(raw, dict):
            raise UpstreamQueryError(
                f"Query service returned {type(raw).__name__}, expected an object"
            )
        if raw.get("error"):
            raise UpstreamQueryError(str(raw["error"]))
        return raw

    def _build_result(self, params: QueryParams, raw: dict[str, Any]) -> QueryResult:
        try:
            series = [
                SeriesResult(
                    key=key,
                    series=normalize(params.record_kind, field_type, data, summary),
                )
                for key, field_type, data, summary in self._split_series(params, raw)
            ]
            combined = None
            if params.is_multi:
                combined = combine([s.series for s in series], params.selection)
        except TrackLensError:
            raise
        except (ValueError, KeyError, TypeError) as exc:
            logger.exception("Malformed %s payload", params.record_kind.value)
            raise UpstreamQueryError(f"Malformed {params.record_kind.value} payload: {exc}") from exc
        return QueryResult(params=params, series=series, combined=combined)

    def _split_series(
        self, params: QueryParams, raw: dict[str, Any]
    ) -> list[tuple[str | None, FieldType | str | None, Any, Any]]:
        """Return (key, field type, raw buckets, service summary) per selected key.

        A service-provided ``combined`` block is ignored; it is recomputed
        from the per-key series.
        """
        kind = params.record_kind
        if kind is RecordKind.TASKS:
            return [(None, None, raw.get("data"), raw.get("summary"))]

        list_key, entry_key = MULTI_PAYLOAD_KEYS[kind]
        entries = raw.get(list_key)
        if not isinstance(entries, list):
            if params.is_multi:
                raise ValueError(f"expected '{list_key}' for a multi-key {kind.value} query")
            entries = [{**raw, entry_key: raw.get(entry_key) or params.selection[0]}]
        if not all(isinstance(e, dict) for e in entries):
            raise ValueError(f"every '{list_key}' entry must be an object")

        by_key = {e.get(entry_key) or e.get("key"): e for e in entries}
        out = []
        for key in params.selection:
            entry = by_key.get(key)
            if entry is None:
                raise ValueError(f"no series returned for '{key}'")
            if entry.get("error"):
                raise UpstreamQueryError(f"Series '{key}' failed: {entry['error']}")
            field_type = None
            if kind is RecordKind.FIELDS:
                field_type = entry.get("fieldType") or self._declared_field_type(key)
            out.append((key, field_type, entry.get("data"), entry.get("summary")))
        return out

    def _declared_field_type(self, key: str) -> FieldType:
        if self._registry is None:
            return DEFAULT_FIELD_TYPE
        if self._field_types is None:
            try:
                templates = self._registry.get_custom_field_templates()
            except Exception as exc:
                raise UpstreamQueryError(f"Could not load field templates: {exc}") from exc
            self._field_types = {t.key: t.field_type for t in templates}
        return self._field_types.get(key, DEFAULT_FIELD_TYPE)

    def _audit(self, params: QueryParams, **kwargs: Any) -> None:
        if self._audit_log is None:
            return
        try:
            self._audit_log.record(params, **kwargs)
        except Exception:
            logger.warning("Audit log write failed -- continuing")
