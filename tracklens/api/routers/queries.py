"""/queries -- run analytics queries and look up what can be queried."""
from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from tracklens.api.deps import get_orchestrator, get_template_registry
from tracklens.core.errors import QueryValidationError, UpstreamQueryError
from tracklens.core.logging import get_logger
from tracklens.pipeline.chart_generator import suggest_chart
from tracklens.pipeline.orchestrator import QueryOrchestrator
from tracklens.pipeline.params import CompletionStatus, Grouping, QueryParams, RecordKind
from tracklens.services.base import FieldTemplateRegistry

logger = get_logger(__name__)
router = APIRouter()


class RunRequest(BaseModel):
    record_kind: RecordKind = Field(..., description="tasks | fields | counters | timers")
    selection: list[str] = Field(default_factory=list, description="Field keys / counter or timer names")
    start_date: date | None = None
    end_date: date | None = None
    grouping: Grouping = Grouping.DAY
    completion_status: CompletionStatus = CompletionStatus.ALL
    chart_type: str = Field("line", pattern="^(line|bar)$")

    def to_params(self) -> QueryParams:
        return QueryParams(
            record_kind=self.record_kind,
            selection=self.selection,
            start_date=self.start_date,
            end_date=self.end_date,
            grouping=self.grouping,
            completion_status=self.completion_status,
        )


class ChartResponse(BaseModel):
    chart_type: str
    title: str
    x_column: str | None = None
    y_columns: list[str] = Field(default_factory=list)
    y_domain: list[Any] = Field(default_factory=list)
    rows: list[dict] = Field(default_factory=list)
    row_count: int = 0


class RunResponse(BaseModel):
    result: dict
    chart: ChartResponse
    has_data: bool
    latency_ms: int


class DateRange(BaseModel):
    start_date: date
    end_date: date


@router.post("/run", response_model=RunResponse)
def run_endpoint(req: RunRequest, orchestrator: QueryOrchestrator = Depends(get_orchestrator)):
    """Validate -> query -> normalize -> combine, plus a chart for the result."""
    try:
        result = orchestrator.run(req.to_params())
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail={"reason": exc.reason.value, "message": exc.message})
    except UpstreamQueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    chart = suggest_chart(result, req.chart_type)
    return RunResponse(
        result=result.to_dict(),
        chart=ChartResponse(**chart.to_dict()),
        has_data=result.has_data,
        latency_ms=result.latency_ms,
    )


@router.get("/last")
def last_params_endpoint(orchestrator: QueryOrchestrator = Depends(get_orchestrator)):
    """Parameters of the last successful run, in tracker server wire format."""
    params = orchestrator.last_params
    if params is None:
        raise HTTPException(status_code=404, detail="No query has been run yet")
    return {"recordKind": params.record_kind.value, **params.to_payload()}


@router.get("/templates")
def templates_endpoint(registry: FieldTemplateRegistry = Depends(get_template_registry)):
    try:
        templates = registry.get_custom_field_templates()
    except UpstreamQueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"templates": [t.model_dump(mode="json") for t in templates]}


@router.post("/populated-fields")
def populated_fields_endpoint(
    req: DateRange, registry: FieldTemplateRegistry = Depends(get_template_registry)
):
    try:
        fields = registry.get_populated_fields(req.start_date, req.end_date)
    except UpstreamQueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"fields": fields}


@router.post("/populated-counters")
def populated_counters_endpoint(
    req: DateRange, registry: FieldTemplateRegistry = Depends(get_template_registry)
):
    try:
        names = registry.get_populated_counters(req.start_date, req.end_date)
    except UpstreamQueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"counters": [{"name": n} for n in names]}


@router.post("/populated-timers")
def populated_timers_endpoint(
    req: DateRange, registry: FieldTemplateRegistry = Depends(get_template_registry)
):
    try:
        names = registry.get_populated_timers(req.start_date, req.end_date)
    except UpstreamQueryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return {"timers": [{"name": n} for n in names]}
