"""
Collaborator wiring for the API.

One orchestrator per process: the API serves a single UI session.  The
backend is chosen by ``Settings.query_backend``:

  local -- SQL query service, local exports and snapshots
  http  -- everything delegated to the tracker server
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from tracklens.core.config import get_settings
from tracklens.core.logging import get_logger
from tracklens.db.connection import get_engine
from tracklens.db.exports import LocalExportService
from tracklens.db.query_log import QueryLog
from tracklens.db.repository import SqlQueryService
from tracklens.db.snapshots import SqlSnapshotStore
from tracklens.pipeline.export_dispatcher import ExportDispatcher
from tracklens.pipeline.orchestrator import QueryOrchestrator
from tracklens.services.base import ExportService, FieldTemplateRegistry, QueryService, SnapshotStore
from tracklens.services.http_client import TrackerHttpClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class Collaborators:
    query_service: QueryService
    template_registry: FieldTemplateRegistry
    export_service: ExportService
    snapshot_store: SnapshotStore
    audit_log: Any = None


def _local() -> Collaborators:
    engine = get_engine()
    queries = SqlQueryService(engine)
    snapshots = SqlSnapshotStore(engine)
    return Collaborators(
        query_service=queries,
        template_registry=queries,
        export_service=LocalExportService(engine, queries, snapshots),
        snapshot_store=snapshots,
        audit_log=QueryLog(engine),
    )


def _http() -> Collaborators:
    client = TrackerHttpClient()
    return Collaborators(
        query_service=client,
        template_registry=client,
        export_service=client,
        snapshot_store=client,
        audit_log=QueryLog(get_engine()),
    )


_BACKENDS = {
    "local": _local,
    "http": _http,
}


@lru_cache
def get_collaborators() -> Collaborators:
    backend = get_settings().query_backend.lower()
    build = _BACKENDS.get(backend)
    if build is None:
        raise NotImplementedError(
            f"Query backend '{backend}' is not supported.  "
            f"Choose from: {', '.join(_BACKENDS)}"
        )
    logger.info("Wiring collaborators backend=%s", backend)
    return build()


@lru_cache
def get_orchestrator() -> QueryOrchestrator:
    c = get_collaborators()
    return QueryOrchestrator(c.query_service, c.template_registry, c.audit_log)


@lru_cache
def get_export_dispatcher() -> ExportDispatcher:
    c = get_collaborators()
    return ExportDispatcher(get_orchestrator(), c.export_service, c.snapshot_store)


def get_template_registry() -> FieldTemplateRegistry:
    return get_collaborators().template_registry
