"""
Export dispatcher -- replays the orchestrator's last successful query
against the export service, and fronts the snapshot store.

Exports never re-validate: the parameters were already accepted by the
orchestrator, and are forwarded unchanged so the exported file covers
exactly what the user saw.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, TypeVar

from tracklens.core.errors import ExportError
from tracklens.core.logging import get_logger
from tracklens.pipeline.orchestrator import QueryOrchestrator
from tracklens.pipeline.params import QueryParams
from tracklens.services.base import ExportService, RetentionSettings, SnapshotStore, ZipFileType

logger = get_logger(__name__)

T = TypeVar("T")


class ExportDispatcher:
    def __init__(
        self,
        orchestrator: QueryOrchestrator,
        export_service: ExportService,
        snapshot_store: SnapshotStore | None = None,
    ):
        self._orchestrator = orchestrator
        self._exports = export_service
        self._snapshots = snapshot_store

    # ── Query exports ───────────────────────────────────

    def _replay_params(self) -> QueryParams:
        params = self._orchestrator.last_params
        if params is None:
            raise ExportError("Run a query before exporting.")
        return params

    def export_csv(self) -> bytes:
        """CSV of the last successful query."""
        params = self._replay_params()
        logger.info("Exporting CSV | kind=%s | selection=%s", params.record_kind.value, list(params.selection))
        return self._call("CSV export", lambda: self._exports.export_csv(params.record_kind, params))

    def export_excel(self) -> bytes:
        params = self._replay_params()
        logger.info("Exporting Excel | kind=%s | selection=%s", params.record_kind.value, list(params.selection))
        return self._call("Excel export", lambda: self._exports.export_excel(params.record_kind, params))

    def export_zip(self, dates: list[date], file_type: ZipFileType | str) -> bytes:
        """Bundle the snapshots of ``dates`` into one zip archive."""
        if not dates:
            raise ExportError("Select at least one date to export.")
        try:
            ftype = ZipFileType(file_type)
        except ValueError:
            raise ExportError(f"Unknown export file type '{file_type}'") from None
        unique = sorted(set(dates))
        logger.info("Exporting zip | %d date(s) | file_type=%s", len(unique), ftype.value)
        return self._call("Zip export", lambda: self._exports.export_zip(unique, ftype))

    # ── Snapshots ───────────────────────────────────────

    def _store(self) -> SnapshotStore:
        if self._snapshots is None:
            raise ExportError("No snapshot store configured")
        return self._snapshots

    def available_dates(self) -> list[date]:
        store = self._store()
        return self._call("Listing snapshots", store.available_dates)

    def save_snapshot(self) -> date:
        store = self._store()
        saved = self._call("Saving snapshot", store.save_snapshot)
        logger.info("Snapshot saved for %s", saved)
        return saved

    def delete_snapshot(self, day: date) -> list[date]:
        store = self._store()
        remaining = self._call("Deleting snapshot", lambda: store.delete_snapshot(day))
        logger.info("Snapshot %s deleted | %d remaining", day, len(remaining))
        return remaining

    def retention_settings(self) -> RetentionSettings:
        store = self._store()
        return self._call("Reading retention settings", store.retention_settings)

    def update_retention_settings(self, settings: RetentionSettings) -> RetentionSettings:
        store = self._store()
        return self._call(
            "Updating retention settings", lambda: store.update_retention_settings(settings)
        )

    @staticmethod
    def _call(action: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ExportError:
            raise
        except LookupError as exc:
            raise ExportError(f"{action} failed: {exc}") from None
        except Exception as exc:
            logger.exception("%s failed", action)
            raise ExportError(f"{action} failed: {exc}") from exc
