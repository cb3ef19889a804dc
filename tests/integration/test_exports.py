"""
Integration tests -- local CSV and zip exports.
"""
from __future__ import annotations

import csv
import io
from datetime import date
from zipfile import ZipFile

import pandas as pd
import pytest
import yaml

from tracklens.core.errors import ExportError
from tracklens.db.exports import LocalExportService, format_duration, format_value
from tracklens.db.snapshots import SqlSnapshotStore
from tracklens.pipeline.params import FieldType, QueryParams, RecordKind
from tracklens.services.base import ZipFileType

D1, D2, D8 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 8)


@pytest.fixture
def snapshots(seeded):
    store = SqlSnapshotStore(seeded, today=lambda: date(2024, 1, 10))
    store.save_snapshot(D1)
    store.save_snapshot(D2)
    return store


@pytest.fixture
def exports(seeded, snapshots):
    return LocalExportService(seeded, snapshot_store=snapshots)


def _rows(content: bytes) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content.decode("utf-8"))))


def _params(kind, selection=()):
    return QueryParams(record_kind=kind, selection=selection, start_date=D1, end_date=D8)


# ── Formatting ──────────────────────────────────────────

@pytest.mark.parametrize("value,ftype,expected", [
    (None, None, ""),
    (12.5, FieldType.CURRENCY, "$12.50"),
    (True, FieldType.BOOLEAN, "true"),
    (72.0, FieldType.NUMBER, 72),
    (71.5, FieldType.NUMBER, 71.5),
    ("good", FieldType.TEXT, "good"),
])
def test_format_value(value, ftype, expected):
    assert format_value(value, ftype) == expected


@pytest.mark.parametrize("seconds,expected", [
    (0, "0s"), (59, "59s"), (60, "1m"), (3600, "1h"), (3725, "1h 2m 5s"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


# ── Query CSV ───────────────────────────────────────────

def test_tasks_csv(exports):
    rows = _rows(exports.export_csv(RecordKind.TASKS, _params("tasks")))
    assert rows[0] == ["Date", "Task", "Status", "Created At", "Completed At", "Time to Complete (min)"]
    assert rows[1] == ["2024-01-01", "Write report", "Completed",
                       "2024-01-01 09:00:00", "2024-01-01 09:30:00", "30"]
    assert rows[2][2:] == ["Incomplete", "2024-01-01 10:00:00", "", ""]
    assert len(rows) == 4


def test_single_field_csv_formats_currency(exports):
    rows = _rows(exports.export_csv(RecordKind.FIELDS, _params("fields", ["Spent"])))
    assert rows == [
        ["Date", "Field Name", "Value"],
        ["2024-01-01", "Spent", "$12.50"],
        ["2024-01-02", "Spent", "$7.50"],
    ]


def test_boolean_field_csv(exports):
    rows = _rows(exports.export_csv(RecordKind.FIELDS, _params("fields", ["Exercised"])))
    assert [r[2] for r in rows[1:]] == ["true", "false", "true"]


def test_multi_field_csv_matrix(exports):
    rows = _rows(exports.export_csv(RecordKind.FIELDS, _params("fields", ["Weight", "Mood"])))
    assert rows == [
        ["Date", "Weight", "Mood"],
        ["2024-01-01", "70", "good"],
        ["2024-01-02", "71.5", "good"],
        ["2024-01-03", "", "tired"],
        ["2024-01-08", "72", ""],
    ]


def test_timer_csv(exports):
    rows = _rows(exports.export_csv(RecordKind.TIMERS, _params("timers", ["Reading"])))
    assert rows[0] == ["Date", "Timer Name", "Value"]
    assert rows[2] == ["2024-01-02", "Reading", "3725"]


def test_empty_range_csv_has_header_only(exports):
    params = QueryParams(record_kind="fields", selection=["Weight"],
                         start_date=date(2023, 1, 1), end_date=date(2023, 1, 31))
    assert _rows(exports.export_csv(RecordKind.FIELDS, params)) == [["Date", "Field Name", "Value"]]


def test_excel_needs_tracker_server(exports):
    with pytest.raises(ExportError, match="tracker server"):
        exports.export_excel(RecordKind.FIELDS, _params("fields", ["Weight"]))


# ── Snapshot zip ────────────────────────────────────────

def _zip(content: bytes) -> ZipFile:
    return ZipFile(io.BytesIO(content))


def test_markdown_zip(exports):
    archive = _zip(exports.export_zip([D2, D1], ZipFileType.MARKDOWN))
    assert sorted(archive.namelist()) == ["snapshot_2024-01-01.md", "snapshot_2024-01-02.md"]

    text = archive.read("snapshot_2024-01-01.md").decode()
    _, front, body = text.split("---\n", 2)
    meta = yaml.safe_load(front)
    assert meta["date"] == "2024-01-01"
    assert meta["tasks_total"] == 2
    assert meta["timers"]["Reading"] == {"seconds": 1800, "formatted": "30m"}
    assert "# Daily Journal - 2024-01-01" in body
    assert "- [x] Write report" in body
    assert "- [ ] Call bank" in body
    assert "- **Spent**: $12.50" in body


def test_csv_zip(exports):
    archive = _zip(exports.export_zip([D1, D2], ZipFileType.CSV))
    assert archive.namelist() == ["snapshots_combined.csv"]
    df = pd.read_csv(io.BytesIO(archive.read("snapshots_combined.csv")))
    assert list(df["Date"]) == ["2024-01-01", "2024-01-02"]
    assert list(df["Completed Tasks"]) == [1, 1]
    assert df.loc[1, "Timers"] == "Reading: 1h 2m 5s"


def test_missing_dates_skipped(exports):
    archive = _zip(exports.export_zip([D1, date(2024, 1, 5)], "markdown"))
    assert archive.namelist() == ["snapshot_2024-01-01.md"]


def test_no_snapshot_found(exports):
    with pytest.raises(ExportError):
        exports.export_zip([date(2024, 1, 5)], ZipFileType.MARKDOWN)


@pytest.mark.parametrize("ftype", [ZipFileType.PDF, ZipFileType.BOTH, ZipFileType.ALL])
def test_pdf_needs_tracker_server(exports, ftype):
    with pytest.raises(ExportError):
        exports.export_zip([D1], ftype)
