"""
Integration tests -- SQL query service against a seeded SQLite database.
"""
from __future__ import annotations

from datetime import date

import pytest

from tracklens.db.repository import SqlQueryService
from tracklens.pipeline.params import FieldType, QueryParams

D1, D3, D8 = date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8)


@pytest.fixture
def service(seeded):
    return SqlQueryService(seeded)


def _params(kind, selection=(), start=D1, end=D8, **kw):
    return QueryParams(record_kind=kind, selection=selection, start_date=start, end_date=end, **kw)


# ── Custom fields ───────────────────────────────────────

def test_single_field_payload(service):
    payload = service.query_fields(_params("fields", ["Weight"]))
    assert payload["fieldKey"] == "Weight"
    assert payload["fieldType"] == "number"
    assert [b["date"] for b in payload["data"]] == ["2024-01-01", "2024-01-02", "2024-01-08"]
    assert payload["data"][1]["value"] == 71.5
    assert payload["summary"]["overall_sum"] == 213.5
    assert payload["summary"]["total_count"] == 3


def test_weekly_field_buckets(service):
    payload = service.query_fields(_params("fields", ["Weight"], grouping="week"))
    assert [b["date"] for b in payload["data"]] == ["2024-01-01", "2024-01-08"]
    assert payload["data"][0]["avg"] == 70.75
    assert payload["data"][0]["value"] is None


def test_currency_values_parsed(service):
    payload = service.query_fields(_params("fields", ["Spent"]))
    assert [b["sum"] for b in payload["data"]] == [12.5, 7.5]


def test_boolean_field(service):
    payload = service.query_fields(_params("fields", ["Exercised"], grouping="none"))
    assert len(payload["data"]) == 1
    assert payload["data"][0]["trueCount"] == 2
    assert payload["summary"]["overall_false_count"] == 1


def test_multi_field_payload_is_aligned(service):
    payload = service.query_fields(_params("fields", ["Weight", "Spent"]))
    assert payload["fieldKeys"] == ["Weight", "Spent"]
    weight, spent = payload["fields"]
    assert [b["date"] for b in weight["data"]] == [b["date"] for b in spent["data"]]
    assert spent["data"][-1] == {"date": "2024-01-08"}


def test_unknown_field(service):
    with pytest.raises(LookupError):
        service.query_fields(_params("fields", ["Ghost"]))


def test_missing_dates_rejected(service):
    with pytest.raises(ValueError):
        service.query_fields(QueryParams(record_kind="fields", selection=["Weight"]))


# ── Tasks ───────────────────────────────────────────────

def test_tasks_by_day(service):
    payload = service.query_tasks(_params("tasks"))
    assert [b["date"] for b in payload["data"]] == ["2024-01-01", "2024-01-02"]
    assert payload["data"][0]["stats"]["total"] == 2
    assert payload["summary"]["completed"] == 2
    assert payload["summary"]["avg_time_to_complete_minutes"] == 45


@pytest.mark.parametrize("status,expected", [("completed", 2), ("incomplete", 1), ("all", 3)])
def test_tasks_completion_filter(service, status, expected):
    payload = service.query_tasks(_params("tasks", completion_status=status))
    assert payload["summary"]["total"] == expected


# ── Counters & timers ───────────────────────────────────

def test_multi_counter_payload(service):
    payload = service.query_counters(_params("counters", ["Coffee", "Water"]))
    assert payload["counterNames"] == ["Coffee", "Water"]
    coffee, water = payload["counters"]
    assert coffee["counterName"] == "Coffee"
    assert [b["date"] for b in coffee["data"]] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert coffee["data"][2] == {"date": "2024-01-03"}
    assert water["data"][2]["sum"] == 0


def test_single_timer_payload(service):
    payload = service.query_timers(_params("timers", ["Reading"], grouping="month"))
    assert payload["timerName"] == "Reading"
    assert payload["data"][0]["sum"] == 5525
    assert payload["summary"]["overall_max"] == 3725


def test_unknown_counter(service):
    with pytest.raises(LookupError):
        service.query_counters(_params("counters", ["Tea"]))


# ── Registry ────────────────────────────────────────────

def test_templates_in_declared_order(service):
    templates = service.get_custom_field_templates()
    assert [t.key for t in templates] == ["Weight", "Spent", "Exercised", "Mood"]
    assert templates[1].field_type is FieldType.CURRENCY


def test_populated_fields_skip_blank_values(service):
    assert service.get_populated_fields(D3, D3) == [
        {"key": "Exercised", "fieldType": "boolean"},
        {"key": "Mood", "fieldType": "text"},
    ]


def test_populated_counters_need_positive_values(service):
    assert service.get_populated_counters(D1, D3) == ["Coffee", "Water"]
    assert service.get_populated_counters(D3, D3) == []


def test_populated_timers(service):
    assert service.get_populated_timers(D1, D8) == ["Reading"]
