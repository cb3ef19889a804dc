"""
Unit tests -- tracker server client over an httpx.MockTransport.
"""
import json
from datetime import date

import httpx
import pytest

from tracklens.core.errors import ExportError, UpstreamQueryError
from tracklens.pipeline.orchestrator import QueryOrchestrator
from tracklens.pipeline.params import FieldType, QueryParams
from tracklens.services.base import RetentionSettings, ZipFileType
from tracklens.services.http_client import TrackerHttpClient


class Recorder:
    """Serves canned responses keyed by (method, path) and records requests."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        return handler(request) if callable(handler) else handler

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


def _client(routes, token="secret"):
    recorder = Recorder(routes)
    client = TrackerHttpClient(
        base_url="http://tracker.test/", token=token, timeout=5,
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


PARAMS = QueryParams(record_kind="fields", selection=["Weight", "Steps"],
                     start_date=date(2024, 1, 1), end_date=date(2024, 1, 31), grouping="week")


# ── Queries ─────────────────────────────────────────────

def test_query_posts_wire_payload():
    client, rec = _client({("POST", "/api/queries/fields"): httpx.Response(200, json={"fields": []})})
    assert client.query_fields(PARAMS) == {"fields": []}
    assert rec.last_body == {
        "fieldKeys": ["Weight", "Steps"],
        "startDate": "2024-01-01",
        "endDate": "2024-01-31",
        "groupBy": "week",
    }
    assert rec.requests[0].headers["Authorization"] == "Bearer secret"


def test_tasks_query_sends_completion_status():
    params = QueryParams(record_kind="tasks", start_date=date(2024, 1, 1),
                         end_date=date(2024, 1, 2), completion_status="completed")
    client, rec = _client({("POST", "/api/queries/tasks"): httpx.Response(200, json={"data": []})})
    client.query_tasks(params)
    assert rec.last_body["completionStatus"] == "completed"
    assert "fieldKeys" not in rec.last_body


def test_no_token_no_auth_header():
    client, rec = _client({("POST", "/api/queries/timers"): httpx.Response(200, json={})}, token="")
    client.query_timers(QueryParams(record_kind="timers", selection=["Reading"]))
    assert "Authorization" not in rec.requests[0].headers


def test_http_error_becomes_upstream_error():
    client, _ = _client({
        ("POST", "/api/queries/counters"): httpx.Response(500, json={"error": "db exploded"}),
    })
    with pytest.raises(UpstreamQueryError, match="db exploded"):
        client.query_counters(PARAMS)


def test_connection_error_becomes_upstream_error():
    def boom(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = _client({("POST", "/api/queries/fields"): boom})
    with pytest.raises(UpstreamQueryError, match="refused"):
        client.query_fields(PARAMS)


def test_invalid_json_becomes_upstream_error():
    client, _ = _client({("POST", "/api/queries/fields"): httpx.Response(200, text="<html>")})
    with pytest.raises(UpstreamQueryError, match="invalid JSON"):
        client.query_fields(PARAMS)



def test_multi_field_response_padded_to_shared_dates():
    client, _ = _client({("POST", "/api/queries/fields"): httpx.Response(200, json={
        "fieldKeys": ["Weight", "Steps"],
        "fields": [
            {"fieldKey": "Weight", "fieldType": "number",
             "data": [{"date": "2024-01-01", "sum": 10}, {"date": "2024-01-02", "sum": 20}]},
            {"fieldKey": "Steps", "fieldType": "number",
             "data": [{"date": "2024-01-01", "sum": 5}]},
        ],
    })})
    raw = client.query_fields(PARAMS)
    assert raw["fields"][1]["data"] == [{"date": "2024-01-01", "sum": 5}, {"date": "2024-01-02"}]
    assert raw["fieldKeys"] == ["Weight", "Steps"]


def test_partial_dates_combine_through_orchestrator():
    client, _ = _client({("POST", "/api/queries/fields"): httpx.Response(200, json={
        "fields": [
            {"fieldKey": "Weight", "fieldType": "number",
             "data": [{"date": "2024-01-01", "sum": 10, "avg": 10, "count": 1},
                      {"date": "2024-01-02", "sum": 20, "avg": 20, "count": 1}]},
            {"fieldKey": "Steps", "fieldType": "number",
             "data": [{"date": "2024-01-01", "sum": 5, "avg": 5, "count": 1}]},
        ],
    })})
    params = QueryParams(record_kind="fields", selection=["Weight", "Steps"],
                         start_date=date(2024, 1, 1), end_date=date(2024, 1, 2))
    result = QueryOrchestrator(client).run(params)
    assert [p.value for p in result.combined.combined.data] == [15, 20]


def test_malformed_multi_response_left_untouched():
    payload = {"fieldKeys": ["a", "b"], "fields": [None, None]}
    client, _ = _client({("POST", "/api/queries/fields"): httpx.Response(200, json=payload)})
    assert client.query_fields(PARAMS) == payload

# ── Registry ────────────────────────────────────────────

def test_custom_field_templates():
    client, _ = _client({("GET", "/api/custom-field-templates"): httpx.Response(200, json={
        "templates": [{"id": 1, "key": "Weight", "field_type": "number"},
                      {"id": 2, "key": "Mood", "field_type": "text", "extra": 1}],
    })})
    templates = client.get_custom_field_templates()
    assert [t.key for t in templates] == ["Weight", "Mood"]
    assert templates[0].field_type is FieldType.NUMBER


def test_populated_fields_default_to_text():
    client, rec = _client({("POST", "/api/queries/populated-fields"): httpx.Response(200, json={
        "fields": [{"key": "Mood", "fieldType": None}, {"key": "Weight", "fieldType": "number"}],
    })})
    assert client.get_populated_fields(date(2024, 1, 1), date(2024, 1, 7)) == [
        {"key": "Mood", "fieldType": "text"},
        {"key": "Weight", "fieldType": "number"},
    ]
    assert rec.last_body == {"startDate": "2024-01-01", "endDate": "2024-01-07"}


def test_populated_counters():
    client, rec = _client({("POST", "/api/queries/populated-counters"): httpx.Response(200, json={
        "counters": [{"name": "Coffee"}, {"name": "Water"}],
    })})
    assert client.get_populated_counters(date(2024, 1, 1), date(2024, 1, 7)) == ["Coffee", "Water"]
    assert rec.last_body == {"startDate": "2024-01-01", "endDate": "2024-01-07"}


# ── Exports ─────────────────────────────────────────────

def test_export_csv_returns_bytes():
    client, rec = _client({("POST", "/api/exports/csv"): httpx.Response(200, content=b"Date,Value\n")})
    assert client.export_csv(PARAMS.record_kind, PARAMS) == b"Date,Value\n"
    assert rec.last_body["type"] == "fields"
    assert rec.last_body["queryParams"]["fieldKeys"] == ["Weight", "Steps"]


def test_export_failure_is_export_error():
    client, _ = _client({("POST", "/api/exports/excel"): httpx.Response(503, text="busy")})
    with pytest.raises(ExportError) as exc:
        client.export_excel(PARAMS.record_kind, PARAMS)
    assert exc.value.is_upstream is True


def test_excel_missing_route_is_clear_error():
    client, _ = _client({})
    with pytest.raises(ExportError, match="not supported") as exc:
        client.export_excel(PARAMS.record_kind, PARAMS)
    assert exc.value.is_upstream is False


def test_zip_sends_token_in_body():
    client, rec = _client({("POST", "/api/exports/download-zip"): httpx.Response(200, content=b"PK")})
    assert client.export_zip([date(2024, 1, 2)], ZipFileType.BOTH) == b"PK"
    assert rec.last_body == {"dates": ["2024-01-02"], "fileType": "both", "token": "secret"}


# ── Snapshots ───────────────────────────────────────────

def test_available_dates_sorted():
    client, _ = _client({("GET", "/api/exports/available-dates"): httpx.Response(200, json={
        "dates": ["2024-01-03", "2024-01-01"],
    })})
    assert client.available_dates() == [date(2024, 1, 1), date(2024, 1, 3)]


def test_save_and_delete_snapshot():
    client, _ = _client({
        ("POST", "/api/exports/save-snapshot"): httpx.Response(200, json={"date": "2024-01-05"}),
        ("DELETE", "/api/exports/snapshot/2024-01-05"): httpx.Response(200, json={"dates": ["2024-01-01"]}),
    })
    assert client.save_snapshot() == date(2024, 1, 5)
    assert client.delete_snapshot(date(2024, 1, 5)) == [date(2024, 1, 1)]


def test_get_snapshot():
    client, _ = _client({("GET", "/api/exports/snapshot/2024-01-05"): httpx.Response(200, json={
        "snapshot": {"date": "2024-01-05", "tasks": []},
    })})
    assert client.get_snapshot(date(2024, 1, 5))["tasks"] == []


def test_retention_settings_round_trip():
    client, rec = _client({
        ("GET", "/api/exports/retention-settings"): httpx.Response(200, json={"maxCount": 10, "maxDays": 7}),
        ("PUT", "/api/exports/retention-settings"): lambda req: httpx.Response(
            200, json={"success": True, "settings": json.loads(req.content)}
        ),
    })
    current = client.retention_settings()
    assert current == RetentionSettings(max_count=10, max_days=7)
    updated = client.update_retention_settings(RetentionSettings(max_count=3, max_days=9))
    assert rec.last_body == {"maxCount": 3, "maxDays": 9}
    assert updated.max_days == 9


def test_context_manager_closes_client():
    client, _ = _client({})
    with client as c:
        assert c is client
    assert client._client.is_closed
