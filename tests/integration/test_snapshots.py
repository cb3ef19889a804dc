"""
Integration tests -- snapshot store and retention.
``today`` is pinned to 2024-01-10.
"""
from __future__ import annotations

from datetime import date

import pytest

from tracklens.db.snapshots import SqlSnapshotStore
from tracklens.services.base import RetentionSettings

D1, D2, D3 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)
TODAY = date(2024, 1, 10)


@pytest.fixture
def store(seeded):
    return SqlSnapshotStore(seeded, today=lambda: TODAY)


def test_snapshot_captures_the_day(store):
    store.save_snapshot(D1)
    state = store.get_snapshot(D1)
    assert state["date"] == "2024-01-01"
    assert [t["text"] for t in state["tasks"]] == ["Write report", "Call bank"]
    assert state["tasks"][0]["done"] is True
    assert state["tasks"][0]["completedAt"] == "2024-01-01T09:30:00"
    assert state["customFields"] == {
        "Exercised": "true", "Mood": "good", "Spent": "$12.50", "Weight": "70",
    }
    assert state["counters"] == {"Coffee": 2}
    assert state["timers"] == {"Reading": 1800}


def test_save_defaults_to_today(store):
    assert store.save_snapshot() == TODAY
    assert store.get_snapshot(TODAY)["tasks"] == []


def test_save_replaces_same_date(store):
    store.save_snapshot(D1)
    store.save_snapshot(D1)
    assert store.available_dates() == [D1]


def test_available_dates_ascending(store):
    for day in (D3, D1, D2):
        store.save_snapshot(day)
    assert store.available_dates() == [D1, D2, D3]


def test_missing_snapshot(store):
    assert store.get_snapshot(D1) is None


def test_delete_returns_remaining(store):
    store.save_snapshot(D1)
    store.save_snapshot(D2)
    assert store.delete_snapshot(D1) == [D2]


def test_delete_unknown_date(store):
    with pytest.raises(LookupError):
        store.delete_snapshot(D1)


# ── Retention ───────────────────────────────────────────

def test_retention_defaults(store):
    settings = store.retention_settings()
    assert settings.max_count >= 1
    assert settings.max_days >= 1


def test_update_persists(store, seeded):
    store.update_retention_settings(RetentionSettings(max_count=7, max_days=60))
    store.update_retention_settings(RetentionSettings(max_count=8, max_days=60))
    reopened = SqlSnapshotStore(seeded, today=lambda: TODAY)
    assert reopened.retention_settings() == RetentionSettings(max_count=8, max_days=60)


def test_count_limit_keeps_newest(store):
    for day in (D1, D2, D3):
        store.save_snapshot(day)
    store.update_retention_settings(RetentionSettings(max_count=2, max_days=60))
    assert store.available_dates() == [D2, D3]


def test_age_limit_drops_old(store):
    for day in (D1, D2, D3):
        store.save_snapshot(day)
    store.update_retention_settings(RetentionSettings(max_count=10, max_days=8))
    # cutoff is 2024-01-02: strictly older snapshots go
    assert store.available_dates() == [D2, D3]


def test_retention_applied_on_save(store):
    store.update_retention_settings(RetentionSettings(max_count=1, max_days=60))
    store.save_snapshot(D1)
    store.save_snapshot(D2)
    assert store.available_dates() == [D2]
