"""
Shared fixtures -- a throwaway SQLite tracker database per test.

Seeded calendar (2024-01-01 is a Monday):

  fields    Weight (number)   01: 70    02: 71.5   03: blank   08: 72
            Spent (currency)  01: $12.50  02: 7.5
            Exercised (boolean) 01: true  02: false  03: true
            Mood (text)       01: good  02: good  03: tired
  tasks     01: Write report (done, 30 min), Call bank (open)
            02: Gym (done, 60 min)
  counters  Coffee  01: 2   02: 3
            Water   02: 6   03: 0
  timers    Reading 01: 1800 s   02: 3725 s
"""
from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import insert

from tracklens.db.connection import build_engine
from tracklens.db.schema import (
    counter_values,
    counters,
    custom_field_templates,
    daily_custom_fields,
    daily_tasks,
    ensure_schema,
    timer_values,
    timers,
)

D1, D2, D3, D8 = date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 8)
TODAY = date(2024, 1, 10)


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'tracklens.db'}")
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seeded(engine):
    with engine.begin() as conn:
        conn.execute(insert(custom_field_templates), [
            {"key": "Weight", "field_type": "number", "order_index": 0},
            {"key": "Spent", "field_type": "currency", "order_index": 1},
            {"key": "Exercised", "field_type": "boolean", "order_index": 2},
            {"key": "Mood", "field_type": "text", "order_index": 3},
        ])
        conn.execute(insert(daily_custom_fields), [
            {"date": D1, "key": "Weight", "value": "70"},
            {"date": D2, "key": "Weight", "value": "71.5"},
            {"date": D3, "key": "Weight", "value": ""},
            {"date": D8, "key": "Weight", "value": "72"},
            {"date": D1, "key": "Spent", "value": "$12.50"},
            {"date": D2, "key": "Spent", "value": "7.5"},
            {"date": D1, "key": "Exercised", "value": "true"},
            {"date": D2, "key": "Exercised", "value": "false"},
            {"date": D3, "key": "Exercised", "value": "true"},
            {"date": D1, "key": "Mood", "value": "good"},
            {"date": D2, "key": "Mood", "value": "good"},
            {"date": D3, "key": "Mood", "value": "tired"},
        ])
        conn.execute(insert(daily_tasks), [
            {"date": D1, "text": "Write report", "done": True, "order_index": 0,
             "created_at": datetime(2024, 1, 1, 9, 0), "completed_at": datetime(2024, 1, 1, 9, 30)},
            {"date": D1, "text": "Call bank", "done": False, "order_index": 1,
             "created_at": datetime(2024, 1, 1, 10, 0), "completed_at": None},
            {"date": D2, "text": "Gym", "done": True, "order_index": 0,
             "created_at": datetime(2024, 1, 2, 7, 0), "completed_at": datetime(2024, 1, 2, 8, 0)},
        ])
        conn.execute(insert(counters), [{"id": 1, "name": "Coffee"}, {"id": 2, "name": "Water"}])
        conn.execute(insert(counter_values), [
            {"counter_id": 1, "date": D1, "value": 2},
            {"counter_id": 1, "date": D2, "value": 3},
            {"counter_id": 2, "date": D2, "value": 6},
            {"counter_id": 2, "date": D3, "value": 0},
        ])
        conn.execute(insert(timers), [{"id": 1, "name": "Reading"}])
        conn.execute(insert(timer_values), [
            {"timer_id": 1, "date": D1, "seconds": 1800},
            {"timer_id": 1, "date": D2, "seconds": 3725},
        ])
    return engine
