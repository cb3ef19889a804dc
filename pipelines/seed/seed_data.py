"""
Seed data generator -- fills the local tracker database with demo history.

Generates, for every day of the last ``NUM_DAYS`` days:
  - 2-8 tasks (Faker sentences), most of them completed
  - values for a handful of custom fields of every type
  - daily counter totals and timer seconds
  - a snapshot of the day

Writes to ``DATABASE_URL`` (default ``sqlite:///tracklens.db``).
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import date, datetime, timedelta

from faker import Faker
from sqlalchemy import delete, insert

from tracklens.db.connection import get_engine
from tracklens.db.schema import (
    counter_values,
    counters,
    custom_field_templates,
    daily_custom_fields,
    daily_tasks,
    ensure_schema,
    query_logs,
    snapshots,
    timer_values,
    timers,
)
from tracklens.db.snapshots import SqlSnapshotStore

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_DAYS = 120
COMPLETION_RATE = 0.75
FIELD_FILL_RATE = 0.85
SNAPSHOT_DAYS = 14

FIELDS = [
    ("Weight", "number"),
    ("Mood", "text"),
    ("Spent", "currency"),
    ("Exercised", "boolean"),
    ("Meditated", "boolean"),
    ("Bedtime", "time"),
    ("Steps", "number"),
]
MOODS = ["great", "good", "ok", "tired", "stressed"]
COUNTERS = ["Coffee", "Water glasses", "Push-ups"]
TIMERS = ["Reading", "Deep work", "Guitar"]


def _field_value(field_type: str, day_index: int) -> str:
    if field_type == "number":
        return f"{70 + day_index * 0.01 + random.uniform(-1.5, 1.5):.1f}"
    if field_type == "currency":
        return f"{random.uniform(0, 120):.2f}"
    if field_type == "boolean":
        return random.choice(["true", "false"])
    if field_type == "time":
        return f"{random.randint(21, 23)}:{random.choice(['00', '15', '30', '45'])}"
    return random.choice(MOODS)


# ── Generators ───────────────────────────────────────────

def gen_tasks(days: list[date]) -> list[dict]:
    rows = []
    for day in days:
        for order in range(random.randint(2, 8)):
            created = datetime.combine(day, datetime.min.time()) + timedelta(
                hours=random.randint(7, 12), minutes=random.randint(0, 59)
            )
            done = random.random() < COMPLETION_RATE
            rows.append({
                "date": day,
                "text": fake.sentence(nb_words=4).rstrip("."),
                "done": done,
                "created_at": created,
                "completed_at": created + timedelta(minutes=random.randint(5, 480)) if done else None,
                "order_index": order,
            })
    return rows


def gen_field_values(days: list[date]) -> list[dict]:
    rows = []
    for i, day in enumerate(days):
        for key, field_type in FIELDS:
            if random.random() < FIELD_FILL_RATE:
                rows.append({"date": day, "key": key, "value": _field_value(field_type, i)})
    return rows


def gen_tracker_values(days: list[date], names: list[str], fk: str, value_col: str, hi: int) -> list[dict]:
    rows = []
    for tracker_id in range(1, len(names) + 1):
        for day in days:
            rows.append({fk: tracker_id, "date": day, value_col: random.randint(0, hi)})
    return rows


# ── Main ─────────────────────────────────────────────────

def main():
    print("=== TrackLens Seed Data Generator ===")
    engine = get_engine()
    ensure_schema(engine)

    print("Clearing tracker tables ...")
    with engine.begin() as conn:
        for table in [
            counter_values, timer_values, counters, timers,
            daily_custom_fields, custom_field_templates, daily_tasks,
            snapshots, query_logs,
        ]:
            conn.execute(delete(table))

    today = date.today()
    days = [today - timedelta(days=n) for n in range(NUM_DAYS - 1, -1, -1)]

    print("Inserting ...")
    with engine.begin() as conn:
        conn.execute(insert(custom_field_templates), [
            {"key": key, "field_type": ftype, "order_index": i} for i, (key, ftype) in enumerate(FIELDS)
        ])
        conn.execute(insert(counters), [{"id": i + 1, "name": n} for i, n in enumerate(COUNTERS)])
        conn.execute(insert(timers), [{"id": i + 1, "name": n} for i, n in enumerate(TIMERS)])

        tasks = gen_tasks(days)
        fields = gen_field_values(days)
        counter_rows = gen_tracker_values(days, COUNTERS, "counter_id", "value", 12)
        timer_rows = gen_tracker_values(days, TIMERS, "timer_id", "seconds", 5400)
        conn.execute(insert(daily_tasks), tasks)
        conn.execute(insert(daily_custom_fields), fields)
        conn.execute(insert(counter_values), counter_rows)
        conn.execute(insert(timer_values), timer_rows)

    store = SqlSnapshotStore(engine)
    for day in days[-SNAPSHOT_DAYS:]:
        store.save_snapshot(day)

    print(f"\nDone -- seeded {len(days)} days: {len(tasks):,} tasks, {len(fields):,} field values, "
          f"{len(counter_rows):,} counter values, {len(timer_rows):,} timer values, "
          f"{SNAPSHOT_DAYS} snapshots.")


if __name__ == "__main__":
    main()
