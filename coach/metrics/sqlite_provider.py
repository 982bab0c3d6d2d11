"""
SQLite Metrics Provider

Computes a canonical metric snapshot from the local `tasks` and
`habit_logs` tables. These tables belong to the task and habit features;
this provider only reads them (creating empty ones if the database is new).

Metric definitions:
    habits_rate_7d / habits_rate_30d: completed logs / logged habit-days
    task_completion_rate: done tasks / live tasks
    task_overdue_ratio: open tasks past their due date / live tasks
    momentum_index: mean of habits_rate_7d and task_completion_rate
    consistency_score: 1 - population std-dev of daily habit rates (30d)
    data_quality: share of sources (habits, tasks) with any data
"""

from __future__ import annotations

import sqlite3
from datetime import date, timedelta
from pathlib import Path
from statistics import mean, pstdev

from coach.metrics.base import MetricSnapshot, MetricsProvider
from coach.storage.errors import StorageError


SOURCES = ("habits", "tasks")


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get database connection, creating the source tables if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            due_date TEXT,
            deleted_at TEXT
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS habit_logs (
            user_id TEXT NOT NULL,
            habit_id TEXT NOT NULL,
            date TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY(user_id, habit_id, date)
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_habit_logs_user ON habit_logs(user_id, date)")
    conn.commit()
    return conn


def _rate(rows: list[sqlite3.Row]) -> float | None:
    if not rows:
        return None
    return sum(1 for r in rows if r["completed"]) / len(rows)


def _daily_rates(rows: list[sqlite3.Row]) -> list[float]:
    by_day: dict[str, list[sqlite3.Row]] = {}
    for row in rows:
        by_day.setdefault(row["date"], []).append(row)
    return [_rate(day_rows) for day_rows in by_day.values()]


class SQLiteMetricsProvider(MetricsProvider):
    """Canonical metrics computed from the local productivity database."""

    def __init__(self, db_path: Path | str, today: date | None = None):
        self._db_path = Path(db_path)
        self._today = today

    def _current_day(self) -> date:
        return self._today or date.today()

    async def get_canonical_metrics(self, user_id: str) -> MetricSnapshot:
        today = self._current_day()
        since_7d = (today - timedelta(days=6)).isoformat()
        since_30d = (today - timedelta(days=29)).isoformat()

        try:
            conn = get_connection(self._db_path)
        except sqlite3.Error as e:
            raise StorageError("metrics.connect", str(e)) from e
        try:
            logs_30d = conn.execute(
                "SELECT date, completed FROM habit_logs WHERE user_id = ? AND date >= ? AND date <= ?",
                (user_id, since_30d, today.isoformat()),
            ).fetchall()
            tasks = conn.execute(
                "SELECT status, due_date FROM tasks WHERE user_id = ? AND deleted_at IS NULL",
                (user_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError("metrics.read", str(e)) from e
        finally:
            conn.close()

        logs_7d = [r for r in logs_30d if r["date"] >= since_7d]
        habits_rate_7d = _rate(logs_7d)
        habits_rate_30d = _rate(logs_30d)

        daily = _daily_rates(logs_30d)
        consistency = max(0.0, 1.0 - pstdev(daily)) if len(daily) >= 2 else None

        task_completion_rate = None
        task_overdue_ratio = None
        if tasks:
            done = sum(1 for t in tasks if t["status"] == "done")
            overdue = sum(
                1
                for t in tasks
                if t["status"] != "done" and t["due_date"] and t["due_date"][:10] < today.isoformat()
            )
            task_completion_rate = done / len(tasks)
            task_overdue_ratio = overdue / len(tasks)

        momentum_parts = [v for v in (habits_rate_7d, task_completion_rate) if v is not None]
        momentum = mean(momentum_parts) if momentum_parts else None

        available = int(bool(logs_30d)) + int(bool(tasks))

        return MetricSnapshot(
            habits_rate_7d=habits_rate_7d,
            habits_rate_30d=habits_rate_30d,
            task_completion_rate=task_completion_rate,
            task_overdue_ratio=task_overdue_ratio,
            momentum_index=momentum,
            consistency_score=consistency,
            data_quality=available / len(SOURCES),
        )
