"""Tests for coach/metrics/sqlite_provider.py

The provider reads the task and habit tables and derives the canonical
snapshot. A user with no data gets a snapshot of Nones with data_quality 0.
"""

import sqlite3
from datetime import date, timedelta

import pytest

from coach.metrics.sqlite_provider import SQLiteMetricsProvider, get_connection
from coach.storage.errors import StorageError


TODAY = date(2026, 3, 15)


def _day(offset):
    return (TODAY - timedelta(days=offset)).isoformat()


@pytest.fixture
def provider(temp_db):
    return SQLiteMetricsProvider(temp_db, today=TODAY)


@pytest.fixture
def seed(temp_db):
    def _seed(habits=(), tasks=()):
        conn = get_connection(temp_db)
        conn.executemany(
            "INSERT INTO habit_logs (user_id, habit_id, date, completed) VALUES (?, ?, ?, ?)", habits
        )
        conn.executemany(
            "INSERT INTO tasks (id, user_id, status, due_date, deleted_at) VALUES (?, ?, ?, ?, ?)", tasks
        )
        conn.commit()
        conn.close()

    return _seed


class TestSQLiteMetricsProvider:
    @pytest.mark.asyncio
    async def test_no_data(self, provider, mock_user_id):
        snapshot = await provider.get_canonical_metrics(mock_user_id)

        assert snapshot.data_quality == 0.0
        assert snapshot.momentum_index is None
        assert snapshot.habits_rate_7d is None

    @pytest.mark.asyncio
    async def test_habit_rates(self, provider, seed, mock_user_id):
        seed(
            habits=[
                (mock_user_id, "h1", _day(0), 1),
                (mock_user_id, "h1", _day(1), 0),
                (mock_user_id, "h1", _day(10), 1),
                (mock_user_id, "h1", _day(20), 1),
                (mock_user_id, "h1", _day(40), 0),  # outside 30 days
            ]
        )

        snapshot = await provider.get_canonical_metrics(mock_user_id)

        assert snapshot.habits_rate_7d == pytest.approx(0.5)
        assert snapshot.habits_rate_30d == pytest.approx(0.75)
        assert snapshot.data_quality == pytest.approx(0.5)
        assert snapshot.momentum_index == pytest.approx(0.5)
        assert 0.0 <= snapshot.consistency_score <= 1.0

    @pytest.mark.asyncio
    async def test_task_ratios(self, provider, seed, mock_user_id):
        seed(
            tasks=[
                ("t1", mock_user_id, "done", None, None),
                ("t2", mock_user_id, "pending", _day(3), None),  # overdue
                ("t3", mock_user_id, "pending", _day(-3), None),
                ("t4", mock_user_id, "pending", _day(5), "2026-03-01"),  # deleted
            ]
        )

        snapshot = await provider.get_canonical_metrics(mock_user_id)

        assert snapshot.task_completion_rate == pytest.approx(1 / 3)
        assert snapshot.task_overdue_ratio == pytest.approx(1 / 3)
        assert snapshot.habits_rate_7d is None
        assert snapshot.momentum_index == pytest.approx(1 / 3)

    @pytest.mark.asyncio
    async def test_full_quality_with_both_sources(self, provider, seed, mock_user_id, other_user_id):
        seed(
            habits=[(mock_user_id, "h1", _day(0), 1), (other_user_id, "h1", _day(0), 0)],
            tasks=[("t1", mock_user_id, "done", None, None)],
        )

        snapshot = await provider.get_canonical_metrics(mock_user_id)

        assert snapshot.data_quality == 1.0
        assert snapshot.habits_rate_7d == 1.0
        assert snapshot.consistency_score is None

    @pytest.mark.asyncio
    async def test_consistency_perfect_when_rates_equal(self, provider, seed, mock_user_id):
        seed(habits=[(mock_user_id, "h1", _day(i), 1) for i in range(5)])

        snapshot = await provider.get_canonical_metrics(mock_user_id)

        assert snapshot.consistency_score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_read_error_raises_storage_error(self, provider, temp_db, mock_user_id):
        conn = sqlite3.connect(str(temp_db))
        conn.execute("CREATE TABLE tasks (id TEXT)")
        conn.commit()
        conn.close()

        with pytest.raises(StorageError):
            await provider.get_canonical_metrics(mock_user_id)
