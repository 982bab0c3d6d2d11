"""
Integration test fixtures for the learning API.

Provides fixtures specific to integration testing:
- FastAPI test client with the backend dependency overridden
- SQLite stores on a temporary database
- Run seeding
"""

from datetime import timedelta
from pathlib import Path

import pytest

from coach.metrics.base import MetricSnapshot, StaticMetricsProvider
from coach.storage.base import utcnow
from coach.storage.sqlite import get_connection, sqlite_repositories


# ─────────────────────────────────────────────────────────────────────────────
# API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def api_metrics() -> StaticMetricsProvider:
    return StaticMetricsProvider(default=MetricSnapshot(momentum_index=0.5, data_quality=1.0))


@pytest.fixture
def backend(temp_db: Path, audit_db: Path, api_metrics):
    from coach.api.routes import LearningBackend

    return LearningBackend(
        repositories=sqlite_repositories(temp_db),
        metrics=api_metrics,
        audit_db_path=audit_db,
    )


@pytest.fixture
def test_client(backend):
    """Create a test client with the learning backend pointed at temp stores."""
    from fastapi.testclient import TestClient

    from coach.api.app import create_app
    from coach.api.routes import get_backend

    app = create_app()
    app.dependency_overrides[get_backend] = lambda: backend

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def seed_run(temp_db: Path):
    """Insert a run directly into the learning database."""

    def _seed(user_id: str, run_id: str, action_type: str = "nudge") -> None:
        conn = get_connection(temp_db)
        conn.execute(
            "INSERT INTO runs (id, user_id, action_type, confidence, reasoning, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (run_id, user_id, action_type, 0.8, "", utcnow().isoformat(timespec="microseconds")),
        )
        conn.commit()
        conn.close()

    return _seed


@pytest.fixture
def age_experiences(temp_db: Path):
    """Move every experience of a user back in time."""

    def _age(user_id: str, hours: float) -> None:
        created = (utcnow() - timedelta(hours=hours)).isoformat(timespec="microseconds")
        conn = get_connection(temp_db)
        conn.execute("UPDATE experiences SET created_at = ? WHERE user_id = ?", (created, user_id))
        conn.commit()
        conn.close()

    return _age
