"""Shared test fixtures for coach learning tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- Standard test user ids
- In-memory and SQLite repositories
- Consent and run seeding helpers

Usage:
    @pytest.mark.asyncio
    async def test_something(repos, grant_learning, mock_user_id):
        await grant_learning(mock_user_id)
        ...
"""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from coach.learning.config import LearningConfig
from coach.metrics.base import MetricSnapshot, StaticMetricsProvider
from coach.storage import memory_repositories, sqlite_repositories
from coach.storage.base import ConsentPurpose, ConsentRecord, Run


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent
COACH_DIR = PROJECT_ROOT / "coach"


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


@pytest.fixture
def audit_db(tmp_path: Path) -> Path:
    """Location for a throwaway consent audit database."""
    return tmp_path / "audit.db"


# ─────────────────────────────────────────────────────────────────────────────
# User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_user_id() -> str:
    """Standard test user ID."""
    return "test_user_123"


@pytest.fixture
def other_user_id() -> str:
    return "other_user_456"


# ─────────────────────────────────────────────────────────────────────────────
# Store Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def repos():
    """Fresh in-memory repositories."""
    return memory_repositories()


@pytest.fixture
def sqlite_repos(temp_db: Path):
    return sqlite_repositories(temp_db)


@pytest.fixture
def metrics() -> StaticMetricsProvider:
    """Metrics provider with full data quality and no measured KPIs."""
    return StaticMetricsProvider(default=MetricSnapshot(data_quality=1.0))


@pytest.fixture
def learning_config() -> LearningConfig:
    return LearningConfig()


# ─────────────────────────────────────────────────────────────────────────────
# Seeding Helpers
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def grant_learning(repos):
    """Async helper granting both learning purposes to a user."""

    async def _grant(user_id: str, store=None) -> None:
        store = store or repos
        for purpose in (ConsentPurpose.AI_PROFILING, ConsentPurpose.POLICY_LEARNING):
            await store.consents.upsert(ConsentRecord(user_id=user_id, purpose=purpose, granted=True))

    return _grant


@pytest.fixture
def add_run(repos):
    """Async helper creating a run for a user."""

    async def _add(user_id: str, run_id: str, action_type: str = "nudge", store=None) -> Run:
        store = store or repos
        run = Run(id=run_id, user_id=user_id, action_type=action_type, confidence=0.8)
        await store.runs.add(run)
        return run

    return _add
