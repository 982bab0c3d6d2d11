"""
SQLite Learning Store

Local SQLite-backed implementations of the learning repository ports.
All five tables live in one database file (default: data/learning.db).

Tables:
    user_consents: One row per (user, purpose)
    runs: Actions proposed by the coach
    feedback: User reactions, unique per (user, run)
    experiences: Feedback enriched with metrics, reward filled in later
    policy_weights: One aggregate row per (user, action_type)

Every operation opens its own connection and closes it before returning,
so repository instances hold no state besides the database path.
sqlite3 errors are re-raised as StorageError. Each operation is one
transaction: feedback.record writes feedback and experience together, and
experiences.apply_reward writes the reward and the policy weight together.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from coach.metrics.base import MetricSnapshot
from coach.storage.base import (
    ConsentPurpose,
    ConsentRecord,
    ConsentRepository,
    Experience,
    ExperienceRepository,
    Feedback,
    FeedbackRepository,
    FeedbackType,
    PolicyWeight,
    PolicyWeightRepository,
    Repositories,
    Run,
    RunRepository,
    dump_snapshot,
    load_snapshot,
    parse_timestamp,
)
from coach.storage.errors import StorageError


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS user_consents (
        user_id TEXT NOT NULL,
        purpose TEXT NOT NULL,
        granted INTEGER NOT NULL DEFAULT 0,
        consent_version TEXT DEFAULT '1.0',
        granted_at TEXT,
        withdrawn_at TEXT,
        PRIMARY KEY(user_id, purpose)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS runs (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        action_type TEXT NOT NULL,
        confidence REAL DEFAULT 0.0,
        reasoning TEXT DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS feedback (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        feedback_type TEXT NOT NULL CHECK(feedback_type IN ('accepted', 'rejected', 'ignored')),
        action_type TEXT DEFAULT '',
        created_at TEXT NOT NULL,
        UNIQUE(user_id, run_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS experiences (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        run_id TEXT NOT NULL,
        action_type TEXT NOT NULL,
        feedback_type TEXT NOT NULL,
        completed INTEGER NOT NULL DEFAULT 0,
        metrics_before TEXT,
        metrics_after TEXT,
        data_quality REAL DEFAULT 0.0,
        context_vector TEXT,
        reward REAL,
        processed_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS policy_weights (
        user_id TEXT NOT NULL,
        action_type TEXT NOT NULL,
        weight REAL NOT NULL DEFAULT 0.0,
        sample_count INTEGER NOT NULL DEFAULT 0,
        updated_at TEXT NOT NULL,
        PRIMARY KEY(user_id, action_type)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_runs_user ON runs(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_experiences_user ON experiences(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_experiences_pending ON experiences(reward, created_at)",
]


def _ts(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value is not None else None


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get database connection, creating tables if needed."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()
    for statement in SCHEMA:
        cursor.execute(statement)
    conn.commit()
    return conn


class _SQLiteRepository:
    def __init__(self, db_path: Path | str):
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self._db_path)
        except sqlite3.Error as e:
            raise StorageError(operation, str(e)) from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(operation, str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# =============================================================================
# Row converters
# =============================================================================


def _row_to_consent(row: sqlite3.Row) -> ConsentRecord | None:
    try:
        purpose = ConsentPurpose(row["purpose"])
    except ValueError:
        return None
    return ConsentRecord(
        user_id=row["user_id"],
        purpose=purpose,
        granted=bool(row["granted"]),
        version=row["consent_version"] or "1.0",
        granted_at=parse_timestamp(row["granted_at"]),
        withdrawn_at=parse_timestamp(row["withdrawn_at"]),
    )


def _row_to_run(row: sqlite3.Row) -> Run:
    return Run(
        id=row["id"],
        user_id=row["user_id"],
        action_type=row["action_type"],
        confidence=row["confidence"] or 0.0,
        reasoning=row["reasoning"] or "",
        created_at=parse_timestamp(row["created_at"]),
    )


def _row_to_experience(row: sqlite3.Row) -> Experience:
    vector = row["context_vector"]
    return Experience(
        id=row["id"],
        user_id=row["user_id"],
        run_id=row["run_id"],
        action_type=row["action_type"],
        feedback_type=FeedbackType(row["feedback_type"]),
        metrics_before=load_snapshot(row["metrics_before"]) or MetricSnapshot(),
        metrics_after=load_snapshot(row["metrics_after"]),
        data_quality=row["data_quality"] or 0.0,
        context_vector=json.loads(vector) if vector else [],
        completed=bool(row["completed"]),
        reward=row["reward"],
        processed_at=parse_timestamp(row["processed_at"]),
        created_at=parse_timestamp(row["created_at"]),
    )


def _row_to_weight(row: sqlite3.Row) -> PolicyWeight:
    return PolicyWeight(
        user_id=row["user_id"],
        action_type=row["action_type"],
        weight=row["weight"],
        sample_count=row["sample_count"],
        updated_at=parse_timestamp(row["updated_at"]),
    )


# =============================================================================
# Statements (shared by single and paired writes)
# =============================================================================


def _insert_feedback(conn: sqlite3.Connection, feedback: Feedback) -> bool:
    cursor = conn.execute(
        """
        INSERT INTO feedback (run_id, user_id, feedback_type, action_type, created_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id, run_id) DO NOTHING
        """,
        (
            feedback.run_id,
            feedback.user_id,
            feedback.feedback_type.value,
            feedback.action_type,
            _ts(feedback.created_at),
        ),
    )
    return cursor.rowcount == 1


def _insert_experience(conn: sqlite3.Connection, experience: Experience) -> None:
    conn.execute(
        """
        INSERT INTO experiences
        (id, user_id, run_id, action_type, feedback_type, completed, metrics_before,
         metrics_after, data_quality, context_vector, reward, processed_at, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            experience.id,
            experience.user_id,
            experience.run_id,
            experience.action_type,
            experience.feedback_type.value,
            int(experience.completed),
            dump_snapshot(experience.metrics_before),
            dump_snapshot(experience.metrics_after),
            experience.data_quality,
            json.dumps(experience.context_vector),
            experience.reward,
            _ts(experience.processed_at),
            _ts(experience.created_at),
        ),
    )


def _set_reward(
    conn: sqlite3.Connection,
    experience_id: str,
    user_id: str,
    reward: float,
    metrics_after: MetricSnapshot,
    processed_at: datetime,
) -> bool:
    cursor = conn.execute(
        """
        UPDATE experiences
        SET reward = ?, metrics_after = ?, processed_at = ?
        WHERE id = ? AND user_id = ? AND reward IS NULL
        """,
        (reward, dump_snapshot(metrics_after), _ts(processed_at), experience_id, user_id),
    )
    return cursor.rowcount == 1


def _select_weight(conn: sqlite3.Connection, user_id: str, action_type: str) -> PolicyWeight | None:
    row = conn.execute(
        "SELECT * FROM policy_weights WHERE user_id = ? AND action_type = ?",
        (user_id, action_type),
    ).fetchone()
    return _row_to_weight(row) if row else None


def _upsert_weight(conn: sqlite3.Connection, weight: PolicyWeight) -> None:
    conn.execute(
        """
        INSERT INTO policy_weights (user_id, action_type, weight, sample_count, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(user_id, action_type) DO UPDATE SET
            weight = excluded.weight,
            sample_count = excluded.sample_count,
            updated_at = excluded.updated_at
        """,
        (
            weight.user_id,
            weight.action_type,
            weight.weight,
            weight.sample_count,
            _ts(weight.updated_at),
        ),
    )


# =============================================================================
# Repositories
# =============================================================================


class SQLiteConsentRepository(_SQLiteRepository, ConsentRepository):
    async def list_for_user(self, user_id: str) -> list[ConsentRecord]:
        with self._connect("consents.list") as conn:
            rows = conn.execute(
                "SELECT * FROM user_consents WHERE user_id = ?", (user_id,)
            ).fetchall()
        return [r for r in (_row_to_consent(row) for row in rows) if r is not None]

    async def upsert(self, record: ConsentRecord) -> None:
        with self._connect("consents.upsert") as conn:
            conn.execute(
                """
                INSERT INTO user_consents (user_id, purpose, granted, consent_version, granted_at, withdrawn_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, purpose) DO UPDATE SET
                    granted = excluded.granted,
                    consent_version = excluded.consent_version,
                    granted_at = excluded.granted_at,
                    withdrawn_at = excluded.withdrawn_at
                """,
                (
                    record.user_id,
                    record.purpose.value,
                    int(record.granted),
                    record.version,
                    _ts(record.granted_at),
                    _ts(record.withdrawn_at),
                ),
            )


class SQLiteRunRepository(_SQLiteRepository, RunRepository):
    async def get(self, run_id: str, user_id: str) -> Run | None:
        with self._connect("runs.get") as conn:
            row = conn.execute(
                "SELECT * FROM runs WHERE id = ? AND user_id = ?", (run_id, user_id)
            ).fetchone()
        return _row_to_run(row) if row else None

    async def add(self, run: Run) -> None:
        with self._connect("runs.add") as conn:
            conn.execute(
                """
                INSERT INTO runs (id, user_id, action_type, confidence, reasoning, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.user_id,
                    run.action_type,
                    run.confidence,
                    run.reasoning,
                    _ts(run.created_at),
                ),
            )


class SQLiteFeedbackRepository(_SQLiteRepository, FeedbackRepository):
    async def record(self, feedback: Feedback, experience: Experience) -> bool:
        with self._connect("feedback.record") as conn:
            if not _insert_feedback(conn, feedback):
                return False
            _insert_experience(conn, experience)
            return True

    async def get_for_run(self, run_id: str, user_id: str) -> Feedback | None:
        with self._connect("feedback.get") as conn:
            row = conn.execute(
                "SELECT * FROM feedback WHERE run_id = ? AND user_id = ?", (run_id, user_id)
            ).fetchone()
        if row is None:
            return None
        return Feedback(
            run_id=row["run_id"],
            user_id=row["user_id"],
            feedback_type=FeedbackType(row["feedback_type"]),
            action_type=row["action_type"] or "",
            created_at=parse_timestamp(row["created_at"]),
        )


class SQLiteExperienceRepository(_SQLiteRepository, ExperienceRepository):
    async def add(self, experience: Experience) -> None:
        with self._connect("experiences.add") as conn:
            _insert_experience(conn, experience)

    async def get(self, experience_id: str, user_id: str) -> Experience | None:
        with self._connect("experiences.get") as conn:
            row = conn.execute(
                "SELECT * FROM experiences WHERE id = ? AND user_id = ?",
                (experience_id, user_id),
            ).fetchone()
        return _row_to_experience(row) if row else None

    async def list_for_user(self, user_id: str, limit: int | None = None) -> list[Experience]:
        query = "SELECT * FROM experiences WHERE user_id = ? ORDER BY created_at DESC"
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)
        with self._connect("experiences.list") as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_experience(row) for row in rows]

    async def apply_reward(
        self,
        experience_id: str,
        user_id: str,
        reward: float,
        metrics_after: MetricSnapshot,
        processed_at: datetime,
        fold: Callable[[PolicyWeight | None], PolicyWeight],
    ) -> PolicyWeight | None:
        with self._connect("experiences.apply_reward") as conn:
            # The UPDATE takes the write lock, so the weight read below
            # cannot interleave with another writer.
            if not _set_reward(conn, experience_id, user_id, reward, metrics_after, processed_at):
                return None
            row = conn.execute(
                "SELECT action_type FROM experiences WHERE id = ?", (experience_id,)
            ).fetchone()
            updated = fold(_select_weight(conn, user_id, row["action_type"]))
            _upsert_weight(conn, updated)
            return updated

    async def list_pending(
        self, created_after: datetime, created_before: datetime, limit: int
    ) -> list[Experience]:
        with self._connect("experiences.list_pending") as conn:
            rows = conn.execute(
                """
                SELECT * FROM experiences
                WHERE reward IS NULL AND created_at >= ? AND created_at < ?
                ORDER BY created_at
                LIMIT ?
                """,
                (_ts(created_after), _ts(created_before), limit),
            ).fetchall()
        return [_row_to_experience(row) for row in rows]

    async def delete_for_user(self, user_id: str) -> int:
        with self._connect("experiences.delete") as conn:
            cursor = conn.execute("DELETE FROM experiences WHERE user_id = ?", (user_id,))
            return cursor.rowcount

    async def prune(self, user_id: str, keep_last: int) -> int:
        if keep_last < 0:
            raise ValueError(f"keep_last must be >= 0, got {keep_last}")
        with self._connect("experiences.prune") as conn:
            cursor = conn.execute(
                """
                DELETE FROM experiences
                WHERE user_id = ? AND id NOT IN (
                    SELECT id FROM experiences WHERE user_id = ?
                    ORDER BY created_at DESC LIMIT ?
                )
                """,
                (user_id, user_id, keep_last),
            )
            return cursor.rowcount


class SQLitePolicyWeightRepository(_SQLiteRepository, PolicyWeightRepository):
    async def get(self, user_id: str, action_type: str) -> PolicyWeight | None:
        with self._connect("policy_weights.get") as conn:
            return _select_weight(conn, user_id, action_type)

    async def upsert(self, weight: PolicyWeight) -> None:
        with self._connect("policy_weights.upsert") as conn:
            _upsert_weight(conn, weight)

    async def list_for_user(self, user_id: str) -> list[PolicyWeight]:
        with self._connect("policy_weights.list") as conn:
            rows = conn.execute(
                "SELECT * FROM policy_weights WHERE user_id = ? ORDER BY action_type",
                (user_id,),
            ).fetchall()
        return [_row_to_weight(row) for row in rows]

    async def delete_for_user(self, user_id: str) -> int:
        with self._connect("policy_weights.delete") as conn:
            cursor = conn.execute("DELETE FROM policy_weights WHERE user_id = ?", (user_id,))
            return cursor.rowcount


def sqlite_repositories(db_path: Path | str) -> Repositories:
    """Wire all five repositories to one SQLite database file."""
    return Repositories(
        consents=SQLiteConsentRepository(db_path),
        runs=SQLiteRunRepository(db_path),
        feedback=SQLiteFeedbackRepository(db_path),
        experiences=SQLiteExperienceRepository(db_path),
        policy_weights=SQLitePolicyWeightRepository(db_path),
    )
