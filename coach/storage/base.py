"""
Learning Data Records and Repository Ports

Data structures and abstract repositories for everything the learning loop
reads or writes. The loop only talks to these interfaces; concrete stores
(SQLite, in-memory) live beside this module.

Design Principles:
- Async-first so remote stores can be dropped in without touching callers
- Every query is scoped by user_id; there are no cross-user reads except
  the nightly pending-experience scan
- Conditional writes report whether they took effect instead of raising
- Writes that belong together (feedback + experience, reward + weight)
  go through one repository call so they land in one transaction
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Callable

from coach.metrics.base import MetricSnapshot


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class ConsentPurpose(StrEnum):
    """Processing purposes a user can consent to."""

    AI_PROFILING = "ai_profiling"
    POLICY_LEARNING = "policy_learning"
    BEHAVIORAL_TRACKING = "behavioral_tracking"
    DATA_EXPORT = "data_export"


class FeedbackType(StrEnum):
    """User reaction to a proposed action."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"


@dataclass
class ConsentRecord:
    """One row of the consent store. Absence of a row means "not granted"."""

    user_id: str
    purpose: ConsentPurpose
    granted: bool
    version: str = "1.0"
    granted_at: datetime | None = None
    withdrawn_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "purpose": self.purpose.value,
            "granted": self.granted,
            "version": self.version,
            "granted_at": self.granted_at.isoformat() if self.granted_at else None,
            "withdrawn_at": self.withdrawn_at.isoformat() if self.withdrawn_at else None,
        }


@dataclass
class Run:
    """An action proposed by the coach. Immutable once created."""

    id: str
    user_id: str
    action_type: str
    confidence: float = 0.0
    reasoning: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action_type": self.action_type,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Feedback:
    """A recorded user reaction to a run. Append-only."""

    run_id: str
    user_id: str
    feedback_type: FeedbackType
    action_type: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Experience:
    """
    A feedback event enriched with behavioral metrics, pending reward.

    Created unprocessed (reward is None). Processing sets reward,
    metrics_after and processed_at exactly once.
    """

    id: str
    user_id: str
    run_id: str
    action_type: str
    feedback_type: FeedbackType
    metrics_before: MetricSnapshot = field(default_factory=MetricSnapshot)
    metrics_after: MetricSnapshot | None = None
    data_quality: float = 0.0
    context_vector: list[float] = field(default_factory=list)
    completed: bool = False
    reward: float | None = None
    processed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def processed(self) -> bool:
        return self.reward is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "run_id": self.run_id,
            "action_type": self.action_type,
            "feedback_type": self.feedback_type.value,
            "metrics_before": self.metrics_before.to_dict(),
            "metrics_after": self.metrics_after.to_dict() if self.metrics_after else None,
            "data_quality": self.data_quality,
            "context_vector": self.context_vector,
            "completed": self.completed,
            "reward": self.reward,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PolicyWeight:
    """Aggregated reward statistic for one (user, action_type)."""

    user_id: str
    action_type: str
    weight: float = 0.0
    sample_count: int = 0
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "action_type": self.action_type,
            "weight": self.weight,
            "sample_count": self.sample_count,
            "updated_at": self.updated_at.isoformat(),
        }


def dump_snapshot(snapshot: MetricSnapshot | None) -> str | None:
    return json.dumps(snapshot.to_dict()) if snapshot is not None else None


def load_snapshot(raw: str | None) -> MetricSnapshot | None:
    if raw is None:
        return None
    try:
        return MetricSnapshot.from_dict(json.loads(raw))
    except (json.JSONDecodeError, TypeError):
        return MetricSnapshot()


# =============================================================================
# Repository Ports
# =============================================================================


class ConsentRepository(ABC):
    """Read/write access to the per-purpose consent rows."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[ConsentRecord]:
        pass

    @abstractmethod
    async def upsert(self, record: ConsentRecord) -> None:
        pass


class RunRepository(ABC):
    """Runs are written by the proposal engine; the loop only looks them up."""

    @abstractmethod
    async def get(self, run_id: str, user_id: str) -> Run | None:
        pass

    @abstractmethod
    async def add(self, run: Run) -> None:
        pass


class FeedbackRepository(ABC):
    @abstractmethod
    async def record(self, feedback: Feedback, experience: Experience) -> bool:
        """
        Insert feedback for a run together with the experience derived from it.

        Both rows are written or neither is.

        Returns:
            True if the rows were created, False if feedback for the same
            (user_id, run_id) already existed. Nothing is written in the
            second case.
        """
        pass

    @abstractmethod
    async def get_for_run(self, run_id: str, user_id: str) -> Feedback | None:
        pass


class ExperienceRepository(ABC):
    @abstractmethod
    async def add(self, experience: Experience) -> None:
        pass

    @abstractmethod
    async def get(self, experience_id: str, user_id: str) -> Experience | None:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int | None = None) -> list[Experience]:
        """Experiences for user_id, newest first."""
        pass

    @abstractmethod
    async def apply_reward(
        self,
        experience_id: str,
        user_id: str,
        reward: float,
        metrics_after: MetricSnapshot,
        processed_at: datetime,
        fold: Callable[[PolicyWeight | None], PolicyWeight],
    ) -> PolicyWeight | None:
        """
        Set the reward of an unprocessed experience and fold it into the
        policy weight of its action type, in one transaction.

        fold receives the stored weight (None if there is none yet) and
        returns the weight to store. If fold raises, nothing is written.

        Returns:
            The stored weight, or None if the experience was missing or
            already processed (nothing written).
        """
        pass

    @abstractmethod
    async def list_pending(
        self, created_after: datetime, created_before: datetime, limit: int
    ) -> list[Experience]:
        """Unprocessed experiences of all users created inside the window, oldest first."""
        pass

    @abstractmethod
    async def delete_for_user(self, user_id: str) -> int:
        pass

    @abstractmethod
    async def prune(self, user_id: str, keep_last: int) -> int:
        """Delete all but the keep_last newest experiences. Returns rows deleted."""
        pass


class PolicyWeightRepository(ABC):
    @abstractmethod
    async def get(self, user_id: str, action_type: str) -> PolicyWeight | None:
        pass

    @abstractmethod
    async def upsert(self, weight: PolicyWeight) -> None:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[PolicyWeight]:
        pass

    @abstractmethod
    async def delete_for_user(self, user_id: str) -> int:
        pass


@dataclass
class Repositories:
    """The five stores the learning loop is wired to."""

    consents: ConsentRepository
    runs: RunRepository
    feedback: FeedbackRepository
    experiences: ExperienceRepository
    policy_weights: PolicyWeightRepository
