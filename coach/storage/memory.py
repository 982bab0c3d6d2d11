"""
In-Memory Learning Store

Dict-backed implementations of the repository ports. State lives on the
repository instances, so every call to memory_repositories() starts empty
and nothing is shared between separately created stores.

Records are copied on the way in and out; callers can never mutate stored
state through a returned object. Paired writes (record, apply_reward) do all
validation before the first dict is touched, so a failure leaves no partial
state.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Callable

from coach.metrics.base import MetricSnapshot
from coach.storage.base import (
    ConsentPurpose,
    ConsentRecord,
    ConsentRepository,
    Experience,
    ExperienceRepository,
    Feedback,
    FeedbackRepository,
    PolicyWeight,
    PolicyWeightRepository,
    Repositories,
    Run,
    RunRepository,
)


class InMemoryConsentRepository(ConsentRepository):
    def __init__(self):
        self._rows: dict[tuple[str, ConsentPurpose], ConsentRecord] = {}

    async def list_for_user(self, user_id: str) -> list[ConsentRecord]:
        return [replace(r) for (uid, _), r in self._rows.items() if uid == user_id]

    async def upsert(self, record: ConsentRecord) -> None:
        self._rows[(record.user_id, record.purpose)] = replace(record)


class InMemoryRunRepository(RunRepository):
    def __init__(self):
        self._rows: dict[str, Run] = {}

    async def get(self, run_id: str, user_id: str) -> Run | None:
        run = self._rows.get(run_id)
        if run is None or run.user_id != user_id:
            return None
        return replace(run)

    async def add(self, run: Run) -> None:
        if run.id in self._rows:
            raise ValueError(f"Run already exists: {run.id}")
        self._rows[run.id] = replace(run)


class InMemoryFeedbackRepository(FeedbackRepository):
    def __init__(self, experiences: InMemoryExperienceRepository | None = None):
        self._rows: dict[tuple[str, str], Feedback] = {}
        self._experiences = experiences if experiences is not None else InMemoryExperienceRepository()

    async def record(self, feedback: Feedback, experience: Experience) -> bool:
        key = (feedback.user_id, feedback.run_id)
        if key in self._rows:
            return False
        # Validate the experience before touching either dict
        self._experiences.check_new(experience)
        self._rows[key] = replace(feedback)
        self._experiences.insert(experience)
        return True

    async def get_for_run(self, run_id: str, user_id: str) -> Feedback | None:
        feedback = self._rows.get((user_id, run_id))
        return replace(feedback) if feedback else None

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryExperienceRepository(ExperienceRepository):
    def __init__(self, policy_weights: InMemoryPolicyWeightRepository | None = None):
        self._rows: dict[str, Experience] = {}
        self._weights = policy_weights if policy_weights is not None else InMemoryPolicyWeightRepository()

    def _copy(self, experience: Experience) -> Experience:
        return replace(experience, context_vector=list(experience.context_vector))

    def check_new(self, experience: Experience) -> None:
        if experience.id in self._rows:
            raise ValueError(f"Experience already exists: {experience.id}")

    def insert(self, experience: Experience) -> None:
        self._rows[experience.id] = self._copy(experience)

    async def add(self, experience: Experience) -> None:
        self.check_new(experience)
        self.insert(experience)

    async def get(self, experience_id: str, user_id: str) -> Experience | None:
        experience = self._rows.get(experience_id)
        if experience is None or experience.user_id != user_id:
            return None
        return self._copy(experience)

    async def list_for_user(self, user_id: str, limit: int | None = None) -> list[Experience]:
        rows = sorted(
            (e for e in self._rows.values() if e.user_id == user_id),
            key=lambda e: e.created_at,
            reverse=True,
        )
        if limit is not None:
            rows = rows[:limit]
        return [self._copy(e) for e in rows]

    async def apply_reward(
        self,
        experience_id: str,
        user_id: str,
        reward: float,
        metrics_after: MetricSnapshot,
        processed_at: datetime,
        fold: Callable[[PolicyWeight | None], PolicyWeight],
    ) -> PolicyWeight | None:
        experience = self._rows.get(experience_id)
        if experience is None or experience.user_id != user_id or experience.processed:
            return None
        updated = fold(await self._weights.get(user_id, experience.action_type))
        self._rows[experience_id] = replace(
            experience, reward=reward, metrics_after=metrics_after, processed_at=processed_at
        )
        await self._weights.upsert(updated)
        return replace(updated)

    async def list_pending(
        self, created_after: datetime, created_before: datetime, limit: int
    ) -> list[Experience]:
        rows = sorted(
            (
                e
                for e in self._rows.values()
                if not e.processed and created_after <= e.created_at < created_before
            ),
            key=lambda e: e.created_at,
        )
        return [self._copy(e) for e in rows[:limit]]

    async def delete_for_user(self, user_id: str) -> int:
        doomed = [k for k, e in self._rows.items() if e.user_id == user_id]
        for key in doomed:
            del self._rows[key]
        return len(doomed)

    async def prune(self, user_id: str, keep_last: int) -> int:
        if keep_last < 0:
            raise ValueError(f"keep_last must be >= 0, got {keep_last}")
        newest_first = await self.list_for_user(user_id)
        doomed = newest_first[keep_last:]
        for experience in doomed:
            del self._rows[experience.id]
        return len(doomed)


class InMemoryPolicyWeightRepository(PolicyWeightRepository):
    def __init__(self):
        self._rows: dict[tuple[str, str], PolicyWeight] = {}

    async def get(self, user_id: str, action_type: str) -> PolicyWeight | None:
        weight = self._rows.get((user_id, action_type))
        return replace(weight) if weight else None

    async def upsert(self, weight: PolicyWeight) -> None:
        self._rows[(weight.user_id, weight.action_type)] = replace(weight)

    async def list_for_user(self, user_id: str) -> list[PolicyWeight]:
        return sorted(
            (replace(w) for (uid, _), w in self._rows.items() if uid == user_id),
            key=lambda w: w.action_type,
        )

    async def delete_for_user(self, user_id: str) -> int:
        doomed = [k for k in self._rows if k[0] == user_id]
        for key in doomed:
            del self._rows[key]
        return len(doomed)


def memory_repositories() -> Repositories:
    """Create a fresh, empty set of in-memory repositories."""
    policy_weights = InMemoryPolicyWeightRepository()
    experiences = InMemoryExperienceRepository(policy_weights)
    return Repositories(
        consents=InMemoryConsentRepository(),
        runs=InMemoryRunRepository(),
        feedback=InMemoryFeedbackRepository(experiences),
        experiences=experiences,
        policy_weights=policy_weights,
    )
