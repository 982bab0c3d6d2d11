"""
Tool: Learning Loop
Purpose: Turn user reactions to coach actions into rewards and policy weights

One LearningLoop per user. The handle only holds its user_id and the
injected stores; consent is re-read on every call, so a withdrawal
blocks the very next operation without restarting anything.

Flow:
    1. record_feedback: consent check -> run lookup -> metrics snapshot
       -> Feedback row + unprocessed Experience, written together
    2. process_delayed_learning (later, scheduler or on demand):
       consent check -> load experience -> fresh metrics -> compute_reward
       -> write reward once, folding it into the policy weight in the same write
    3. get_learning_stats: totals and average reward, consent evaluated fresh

Outcomes:
    - Consent disabled, unknown run, missing experience: False
    - Duplicate feedback, already processed experience: True, nothing written
    - Storage write failures: StorageError propagates

Usage:
    from coach.learning.loop import create_learning_loop

    loop = create_learning_loop("alice")
    await loop.record_feedback("run-123", "accepted")
    stats = await loop.get_learning_stats()

Dependencies:
    - coach.storage (repository ports)
    - coach.metrics (canonical metrics provider)
    - coach.compliance (consent gate)
"""

from __future__ import annotations

import uuid
from typing import Any

from coach.compliance.consent import get_consent_snapshot, is_learning_enabled
from coach.learning.config import LearningConfig, load_config, resolve_db_path
from coach.learning.policy import reward_folder
from coach.learning.reward import RewardInput, compute_reward
from coach.learning.stats import LearningStats, summarize_experiences, summarize_rewards
from coach.logging_config import get_logger
from coach.metrics.base import MetricsProvider, metrics_to_vector
from coach.metrics.sqlite_provider import SQLiteMetricsProvider
from coach.storage.base import (
    Experience,
    Feedback,
    FeedbackType,
    PolicyWeight,
    Repositories,
    utcnow,
)
from coach.storage.sqlite import sqlite_repositories


logger = get_logger(__name__)


def parse_feedback_type(feedback_type: FeedbackType | str) -> FeedbackType:
    try:
        return FeedbackType(feedback_type)
    except ValueError:
        valid = [f.value for f in FeedbackType]
        raise ValueError(f"Invalid feedback type '{feedback_type}'. Must be one of: {valid}") from None


class LearningLoop:
    """Consent-gated learning operations for a single user."""

    def __init__(
        self,
        user_id: str,
        repositories: Repositories,
        metrics: MetricsProvider,
        config: LearningConfig | None = None,
    ):
        self.user_id = user_id
        self._repos = repositories
        self._metrics = metrics
        self._config = config or LearningConfig()
        self._log = logger.bind(user_id=user_id)

    async def learning_enabled(self) -> bool:
        snapshot = await get_consent_snapshot(self.user_id, self._repos.consents)
        return is_learning_enabled(snapshot)

    async def record_feedback(
        self,
        run_id: str,
        feedback_type: FeedbackType | str,
        *,
        completed: bool = False,
    ) -> bool:
        """
        Record the user's reaction to a run.

        Args:
            run_id: Run the user reacted to
            feedback_type: accepted, rejected or ignored
            completed: The suggested action was also carried out

        Returns:
            True if the feedback is recorded (now or by an earlier call),
            False if learning is disabled or the run does not exist

        Raises:
            ValueError: Unknown feedback type
            StorageError: A write failed
        """
        feedback_type = parse_feedback_type(feedback_type)

        if not await self.learning_enabled():
            self._log.info("learning_disabled", operation="record_feedback", run_id=run_id)
            return False

        try:
            run = await self._repos.runs.get(run_id, self.user_id)
        except Exception as e:
            self._log.warning("run_lookup_failed", run_id=run_id, error=str(e))
            return False

        if run is None:
            self._log.info("run_not_found", run_id=run_id)
            return False

        metrics_before = await self._metrics.get_canonical_metrics(self.user_id)
        now = utcnow()

        feedback = Feedback(
            run_id=run.id,
            user_id=self.user_id,
            feedback_type=feedback_type,
            action_type=run.action_type,
            created_at=now,
        )
        experience = Experience(
            id=str(uuid.uuid4()),
            user_id=self.user_id,
            run_id=run.id,
            action_type=run.action_type,
            feedback_type=feedback_type,
            metrics_before=metrics_before,
            data_quality=metrics_before.data_quality or 0.0,
            context_vector=metrics_to_vector(metrics_before),
            completed=completed,
            created_at=now,
        )
        if not await self._repos.feedback.record(feedback, experience):
            self._log.info("duplicate_feedback", run_id=run_id, feedback_type=feedback_type.value)
            return True

        self._log.info(
            "feedback_recorded",
            run_id=run_id,
            experience_id=experience.id,
            action_type=run.action_type,
            feedback_type=feedback_type.value,
        )
        return True

    async def process_delayed_learning(
        self, experience_id: str, *, completed: bool | None = None
    ) -> bool:
        """
        Compute and store the reward of an experience, then update the policy weight.

        Args:
            experience_id: Experience to process
            completed: Override the completion flag stored at recording time

        Returns:
            True if the experience is processed (now or earlier), False if
            learning is disabled or the experience does not exist
        """
        ok, _ = await self.process_with_reward(experience_id, completed=completed)
        return ok

    async def process_with_reward(
        self, experience_id: str, *, completed: bool | None = None
    ) -> tuple[bool, float | None]:
        """
        Same as process_delayed_learning, also returning the reward this
        call wrote (None when nothing was written).
        """
        if not await self.learning_enabled():
            self._log.info("learning_disabled", operation="process", experience_id=experience_id)
            return False, None

        try:
            experience = await self._repos.experiences.get(experience_id, self.user_id)
        except Exception as e:
            self._log.warning("experience_lookup_failed", experience_id=experience_id, error=str(e))
            return False, None

        if experience is None:
            self._log.info("experience_not_found", experience_id=experience_id)
            return False, None

        if experience.processed:
            self._log.debug("experience_already_processed", experience_id=experience_id)
            return True, None

        metrics_after = await self._metrics.get_canonical_metrics(self.user_id)
        feedback = experience.feedback_type
        reward_config = self._config.reward
        reward = compute_reward(
            RewardInput(
                accepted=feedback == FeedbackType.ACCEPTED,
                rejected=feedback == FeedbackType.REJECTED,
                ignored=feedback == FeedbackType.IGNORED,
                completed=experience.completed if completed is None else completed,
                metrics_before=experience.metrics_before,
                metrics_after=metrics_after,
                data_quality=experience.data_quality,
            ),
            weights=reward_config.metric_weights,
            completion_bonus=reward_config.completion_bonus,
            quality_floor=reward_config.quality_floor,
        )

        weight = await self._repos.experiences.apply_reward(
            experience.id,
            self.user_id,
            reward,
            metrics_after,
            utcnow(),
            fold=reward_folder(
                self.user_id, experience.action_type, reward, alpha=self._config.policy.alpha
            ),
        )
        if weight is None:
            # Another caller processed it first; its weight update stands.
            self._log.info("experience_already_processed", experience_id=experience_id)
            return True, None

        self._log.info(
            "experience_processed",
            experience_id=experience_id,
            action_type=experience.action_type,
            reward=round(reward, 4),
            weight=round(weight.weight, 4),
        )
        return True, reward

    async def get_learning_stats(self) -> LearningStats:
        experiences = await self._repos.experiences.list_for_user(self.user_id)
        total, processed, average = summarize_rewards(e.reward for e in experiences)
        return LearningStats(
            total_experiences=total,
            processed_experiences=processed,
            average_reward=average,
            learning_enabled=await self.learning_enabled(),
        )

    async def list_experiences(self, limit: int | None = None) -> list[Experience]:
        return await self._repos.experiences.list_for_user(self.user_id, limit=limit)

    async def summarize(self) -> dict[str, Any]:
        """Experience analytics plus the current policy weights."""
        summary = summarize_experiences(await self.list_experiences())
        summary["policy_weights"] = {
            w.action_type: round(w.weight, 4) for w in await self.get_policy_weights()
        }
        summary["learning_enabled"] = await self.learning_enabled()
        return summary

    async def get_policy_weights(self) -> list[PolicyWeight]:
        return await self._repos.policy_weights.list_for_user(self.user_id)

    async def prune_experiences(self, keep_last: int | None = None) -> int:
        """Delete all but the newest keep_last experiences (default from retention config)."""
        keep_last = self._config.retention.keep_last if keep_last is None else keep_last
        if keep_last < 0:
            raise ValueError(f"keep_last must be >= 0, got {keep_last}")
        deleted = await self._repos.experiences.prune(self.user_id, keep_last)
        if deleted:
            self._log.info("experiences_pruned", deleted=deleted, keep_last=keep_last)
        return deleted


def create_learning_loop(
    user_id: str,
    repositories: Repositories | None = None,
    metrics: MetricsProvider | None = None,
    config: LearningConfig | None = None,
) -> LearningLoop:
    """
    Build a learning loop for one user.

    Every call returns a new, independent handle. Stores default to the
    SQLite database from configuration.
    """
    config = config or load_config()
    if repositories is None or metrics is None:
        db_path = resolve_db_path(config)
        if repositories is None:
            repositories = sqlite_repositories(db_path)
        if metrics is None:
            metrics = SQLiteMetricsProvider(db_path)
    return LearningLoop(user_id, repositories, metrics, config)
