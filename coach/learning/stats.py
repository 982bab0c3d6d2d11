"""
Learning Statistics

Stateless aggregation over a user's experiences. Nothing here is cached;
every call recomputes from the records passed in.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable

from coach.storage.base import Experience


TREND_WINDOW = 20


@dataclass
class LearningStats:
    total_experiences: int = 0
    processed_experiences: int = 0
    average_reward: float = 0.0
    learning_enabled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_experiences": self.total_experiences,
            "processed_experiences": self.processed_experiences,
            "average_reward": self.average_reward,
            "learning_enabled": self.learning_enabled,
        }


def summarize_rewards(rewards: Iterable[float | None]) -> tuple[int, int, float]:
    """
    Count and average a reward column.

    Returns:
        (total, processed, average) where average is 0.0 when nothing has
        been processed
    """
    total = 0
    processed: list[float] = []
    for reward in rewards:
        total += 1
        if reward is not None:
            processed.append(reward)
    average = sum(processed) / len(processed) if processed else 0.0
    return total, len(processed), average


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def summarize_experiences(experiences: list[Experience]) -> dict[str, Any]:
    """
    Summarize experiences for analytics.

    Args:
        experiences: Records newest first, as the repository returns them

    Returns:
        dict with counts, action distribution, average reward and the
        recent trend (mean of the last 20 processed rewards minus the mean
        of the 20 before them)
    """
    total, processed, average = summarize_rewards(e.reward for e in experiences)
    distribution = Counter(e.action_type for e in experiences)
    feedback = Counter(e.feedback_type.value for e in experiences)

    rewards = [e.reward for e in experiences if e.reward is not None]
    recent = rewards[:TREND_WINDOW]
    previous = rewards[TREND_WINDOW : TREND_WINDOW * 2]
    trend = _mean(recent) - _mean(previous) if recent and previous else 0.0

    return {
        "total_experiences": total,
        "processed_experiences": processed,
        "average_reward": round(average, 4),
        "action_distribution": dict(distribution),
        "feedback_distribution": dict(feedback),
        "recent_trend": round(trend, 4),
    }
