"""
Reward Computation

Maps a feedback outcome and the behavioral change around it into a single
bounded reward.

    reward = clamp((feedback + completion + metric_delta) * quality, -5, 5)

Feedback base:
    accepted  +1.0
    rejected  -2.0
    ignored   -1.0
    completed +2.0 on top of the above

    Exactly one of accepted/rejected/ignored is expected. If several are
    set their values add up, so all four flags give 1 - 2 - 1 + 2 = 0.

Metric delta:
    Each weighted metric present in both snapshots contributes
    weight * clamp(after - before, -1, 1), with the sign flipped for
    metrics where lower is better. Missing metrics contribute nothing.

Quality:
    data_quality clamped to [quality_floor, 1.0], so poor data shrinks the
    reward toward zero without flipping its sign.

compute_reward is pure and never raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from coach.metrics.base import MetricSnapshot, coerce_metric


REWARD_MIN = -5.0
REWARD_MAX = 5.0

FEEDBACK_REWARDS = {
    "accepted": 1.0,
    "rejected": -2.0,
    "ignored": -1.0,
}
COMPLETION_BONUS = 2.0
QUALITY_FLOOR = 0.25

# Tunable. Calibrate against real outcome data.
METRIC_WEIGHTS = {
    "momentum_index": 1.5,
    "task_overdue_ratio": 1.8,
    "habits_rate_7d": 1.2,
}

HIGHER_IS_BETTER = {
    "momentum_index": True,
    "task_overdue_ratio": False,
    "habits_rate_7d": True,
}


@dataclass
class RewardInput:
    accepted: bool = False
    rejected: bool = False
    ignored: bool = False
    completed: bool = False
    metrics_before: MetricSnapshot | Mapping[str, Any] | None = field(default_factory=MetricSnapshot)
    metrics_after: MetricSnapshot | Mapping[str, Any] | None = field(default_factory=MetricSnapshot)
    data_quality: float | None = 0.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _metric(snapshot: Any, name: str) -> float | None:
    if isinstance(snapshot, (MetricSnapshot, Mapping)):
        return coerce_metric(snapshot.get(name))
    return None


def feedback_reward(inp: RewardInput, completion_bonus: float = COMPLETION_BONUS) -> float:
    """Base reward from the feedback flags alone. Every set flag contributes."""
    base = 0.0
    if inp.accepted:
        base += FEEDBACK_REWARDS["accepted"]
    if inp.rejected:
        base += FEEDBACK_REWARDS["rejected"]
    if inp.ignored:
        base += FEEDBACK_REWARDS["ignored"]
    if inp.completed:
        base += completion_bonus
    return base


def metric_delta_reward(
    before: Any,
    after: Any,
    weights: Mapping[str, float] | None = None,
) -> float:
    """Weighted sum of metric improvements between two snapshots."""
    weights = METRIC_WEIGHTS if weights is None else weights
    total = 0.0
    for name, weight in weights.items():
        b = _metric(before, name)
        a = _metric(after, name)
        if a is None or b is None:
            continue
        delta = a - b
        if not HIGHER_IS_BETTER.get(name, True):
            delta = -delta
        total += weight * _clamp(delta, -1.0, 1.0)
    return total


def quality_factor(data_quality: Any, floor: float = QUALITY_FLOOR) -> float:
    dq = coerce_metric(data_quality)
    if dq is None:
        return floor
    return _clamp(dq, floor, 1.0)


def compute_reward(
    inp: RewardInput,
    weights: Mapping[str, float] | None = None,
    completion_bonus: float = COMPLETION_BONUS,
    quality_floor: float = QUALITY_FLOOR,
) -> float:
    """
    Compute the reward for one experience.

    Args:
        inp: Feedback flags, metric snapshots and data quality
        weights: Per-metric weights, defaults to METRIC_WEIGHTS
        completion_bonus: Added when the action was completed
        quality_floor: Lowest quality multiplier

    Returns:
        Reward in [-5, 5]
    """
    raw = feedback_reward(inp, completion_bonus)
    raw += metric_delta_reward(inp.metrics_before, inp.metrics_after, weights)
    reward = raw * quality_factor(inp.data_quality, quality_floor)
    if not math.isfinite(reward):
        return 0.0
    return _clamp(reward, REWARD_MIN, REWARD_MAX)
