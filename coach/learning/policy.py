"""
Policy Weight Aggregation

One weight per (user, action_type), moved toward each new reward by an
exponential moving average:

    weight' = weight + alpha * (reward - weight)

The weight starts at 0.0 and sample_count counts the rewards folded in.
This is a placeholder strategy until ranking uses the weights.

fold_reward is pure; the experience repository calls it inside the same
transaction that writes the reward, so a reward is never stored without
its weight update.
"""

from __future__ import annotations

from functools import partial
from typing import Callable

from coach.storage.base import PolicyWeight, utcnow


DEFAULT_ALPHA = 0.05


def ema_update(weight: float, reward: float, alpha: float = DEFAULT_ALPHA) -> float:
    return weight + alpha * (reward - weight)


def fold_reward(
    current: PolicyWeight | None,
    user_id: str,
    action_type: str,
    reward: float,
    alpha: float = DEFAULT_ALPHA,
) -> PolicyWeight:
    """Return current with reward folded in (a fresh weight when current is None)."""
    previous = current.weight if current else 0.0
    samples = current.sample_count if current else 0

    return PolicyWeight(
        user_id=user_id,
        action_type=action_type,
        weight=ema_update(previous, reward, alpha),
        sample_count=samples + 1,
        updated_at=utcnow(),
    )


def reward_folder(
    user_id: str, action_type: str, reward: float, alpha: float = DEFAULT_ALPHA
) -> Callable[[PolicyWeight | None], PolicyWeight]:
    return partial(fold_reward, user_id=user_id, action_type=action_type, reward=reward, alpha=alpha)
