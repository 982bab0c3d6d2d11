"""Tests for coach/learning/stats.py"""

import pytest

from coach.learning.stats import LearningStats, summarize_experiences, summarize_rewards
from coach.storage.base import Experience, FeedbackType


def _exp(i, reward=None, action_type="nudge", feedback=FeedbackType.ACCEPTED):
    return Experience(
        id=f"e{i}",
        user_id="u",
        run_id=f"r{i}",
        action_type=action_type,
        feedback_type=feedback,
        reward=reward,
    )


class TestSummarizeRewards:
    def test_mixed_rewards(self):
        total, processed, average = summarize_rewards([2, 1, -1, None])

        assert total == 4
        assert processed == 3
        assert average == pytest.approx(2 / 3)

    def test_empty_is_zero_not_nan(self):
        assert summarize_rewards([]) == (0, 0, 0.0)

    def test_only_unprocessed(self):
        assert summarize_rewards([None, None]) == (2, 0, 0.0)

    def test_processed_never_exceeds_total(self):
        total, processed, _ = summarize_rewards([0.0, None, 0.0])
        assert processed <= total
        assert processed == 2


class TestSummarizeExperiences:
    def test_distributions(self):
        experiences = [
            _exp(1, 1.0, "nudge"),
            _exp(2, None, "celebrate", FeedbackType.IGNORED),
            _exp(3, -2.0, "nudge", FeedbackType.REJECTED),
        ]

        summary = summarize_experiences(experiences)

        assert summary["total_experiences"] == 3
        assert summary["processed_experiences"] == 2
        assert summary["average_reward"] == pytest.approx(-0.5)
        assert summary["action_distribution"] == {"nudge": 2, "celebrate": 1}
        assert summary["feedback_distribution"] == {"accepted": 1, "ignored": 1, "rejected": 1}

    def test_recent_trend_compares_last_twenty_with_previous(self):
        # Newest first: 20 rewards of 2.0, then 20 of 0.5
        experiences = [_exp(i, 2.0) for i in range(20)] + [_exp(20 + i, 0.5) for i in range(20)]

        summary = summarize_experiences(experiences)

        assert summary["recent_trend"] == pytest.approx(1.5)

    def test_trend_needs_two_windows(self):
        summary = summarize_experiences([_exp(i, 1.0) for i in range(10)])

        assert summary["recent_trend"] == 0.0

    def test_empty(self):
        summary = summarize_experiences([])

        assert summary["total_experiences"] == 0
        assert summary["average_reward"] == 0.0
        assert summary["action_distribution"] == {}


def test_learning_stats_to_dict():
    stats = LearningStats(total_experiences=4, processed_experiences=3, average_reward=0.5, learning_enabled=True)

    assert stats.to_dict() == {
        "total_experiences": 4,
        "processed_experiences": 3,
        "average_reward": 0.5,
        "learning_enabled": True,
    }
