"""Learning Tools - Reward shaping and per-action policy weights

Philosophy:
    Learn from how the user actually reacts, not from what they say they
    want. A suggestion that is accepted and followed through counts for
    more than one that is merely accepted. A rejection costs more than an
    ignored nudge.

Core Principle:
    Nothing is learned without consent. Every operation re-reads the
    user's consent before touching learning data, so a withdrawal takes
    effect on the very next call.

Components:
    reward.py: compute_reward - pure, bounded reward in [-5, 5]
        - Feedback base (accepted, rejected, ignored) plus completion bonus
        - Weighted metric deltas (momentum, overdue ratio, 7-day habits)
        - Data-quality scaling with a floor

    loop.py: LearningLoop - one handle per user
        - record_feedback: persist feedback and an unprocessed experience
        - process_delayed_learning: compute the reward, update the policy weight
        - get_learning_stats: totals, processed count, average reward

    policy.py: Exponential moving average per (user, action_type)
    stats.py: LearningStats and experience summaries
    nightly.py: Batch processing of experiences aged 24-72h
    config.py: LearningConfig loaded from args/learning.yaml

Database: data/learning.db
    - user_consents, runs, feedback, experiences, policy_weights

Configuration: args/learning.yaml
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent.parent
DB_PATH = PROJECT_ROOT / "data" / "learning.db"
CONFIG_PATH = PROJECT_ROOT / "args" / "learning.yaml"

# Actions the coach can propose
ACTION_TYPES = [
    "nudge",
    "reframe",
    "challenge",
    "celebrate",
    "protect",
    "observe",
    "suggest_task",
    "suggest_break",
    "weekly_review",
    "silent",
]
