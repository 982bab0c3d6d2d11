"""
Tool: Nightly Learning
Purpose: Batch-process experiences whose outcome window has closed

Finds unprocessed experiences created between max_age_hours and
min_age_hours ago (default 24-72h) across all users, and runs each through
its owner's LearningLoop. Consent is checked per experience, so a user who
withdrew since recording is skipped.

Usage:
    python -m coach.cli --action nightly

Output:
    {processed, skipped, errors, total_reward, avg_reward, duration_ms}
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any

from coach.learning.config import LearningConfig
from coach.learning.loop import LearningLoop
from coach.logging_config import get_logger
from coach.metrics.base import MetricsProvider
from coach.storage.base import Repositories, utcnow


logger = get_logger(__name__)


async def process_pending_experiences(
    repositories: Repositories,
    metrics: MetricsProvider,
    config: LearningConfig | None = None,
    min_age_hours: float | None = None,
    max_age_hours: float | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """
    Process pending experiences inside the age window.

    Args:
        repositories: Learning stores
        metrics: Canonical metrics provider
        config: Learning configuration (nightly section supplies defaults)
        min_age_hours: Skip experiences younger than this
        max_age_hours: Skip experiences older than this
        limit: Maximum experiences per batch

    Returns:
        dict with processed/skipped/error counts and reward totals. A failure
        on one experience is logged and counted, never raised.
    """
    config = config or LearningConfig()
    nightly = config.nightly
    min_age = nightly.min_age_hours if min_age_hours is None else min_age_hours
    max_age = nightly.max_age_hours if max_age_hours is None else max_age_hours
    limit = nightly.batch_limit if limit is None else limit

    start = time.monotonic()
    now = utcnow()
    pending = await repositories.experiences.list_pending(
        created_after=now - timedelta(hours=max_age),
        created_before=now - timedelta(hours=min_age),
        limit=limit,
    )

    processed = 0
    skipped = 0
    errors = 0
    total_reward = 0.0
    loops: dict[str, LearningLoop] = {}

    for experience in pending:
        loop = loops.get(experience.user_id)
        if loop is None:
            loop = LearningLoop(experience.user_id, repositories, metrics, config)
            loops[experience.user_id] = loop

        try:
            _, reward = await loop.process_with_reward(experience.id)
        except Exception as e:
            errors += 1
            logger.error(
                "nightly_experience_failed",
                user_id=experience.user_id,
                experience_id=experience.id,
                error=str(e),
            )
            continue

        if reward is None:
            skipped += 1
        else:
            processed += 1
            total_reward += reward

    result = {
        "processed": processed,
        "skipped": skipped,
        "errors": errors,
        "total_reward": round(total_reward, 4),
        "avg_reward": round(total_reward / processed, 4) if processed else 0.0,
        "duration_ms": int((time.monotonic() - start) * 1000),
    }
    logger.info("nightly_learning_complete", pending=len(pending), **result)
    return result
