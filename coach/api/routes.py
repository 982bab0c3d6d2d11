"""
Learning and Consent Routes

Endpoints:
- POST /learning/{user_id}/feedback - Record a reaction to a run
- GET /learning/{user_id}/stats - Experience totals and average reward
- GET /learning/{user_id}/experiences - Recent experiences
- GET /learning/{user_id}/summary - Action distribution and reward trend
- GET /learning/{user_id}/weights - Policy weights per action type
- POST /learning/{user_id}/experiences/{experience_id}/process - Compute a reward
- POST /learning/nightly - Process the pending batch
- GET /consent/{user_id} - Current consent snapshot
- GET /consent/{user_id}/export - Consent rows with descriptions
- PUT /consent/{user_id}/{purpose} - Grant or withdraw a purpose

Policy outcomes (consent disabled, unknown run) come back as
success=false with status 200; they are not errors.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from coach.api.models import (
    ConsentResponse,
    ConsentUpdateRequest,
    ConsentUpdateResponse,
    ExperienceListResponse,
    FeedbackRequest,
    FeedbackResponse,
    LearningStatsResponse,
    NightlyRequest,
    NightlyResponse,
    PolicyWeightResponse,
    ProcessRequest,
    ProcessResponse,
)
from coach.compliance.consent import is_learning_enabled
from coach.compliance.manager import ConsentManager
from coach.learning.config import LearningConfig, load_config, resolve_db_path
from coach.learning.loop import LearningLoop
from coach.learning.nightly import process_pending_experiences
from coach.metrics.base import MetricsProvider
from coach.metrics.sqlite_provider import SQLiteMetricsProvider
from coach.storage.base import Repositories
from coach.storage.sqlite import sqlite_repositories


router = APIRouter()


@dataclass
class LearningBackend:
    """Stores and settings a request works against."""

    repositories: Repositories
    metrics: MetricsProvider
    config: LearningConfig = field(default_factory=LearningConfig)
    audit_db_path: Path | None = None

    def loop(self, user_id: str) -> LearningLoop:
        return LearningLoop(user_id, self.repositories, self.metrics, self.config)

    def consent_manager(self, user_id: str) -> ConsentManager:
        return ConsentManager(user_id, self.repositories, audit_db_path=self.audit_db_path)


def get_backend() -> LearningBackend:
    """Default backend: SQLite stores at the configured database path."""
    config = load_config()
    db_path = resolve_db_path(config)
    return LearningBackend(
        repositories=sqlite_repositories(db_path),
        metrics=SQLiteMetricsProvider(db_path),
        config=config,
    )


# =============================================================================
# Learning Endpoints
# =============================================================================


@router.post("/learning/nightly", response_model=NightlyResponse)
async def run_nightly(
    request: NightlyRequest | None = None,
    backend: LearningBackend = Depends(get_backend),
):
    """Process unprocessed experiences in the nightly age window."""
    request = request or NightlyRequest()
    result = await process_pending_experiences(
        backend.repositories,
        backend.metrics,
        backend.config,
        min_age_hours=request.min_age_hours,
        max_age_hours=request.max_age_hours,
        limit=request.limit,
    )
    return NightlyResponse(**result)


@router.post("/learning/{user_id}/feedback", response_model=FeedbackResponse)
async def record_feedback(
    user_id: str,
    request: FeedbackRequest,
    backend: LearningBackend = Depends(get_backend),
):
    """Record a user's reaction to a run."""
    recorded = await backend.loop(user_id).record_feedback(
        request.run_id, request.feedback_type, completed=request.completed
    )
    return FeedbackResponse(success=recorded, user_id=user_id, run_id=request.run_id)


@router.get("/learning/{user_id}/stats", response_model=LearningStatsResponse)
async def get_learning_stats(user_id: str, backend: LearningBackend = Depends(get_backend)):
    stats = await backend.loop(user_id).get_learning_stats()
    return LearningStatsResponse(user_id=user_id, **stats.to_dict())


@router.get("/learning/{user_id}/experiences", response_model=ExperienceListResponse)
async def list_experiences(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    backend: LearningBackend = Depends(get_backend),
):
    """List the user's experiences, newest first."""
    experiences = await backend.loop(user_id).list_experiences(limit=limit)
    return ExperienceListResponse(
        experiences=[e.to_dict() for e in experiences],
        total=len(experiences),
    )


@router.get("/learning/{user_id}/summary")
async def get_learning_summary(
    user_id: str, backend: LearningBackend = Depends(get_backend)
) -> dict[str, Any]:
    return await backend.loop(user_id).summarize()


@router.get("/learning/{user_id}/weights", response_model=list[PolicyWeightResponse])
async def get_policy_weights(user_id: str, backend: LearningBackend = Depends(get_backend)):
    weights = await backend.loop(user_id).get_policy_weights()
    return [
        PolicyWeightResponse(
            action_type=w.action_type,
            weight=w.weight,
            sample_count=w.sample_count,
            updated_at=w.updated_at.isoformat(),
        )
        for w in weights
    ]


@router.post(
    "/learning/{user_id}/experiences/{experience_id}/process",
    response_model=ProcessResponse,
)
async def process_experience(
    user_id: str,
    experience_id: str,
    request: ProcessRequest | None = None,
    backend: LearningBackend = Depends(get_backend),
):
    """Compute and store the reward for one experience."""
    processed = await backend.loop(user_id).process_delayed_learning(
        experience_id, completed=request.completed if request else None
    )
    return ProcessResponse(success=processed, experience_id=experience_id)


# =============================================================================
# Consent Endpoints
# =============================================================================


@router.get("/consent/{user_id}", response_model=ConsentResponse)
async def get_consent(user_id: str, backend: LearningBackend = Depends(get_backend)):
    snapshot = await backend.consent_manager(user_id).get_consents()
    return ConsentResponse(
        user_id=user_id,
        consents=snapshot.to_dict(),
        learning_enabled=is_learning_enabled(snapshot),
    )


@router.get("/consent/{user_id}/export")
async def export_consent(
    user_id: str, backend: LearningBackend = Depends(get_backend)
) -> dict[str, Any]:
    return await backend.consent_manager(user_id).export_consents()


@router.put("/consent/{user_id}/{purpose}", response_model=ConsentUpdateResponse)
async def update_consent(
    user_id: str,
    purpose: str,
    request: ConsentUpdateRequest,
    backend: LearningBackend = Depends(get_backend),
):
    """
    Grant or withdraw consent for one purpose.

    Withdrawing ai_profiling or policy_learning erases the user's
    experiences and policy weights.
    """
    manager = backend.consent_manager(user_id)
    try:
        if request.granted:
            await manager.grant_consent(purpose)
            erased: dict[str, int] = {}
        else:
            result = await manager.withdraw_consent(purpose)
            erased = result["erased"]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ConsentUpdateResponse(
        user_id=user_id, purpose=purpose, granted=request.granted, erased=erased
    )
