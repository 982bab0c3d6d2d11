"""
Pydantic models for Learning API request/response types.
"""

from typing import Any

from pydantic import BaseModel, Field

from coach.storage.base import FeedbackType


# =============================================================================
# Request Models
# =============================================================================


class FeedbackRequest(BaseModel):
    """User reaction to a run."""

    run_id: str = Field(..., description="Run the user reacted to")
    feedback_type: FeedbackType = Field(..., description="accepted, rejected or ignored")
    completed: bool = Field(default=False, description="The suggested action was carried out")


class ProcessRequest(BaseModel):
    completed: bool | None = Field(None, description="Override the stored completion flag")


class ConsentUpdateRequest(BaseModel):
    granted: bool = Field(..., description="Grant (true) or withdraw (false)")


class NightlyRequest(BaseModel):
    min_age_hours: float | None = Field(None, ge=0)
    max_age_hours: float | None = Field(None, gt=0)
    limit: int | None = Field(None, ge=1)


# =============================================================================
# Response Models
# =============================================================================


class FeedbackResponse(BaseModel):
    success: bool = Field(..., description="Feedback is recorded")
    user_id: str
    run_id: str


class ProcessResponse(BaseModel):
    success: bool = Field(..., description="Experience is processed")
    experience_id: str


class LearningStatsResponse(BaseModel):
    user_id: str
    total_experiences: int = 0
    processed_experiences: int = 0
    average_reward: float = 0.0
    learning_enabled: bool = False


class ExperienceListResponse(BaseModel):
    experiences: list[dict[str, Any]]
    total: int


class PolicyWeightResponse(BaseModel):
    action_type: str
    weight: float
    sample_count: int
    updated_at: str


class ConsentResponse(BaseModel):
    user_id: str
    consents: dict[str, bool]
    learning_enabled: bool


class ConsentUpdateResponse(BaseModel):
    user_id: str
    purpose: str
    granted: bool
    erased: dict[str, int] = Field(default_factory=dict)


class NightlyResponse(BaseModel):
    processed: int
    skipped: int
    errors: int
    total_reward: float
    avg_reward: float
    duration_ms: int


class ErrorResponse(BaseModel):
    error: str
    code: str | None = None
