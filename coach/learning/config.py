from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from coach.learning import CONFIG_PATH, PROJECT_ROOT
from coach.logging_config import get_logger


logger = get_logger(__name__)

DB_PATH_ENV = "COACH_DB_PATH"


# =============================================================================
# LearningConfig (args/learning.yaml)
# =============================================================================


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    path: str = Field(default="data/learning.db")


class RewardConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    metric_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "momentum_index": 1.5,
            "task_overdue_ratio": 1.8,
            "habits_rate_7d": 1.2,
        }
    )
    completion_bonus: float = Field(default=2.0, ge=0.0)
    quality_floor: float = Field(default=0.25, gt=0.0, le=1.0)

    @field_validator("metric_weights")
    @classmethod
    def _non_negative_weights(cls, v: dict[str, float]) -> dict[str, float]:
        negative = [k for k, w in v.items() if w < 0]
        if negative:
            raise ValueError(f"metric weights must be >= 0: {negative}")
        return v


class PolicyConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    alpha: float = Field(default=0.05, gt=0.0, le=1.0)


class NightlyConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    min_age_hours: float = Field(default=24, ge=0)
    max_age_hours: float = Field(default=72, gt=0)
    batch_limit: int = Field(default=500, ge=1)


class RetentionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    keep_last: int = Field(default=500, ge=0)


class LearningConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    reward: RewardConfig = Field(default_factory=RewardConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    nightly: NightlyConfig = Field(default_factory=NightlyConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)


def load_config(path: Path | str | None = None) -> LearningConfig:
    """Load args/learning.yaml, falling back to defaults if it is missing or invalid."""
    yaml_path = Path(path) if path is not None else CONFIG_PATH

    try:
        if yaml_path.exists():
            with open(yaml_path) as f:
                raw = yaml.safe_load(f) or {}
        else:
            raw = {}

        return LearningConfig.model_validate(raw)
    except Exception as e:
        logger.warning("config_validation_failed", path=str(yaml_path), error=str(e))
        return LearningConfig()


def resolve_db_path(config: LearningConfig | None = None) -> Path:
    """Database location: COACH_DB_PATH, else database.path relative to the project root."""
    override = os.environ.get(DB_PATH_ENV)
    if override:
        return Path(override)

    config = config or load_config()
    path = Path(config.database.path)
    return path if path.is_absolute() else PROJECT_ROOT / path
