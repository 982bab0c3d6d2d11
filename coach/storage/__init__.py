"""Learning Storage - Records, repository ports and their implementations

Components:
    base.py: Record dataclasses (Run, Feedback, Experience, PolicyWeight,
             ConsentRecord), vocabularies and the repository ABCs
    sqlite.py: SQLite implementations, one database file for all tables
    memory.py: Dict-backed implementations for local runs and tests
    errors.py: StorageError

Usage:
    from coach.storage import sqlite_repositories

    repos = sqlite_repositories("data/learning.db")
    run = await repos.runs.get("run-123", "alice")
"""

from .base import (
    ConsentPurpose,
    ConsentRecord,
    ConsentRepository,
    Experience,
    ExperienceRepository,
    Feedback,
    FeedbackRepository,
    FeedbackType,
    PolicyWeight,
    PolicyWeightRepository,
    Repositories,
    Run,
    RunRepository,
    utcnow,
)
from .errors import StorageError
from .memory import memory_repositories
from .sqlite import sqlite_repositories


__all__ = [
    "ConsentPurpose",
    "ConsentRecord",
    "ConsentRepository",
    "Experience",
    "ExperienceRepository",
    "Feedback",
    "FeedbackRepository",
    "FeedbackType",
    "PolicyWeight",
    "PolicyWeightRepository",
    "Repositories",
    "Run",
    "RunRepository",
    "StorageError",
    "memory_repositories",
    "sqlite_repositories",
    "utcnow",
]
