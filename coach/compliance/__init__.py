"""Compliance Tools - Consent gating for learning data

Philosophy:
    Learning from a user is a privilege the user grants, per purpose,
    and can take back at any moment. When in doubt, don't learn.

Core Principle:
    Consent is read fresh at every decision point and never cached.
    A withdrawal takes effect on the very next call. Any failure to read
    consent is treated exactly like "not granted".

Components:
    consent.py: ConsentSnapshot, get_consent_snapshot, is_learning_enabled
    manager.py: ConsentManager - grant, withdraw, initialize, export
    audit.py: Append-only log of consent changes

Database: data/learning.db (user_consents), data/audit.db (consent_audit_log)
"""

from pathlib import Path

from coach.storage.base import ConsentPurpose


# Path constants
PROJECT_ROOT = Path(__file__).parent.parent.parent
AUDIT_DB_PATH = PROJECT_ROOT / "data" / "audit.db"

# Both must be granted before any learning data is written or processed
LEARNING_PURPOSES = (ConsentPurpose.AI_PROFILING, ConsentPurpose.POLICY_LEARNING)

CONSENT_PURPOSES = {
    ConsentPurpose.AI_PROFILING: {
        "name": "AI profiling",
        "description": "The coach builds a behavioral profile from your activity",
        "legal_basis": "consent",
    },
    ConsentPurpose.POLICY_LEARNING: {
        "name": "Policy learning",
        "description": "The coach learns which suggestions help you from your reactions",
        "legal_basis": "consent",
    },
    ConsentPurpose.BEHAVIORAL_TRACKING: {
        "name": "Behavioral tracking",
        "description": "Pattern detection across habits, tasks and journal",
        "legal_basis": "consent",
    },
    ConsentPurpose.DATA_EXPORT: {
        "name": "Data export",
        "description": "Your data may be exported to files you request",
        "legal_basis": "consent",
    },
}
