"""
Consent Gate

Decides whether learning data may be persisted or processed for a user.

The snapshot is fail-closed: a store error, an empty result, or a purpose
with no row all read as "not granted". It is derived fresh on every call
and must never be memoized.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from coach.logging_config import get_logger
from coach.storage.base import ConsentPurpose, ConsentRepository


logger = get_logger(__name__)


@dataclass(frozen=True)
class ConsentSnapshot:
    """Per-purpose grant map for one user at one instant."""

    ai_profiling: bool = False
    policy_learning: bool = False
    behavioral_tracking: bool = False
    data_export: bool = False

    @classmethod
    def denied(cls) -> ConsentSnapshot:
        return cls()

    def granted(self, purpose: ConsentPurpose | str) -> bool:
        return getattr(self, ConsentPurpose(purpose).value)

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


async def get_consent_snapshot(user_id: str, consents: ConsentRepository) -> ConsentSnapshot:
    """
    Fetch the consent snapshot for a user.

    Performs exactly one read against the consent store.

    Args:
        user_id: User identifier
        consents: Consent store to read from

    Returns:
        ConsentSnapshot where a purpose is True only if a row exists for it
        with granted set. All purposes are False if the read fails or
        returns nothing.
    """
    try:
        records = await consents.list_for_user(user_id)
    except Exception as e:
        logger.warning("consent_read_failed", user_id=user_id, error=str(e))
        return ConsentSnapshot.denied()

    if not records:
        return ConsentSnapshot.denied()

    granted = {purpose.value: False for purpose in ConsentPurpose}
    for record in records:
        if record.user_id != user_id or not record.granted:
            continue
        try:
            granted[ConsentPurpose(record.purpose).value] = True
        except ValueError:
            continue

    return ConsentSnapshot(**granted)


def is_learning_enabled(snapshot: ConsentSnapshot) -> bool:
    """Learning needs both ai_profiling and policy_learning."""
    return snapshot.ai_profiling and snapshot.policy_learning
