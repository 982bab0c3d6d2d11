"""
Tool: Consent Manager
Purpose: Grant, withdraw and export per-purpose consent for one user

Withdrawing a learning purpose (ai_profiling or policy_learning) also
erases the user's stored experiences and policy weights. Every change is
appended to the consent audit log.

Usage:
    from coach.compliance.manager import ConsentManager

    manager = ConsentManager("alice", repos)
    await manager.initialize_default_consents()
    await manager.grant_consent("policy_learning")
    consents = await manager.get_consents()

Dependencies:
    - coach.storage (consent, experience and policy weight repositories)
    - coach.compliance.audit (consent event log)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from coach.compliance import CONSENT_PURPOSES, LEARNING_PURPOSES
from coach.compliance.audit import log_consent_event
from coach.compliance.consent import ConsentSnapshot, get_consent_snapshot
from coach.logging_config import get_logger
from coach.storage.base import ConsentPurpose, ConsentRecord, Repositories, utcnow


logger = get_logger(__name__)

CONSENT_VERSION = "1.0"


def parse_purpose(purpose: ConsentPurpose | str) -> ConsentPurpose:
    """Validate a purpose name. Raises ValueError for unknown purposes."""
    try:
        return ConsentPurpose(purpose)
    except ValueError:
        valid = [p.value for p in ConsentPurpose]
        raise ValueError(f"Invalid purpose '{purpose}'. Must be one of: {valid}") from None


class ConsentManager:
    """Consent operations for a single user."""

    def __init__(
        self,
        user_id: str,
        repositories: Repositories,
        audit_db_path: Path | None = None,
    ):
        self.user_id = user_id
        self._repos = repositories
        self._audit_db_path = audit_db_path
        self._log = logger.bind(user_id=user_id)

    async def get_consents(self) -> ConsentSnapshot:
        return await get_consent_snapshot(self.user_id, self._repos.consents)

    async def get_consent_records(self) -> list[ConsentRecord]:
        return await self._repos.consents.list_for_user(self.user_id)

    async def is_processing_allowed(self, purpose: ConsentPurpose | str) -> bool:
        snapshot = await self.get_consents()
        return snapshot.granted(parse_purpose(purpose))

    async def grant_consent(self, purpose: ConsentPurpose | str) -> ConsentRecord:
        """Record consent for a purpose and log the change."""
        purpose = parse_purpose(purpose)
        record = ConsentRecord(
            user_id=self.user_id,
            purpose=purpose,
            granted=True,
            version=CONSENT_VERSION,
            granted_at=utcnow(),
        )
        await self._repos.consents.upsert(record)
        log_consent_event(
            self.user_id,
            "consent_granted",
            purpose.value,
            {"version": CONSENT_VERSION},
            db_path=self._audit_db_path,
        )
        self._log.info("consent_granted", purpose=purpose.value)
        return record

    async def withdraw_consent(self, purpose: ConsentPurpose | str) -> dict[str, Any]:
        """
        Withdraw consent for a purpose.

        Withdrawing a learning purpose erases all experiences and policy
        weights for the user.

        Returns:
            dict with the purpose and how many rows were erased
        """
        purpose = parse_purpose(purpose)
        existing = {r.purpose: r for r in await self.get_consent_records()}
        previous = existing.get(purpose)

        record = ConsentRecord(
            user_id=self.user_id,
            purpose=purpose,
            granted=False,
            version=previous.version if previous else CONSENT_VERSION,
            granted_at=previous.granted_at if previous else None,
            withdrawn_at=utcnow(),
        )
        await self._repos.consents.upsert(record)

        erased = {"experiences": 0, "policy_weights": 0}
        if purpose in LEARNING_PURPOSES:
            erased["experiences"] = await self._repos.experiences.delete_for_user(self.user_id)
            erased["policy_weights"] = await self._repos.policy_weights.delete_for_user(self.user_id)

        log_consent_event(
            self.user_id,
            "consent_withdrawn",
            purpose.value,
            {"erased": erased},
            db_path=self._audit_db_path,
        )
        self._log.info("consent_withdrawn", purpose=purpose.value, **erased)
        return {"purpose": purpose.value, "erased": erased}

    async def initialize_default_consents(self) -> list[ConsentPurpose]:
        """Create a not-granted row for each purpose that has none yet."""
        missing = await self.get_missing_consents()
        for purpose in missing:
            await self._repos.consents.upsert(
                ConsentRecord(
                    user_id=self.user_id,
                    purpose=purpose,
                    granted=False,
                    version=CONSENT_VERSION,
                )
            )
            log_consent_event(
                self.user_id, "consent_initialized", purpose.value, db_path=self._audit_db_path
            )
        if missing:
            self._log.info("consents_initialized", purposes=[p.value for p in missing])
        return missing

    async def get_missing_consents(self) -> list[ConsentPurpose]:
        """Purposes with no consent row at all, granted or not."""
        present = {r.purpose for r in await self.get_consent_records()}
        return [p for p in ConsentPurpose if p not in present]

    async def export_consents(self) -> dict[str, Any]:
        """Export every consent row with its purpose description."""
        records = {r.purpose: r for r in await self.get_consent_records()}
        consents = []
        for purpose in ConsentPurpose:
            record = records.get(purpose)
            entry = {
                "purpose": purpose.value,
                "description": CONSENT_PURPOSES[purpose]["description"],
                "granted": bool(record and record.granted),
                "version": record.version if record else None,
                "granted_at": record.granted_at.isoformat() if record and record.granted_at else None,
                "withdrawn_at": (
                    record.withdrawn_at.isoformat() if record and record.withdrawn_at else None
                ),
            }
            consents.append(entry)
        return {
            "user_id": self.user_id,
            "exported_at": utcnow().isoformat(),
            "consents": consents,
        }
