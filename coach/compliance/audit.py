"""
Tool: Consent Audit Log
Purpose: Append-only record of consent changes for compliance

Every grant, withdrawal and default initialization is logged with the
purpose affected and any data erased as a consequence. Rows are never
updated or deleted.

Usage:
    from coach.compliance.audit import log_consent_event, query_consent_events

    log_consent_event("alice", "consent_granted", "policy_learning")
    result = query_consent_events(user_id="alice")

Output:
    dict results with success status and data
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from coach.compliance import AUDIT_DB_PATH
from coach.storage.errors import StorageError


# Database path
DB_PATH = AUDIT_DB_PATH

# Valid event actions
VALID_ACTIONS = ["consent_granted", "consent_withdrawn", "consent_initialized"]


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Get database connection, creating tables if needed."""
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()

    # Append only, no updates or deletes
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS consent_audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
            user_id TEXT NOT NULL,
            action TEXT NOT NULL CHECK(action IN ('consent_granted', 'consent_withdrawn', 'consent_initialized')),
            purpose TEXT NOT NULL,
            details TEXT
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_consent_audit_user ON consent_audit_log(user_id)")

    conn.commit()
    return conn


def row_to_dict(row: sqlite3.Row | None) -> dict | None:
    """Convert sqlite3.Row to dictionary."""
    if row is None:
        return None
    d = dict(row)
    if d.get("details"):
        try:
            d["details"] = json.loads(d["details"])
        except json.JSONDecodeError:
            pass
    return d


def log_consent_event(
    user_id: str,
    action: str,
    purpose: str,
    details: dict[str, Any] | None = None,
    db_path: Path | None = None,
) -> dict[str, Any]:
    """
    Append a consent event.

    Args:
        user_id: User whose consent changed
        action: consent_granted, consent_withdrawn or consent_initialized
        purpose: Consent purpose affected
        details: Additional JSON-serializable context
        db_path: Override the audit database location

    Returns:
        dict with success status and event ID

    Raises:
        StorageError: If the event could not be written
    """
    if action not in VALID_ACTIONS:
        return {"success": False, "error": f"Invalid action. Must be one of: {VALID_ACTIONS}"}

    try:
        conn = get_connection(db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO consent_audit_log (user_id, action, purpose, details) VALUES (?, ?, ?, ?)",
                (user_id, action, str(purpose), json.dumps(details) if details else None),
            )
            event_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise StorageError("consent_audit.log", str(e)) from e

    return {"success": True, "event_id": event_id}


def query_consent_events(
    user_id: str | None = None,
    purpose: str | None = None,
    limit: int = 100,
    db_path: Path | None = None,
) -> dict[str, Any]:
    """Query consent events, newest first."""
    conditions = []
    params: list[Any] = []

    if user_id:
        conditions.append("user_id = ?")
        params.append(user_id)
    if purpose:
        conditions.append("purpose = ?")
        params.append(str(purpose))

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    params.append(limit)

    conn = get_connection(db_path)
    try:
        rows = conn.execute(
            f"SELECT * FROM consent_audit_log {where} ORDER BY id DESC LIMIT ?", params
        ).fetchall()
    finally:
        conn.close()

    return {"success": True, "events": [row_to_dict(r) for r in rows], "count": len(rows)}
