#!/usr/bin/env python3
"""
Coach Learning Command Line Interface

Main entry point for the `coach` command. Prints JSON to stdout and exits
with status 1 when an action does not succeed.

Usage:
    coach --action grant --user alice --purpose policy_learning
    coach --action add-run --user alice --run run-1 --action-type nudge
    coach --action record --user alice --run run-1 --feedback accepted
    coach --action process --user alice --experience <id>
    coach --action stats --user alice
    coach --action nightly
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from dotenv import load_dotenv

from coach.compliance.consent import is_learning_enabled
from coach.compliance.manager import ConsentManager
from coach.learning import ACTION_TYPES
from coach.learning.config import load_config, resolve_db_path
from coach.learning.loop import LearningLoop
from coach.learning.nightly import process_pending_experiences
from coach.logging_config import bind_context, setup_logging
from coach.metrics.sqlite_provider import SQLiteMetricsProvider
from coach.storage.base import FeedbackType, Run
from coach.storage.errors import StorageError
from coach.storage.sqlite import sqlite_repositories


USER_ACTIONS = [
    "add-run",
    "record",
    "process",
    "stats",
    "experiences",
    "summary",
    "weights",
    "prune",
    "consent",
    "init-consent",
    "grant",
    "withdraw",
    "export",
]


async def run_action(args: argparse.Namespace) -> dict[str, Any]:
    config = load_config(args.config) if args.config else load_config()
    db_path = args.db or resolve_db_path(config)
    repos = sqlite_repositories(db_path)
    metrics = SQLiteMetricsProvider(db_path)

    if args.action == "nightly":
        result = await process_pending_experiences(repos, metrics, config, limit=args.limit)
        return {"success": True, **result}

    loop = LearningLoop(args.user, repos, metrics, config)
    manager = ConsentManager(args.user, repos)

    if args.action == "add-run":
        if not args.run or not args.action_type:
            return {"success": False, "error": "--run and --action-type required for add-run"}
        run = Run(id=args.run, user_id=args.user, action_type=args.action_type, reasoning=args.reasoning or "")
        await repos.runs.add(run)
        return {"success": True, "run": run.to_dict()}

    if args.action == "record":
        if not args.run or not args.feedback:
            return {"success": False, "error": "--run and --feedback required for record"}
        recorded = await loop.record_feedback(args.run, args.feedback, completed=args.completed)
        return {"success": recorded, "run_id": args.run}

    if args.action == "process":
        if not args.experience:
            return {"success": False, "error": "--experience required for process"}
        processed = await loop.process_delayed_learning(
            args.experience, completed=True if args.completed else None
        )
        return {"success": processed, "experience_id": args.experience}

    if args.action == "stats":
        stats = await loop.get_learning_stats()
        return {"success": True, **stats.to_dict()}

    if args.action == "experiences":
        experiences = await loop.list_experiences(limit=args.limit)
        return {"success": True, "experiences": [e.to_dict() for e in experiences]}

    if args.action == "summary":
        return {"success": True, **await loop.summarize()}

    if args.action == "weights":
        weights = await loop.get_policy_weights()
        return {"success": True, "weights": [w.to_dict() for w in weights]}

    if args.action == "prune":
        deleted = await loop.prune_experiences(args.keep)
        return {"success": True, "deleted": deleted}

    if args.action == "consent":
        snapshot = await manager.get_consents()
        return {
            "success": True,
            "consents": snapshot.to_dict(),
            "learning_enabled": is_learning_enabled(snapshot),
        }

    if args.action == "init-consent":
        created = await manager.initialize_default_consents()
        return {"success": True, "initialized": [p.value for p in created]}

    if args.action in ("grant", "withdraw"):
        if not args.purpose:
            return {"success": False, "error": f"--purpose required for {args.action}"}
        if args.action == "grant":
            record = await manager.grant_consent(args.purpose)
            return {"success": True, "consent": record.to_dict()}
        return {"success": True, **await manager.withdraw_consent(args.purpose)}

    if args.action == "export":
        return {"success": True, **await manager.export_consents()}

    return {"success": False, "error": f"Unknown action: {args.action}"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="coach",
        description="Coach Learning - consent-gated feedback and reward processing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Allow learning for a user
    coach --action grant --user alice --purpose ai_profiling
    coach --action grant --user alice --purpose policy_learning

    # Record a reaction, then process it once metrics have moved
    coach --action record --user alice --run run-1 --feedback accepted --completed
    coach --action process --user alice --experience 5f0c...

    # Nightly batch (cron)
    coach --action nightly
        """,
    )
    parser.add_argument(
        "--action", required=True, choices=[*USER_ACTIONS, "nightly"], help="Action to perform"
    )
    parser.add_argument("--user", help="User ID (required except for nightly)")
    parser.add_argument("--run", help="Run ID")
    parser.add_argument("--action-type", choices=ACTION_TYPES, help="Action type for add-run")
    parser.add_argument("--reasoning", help="Reasoning text for add-run")
    parser.add_argument("--feedback", choices=[f.value for f in FeedbackType], help="Feedback type")
    parser.add_argument("--completed", action="store_true", help="The action was carried out")
    parser.add_argument("--experience", help="Experience ID")
    parser.add_argument("--purpose", help="Consent purpose")
    parser.add_argument("--keep", type=int, help="Experiences to keep when pruning")
    parser.add_argument("--limit", type=int, help="Maximum rows (experiences, nightly)")
    parser.add_argument("--db", help="Database path (overrides config and COACH_DB_PATH)")
    parser.add_argument("--config", help="Path to learning.yaml")
    parser.add_argument("--log-level", help="Log level (default: COACH_LOG_LEVEL or INFO)")
    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level)

    if args.action != "nightly" and not args.user:
        print(json.dumps({"success": False, "error": f"--user required for {args.action}"}))
        sys.exit(1)

    bind_context(cli_action=args.action, user_id=args.user)

    try:
        result = asyncio.run(run_action(args))
    except ValueError as e:
        result = {"success": False, "error": str(e)}
    except StorageError as e:
        result = {"success": False, "error": str(e), "operation": e.operation}

    print(json.dumps(result, indent=2, default=str))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
