"""
Structured logging configuration using structlog wrapping stdlib.

JSON lines when COACH_LOG_FORMAT=json (servers, the nightly job),
human-readable console output otherwise. Level comes from COACH_LOG_LEVEL.

Request-scoped fields (user_id, action, request path) are bound with
bind_context and merged into every event logged until clear_context.

Usage:
    from coach.logging_config import bind_context, get_logger, setup_logging

    setup_logging()
    bind_context(user_id="alice")
    get_logger(__name__).info("feedback_recorded", run_id="run-1")
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


LEVEL_ENV = "COACH_LOG_LEVEL"
FORMAT_ENV = "COACH_LOG_FORMAT"

# Per-request access lines duplicate the request-context fields
QUIET_LOGGERS = ("uvicorn.access",)


def _event_processors() -> list[structlog.types.Processor]:
    """Processors applied to structlog events and to plain stdlib records alike."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _stderr_handler(json_output: bool) -> logging.Handler:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    # stderr keeps stdout free for CLI JSON output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_event_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    return handler


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    level = level or os.environ.get(LEVEL_ENV, "INFO")
    if json_output is None:
        json_output = os.environ.get(FORMAT_ENV, "").lower() == "json"
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_event_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_stderr_handler(json_output))
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**values: Any) -> None:
    """Attach fields to every event logged from the current context."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = ["bind_context", "clear_context", "get_logger", "setup_logging"]
