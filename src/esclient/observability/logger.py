"""Structured logging with per-session correlation.

Uses structlog for rendering.  Library modules log through the standard
``logging`` module; ``setup_logging`` routes those records through the same
structlog processor chain, so every entry carries the ``session_id`` of the
connection that produced it.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Context var for session_id propagation
_session_id: ContextVar[str] = ContextVar("session_id", default="")


def get_session_id() -> str:
    """Get current session ID from context, or "" outside a session."""
    return _session_id.get()


def set_session_id(session_id: str) -> None:
    """Set session ID in context (scoped to the current task)."""
    _session_id.set(session_id)


def _add_session_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: add session_id when inside a session task."""
    sid = _session_id.get()
    if sid:
        event_dict.setdefault("session_id", sid)
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "console",
) -> None:
    """Configure structured logging for the CLI or an embedding application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for machine-readable output, "console" for humans.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_session_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
