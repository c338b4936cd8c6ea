"""Structured logging helpers."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: int | str = logging.INFO, *, json: bool = True) -> None:
    """Route structlog events to stdout.

    ``json=False`` swaps the JSON renderer for structlog's console renderer,
    which is easier to read while developing against a local session.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_session(session_id: str) -> None:
    """Attach ``session_id`` to every event logged from the current context."""

    structlog.contextvars.bind_contextvars(session_id=session_id)


logger = structlog.get_logger()

__all__ = ["bind_session", "configure_logging", "logger"]
