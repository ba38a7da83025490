"""
Structured logging configuration.

blockfs logs through structlog. Development output is rendered for
humans, every other environment emits one JSON object per line. All
output goes to stderr so `blockfs get` can stream file bytes on stdout.

The container a process works on is bound once into the context
variables (bind_container) and then shows up on every event.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from core.config import settings


def _renderer_processors() -> list[Processor]:
    if settings.is_development:
        return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]
    return [
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    The level comes from settings.log_level (BLOCKFS_LOG_LEVEL).
    """
    level = getattr(logging, settings.log_level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        *_renderer_processors(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # uvicorn and filelock log through the standard library
    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def bind_container(container: Any) -> None:
    """Attach the container name to every following log event of this context."""
    structlog.contextvars.bind_contextvars(container=str(container))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger, optionally with bound context.

    Usage:
        logger = get_logger(__name__, container="data.fs")
        logger.info("File appended", path="a.txt", size=12)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
