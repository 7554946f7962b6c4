"""structlog setup for the scheduler, keyed off ``CALSCHED_ENV``.

``production`` emits one JSON object per line with exception tracebacks as
structured data. ``test`` keeps loggers uncached and caps the level at
WARNING so retry and export chatter does not drown test output. Anything
else gets the coloured console renderer.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from calsched.config import Settings, get_settings

PRODUCTION = "production"
TEST = "test"


def _renderer(env: str) -> list:
    if env == PRODUCTION:
        return [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=env != TEST and sys.stderr.isatty())]


def _logger_factory(env: str) -> structlog.PrintLoggerFactory:
    # Test runners swap sys.stdout per test; bind to whatever is current.
    if env == TEST:
        return structlog.PrintLoggerFactory()
    return structlog.PrintLoggerFactory(file=sys.stderr)


def _level(settings: Settings) -> int:
    level = getattr(logging, settings.calsched_log_level.upper(), logging.INFO)
    if settings.calsched_env == TEST:
        return max(level, logging.WARNING)
    return level


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and the stdlib root logger.

    Logs go to stderr so CLI output on stdout stays clean, except under
    ``test``. Every entry carries ``app="calsched"`` and the environment
    name.
    """
    settings = settings or get_settings()
    env = settings.calsched_env
    log_level = _level(settings)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            *_renderer(env),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=_logger_factory(env),
        cache_logger_on_first_use=env != TEST,
    )
    structlog.contextvars.bind_contextvars(app="calsched", env=env)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a named structured logger."""
    return structlog.get_logger(name)
