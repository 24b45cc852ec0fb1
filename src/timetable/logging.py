"""Structured logging for the sync engine, built on structlog.

Console output while developing, JSON lines in production. Modules log through
get_logger(); the store binds the tenant and displayed week into contextvars
so every event emitted while a week is active carries them.
"""

import logging
import sys

import structlog

# Applied before the renderer in both output modes
_BASE_PROCESSORS = (
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.StackInfoRenderer(),
    structlog.dev.set_exc_info,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
)

_WEEK_KEYS = ("tenant", "year", "week_number")


def _renderer(json_output: bool) -> list:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog and route stdlib loggers (httpx, asyncio) to stdout.

    Args:
        json_output: Render JSON lines instead of the console renderer.
        log_level: Minimum level name; unknown names fall back to INFO.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[*_BASE_PROCESSORS, *_renderer(json_output)],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers = [logging.StreamHandler(sys.stdout)]
    root.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def bind_week_context(tenant: str, year: int, week_number: int) -> None:
    """Attach the active tenant/week to every subsequent log event."""
    structlog.contextvars.bind_contextvars(
        tenant=tenant, year=year, week_number=week_number
    )


def clear_week_context() -> None:
    structlog.contextvars.unbind_contextvars(*_WEEK_KEYS)


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger; pass __name__."""
    return structlog.get_logger(name)
