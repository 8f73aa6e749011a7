"""
Structured logging for the Live Feed services.
Uses structlog so every poll, fetch and merge is logged as a keyed event.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from shared.config import Settings, get_settings

# Libraries that log every request at INFO; kept at WARNING.
QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "asyncio")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(settings: Settings) -> structlog.types.Processor:
    if settings.environment.value == "dev":
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.JSONRenderer()


def setup_logging(
    service_name: str,
    settings: Settings | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """
    Configure structured logging for a service.

    Args:
        service_name: The service identifier (e.g. "scheduler").
        settings: Settings to read level/environment from; defaults to get_settings().
        extra_context: Additional static context fields bound to every log entry.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if settings.debug:
        log_level = logging.DEBUG
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    bound: dict[str, Any] = {"service": service_name}
    if settings.instance_id:
        bound["instance_id"] = settings.instance_id
    if extra_context:
        bound.update(extra_context)
    structlog.contextvars.bind_contextvars(**bound)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named structured logger."""
    return structlog.get_logger(name)
