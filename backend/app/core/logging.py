"""
Structured logging setup.

Core modules (db, main, gateway, processor) log through structlog with
snake_case event names and keyword context:

    logger = get_logger(__name__)
    logger.info("content_ingested", content_id=content.id, status="ready")

Leaf services keep using ``logging.getLogger(__name__)``; both end up in
the same stdlib handlers, so level and output format are configured once here.
"""

import logging
import sys
from typing import Any

import structlog

from app.core.config import settings

_configured = False


def setup_logging() -> None:
    """Configure stdlib logging and structlog. Safe to call more than once."""
    global _configured
    if _configured:
        return

    level = getattr(logging, settings.LOG_LEVEL)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.LOG_FORMAT == "json":
        renderer: Any = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route plain stdlib records (services, celery, uvicorn) through the same renderer
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Noisy third-party loggers
    for name in ("googleapiclient.discovery_cache", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
