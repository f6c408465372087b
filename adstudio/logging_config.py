"""
Structured logging configuration using structlog.

Logs are JSON lines. Request-scoped fields (request_id, user_id) live in
structlog contextvars, so every event emitted while a request is being
served, including those from the coordinator's own task, carries them.
"""
import logging
import sys

import structlog

from adstudio.config import settings


def configure_logging(level: str | None = None):
    """Configure structlog for JSON output at LOG_LEVEL (or `level`)."""
    log_level = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger(service=settings.APP_NAME)


logger = configure_logging()


def get_logger(**context):
    """
    Get a logger with additional context bound.

    Usage:
        log = get_logger(user_id=user_id, ref_id=generation_id)
        log.info("credits_reserved", amount=3)
    """
    return logger.bind(**context)


def bind_request_context(**fields):
    """Attach fields to every log line for the rest of the current request."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context():
    structlog.contextvars.clear_contextvars()
