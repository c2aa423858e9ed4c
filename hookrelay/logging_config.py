"""
Structured logging configuration using structlog.

Every log line is a JSON object carrying the service name plus whatever
context was bound (org_id, endpoint_id, delivery_id, provider, ...).
"""
import logging
import sys

import structlog

from hookrelay.config import settings


def configure_logging():
    """Configure structlog for JSON output with bound context."""
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    # Route stdlib loggers (uvicorn, arq, sqlalchemy) through the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger().bind(service=settings.APP_NAME)


logger = configure_logging()


def get_logger(**context):
    """
    Get a logger with additional context bound.

    Usage:
        log = get_logger(org_id=org_id, endpoint_id=endpoint_id)
        log.info("delivery_succeeded", status_code=200)
    """
    return logger.bind(**context)
