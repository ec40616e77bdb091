"""
Structured Logging Setup
JSON output for stdlib loggers (with correlation IDs) and structlog event loggers
"""

import logging
import os
import sys

import structlog
from pythonjsonlogger import jsonlogger
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "faq-miner"


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with automatic correlation ID injection.

    The correlation ID comes from the request context set by
    CorrelationIdMiddleware; worker processes log 'none' unless a job
    binds one explicitly.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['correlation_id'] = correlation_id.get() or 'none'
        log_record['service'] = SERVICE_NAME
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')


def setup_logging(level: int = logging.INFO) -> logging.Handler:
    """
    Configure JSON logging to stdout for the stdlib root logger.

    Returns:
        logging.Handler: The configured handler (for testing)
    """
    handler = logging.StreamHandler(sys.stdout)

    formatter = CorrelationJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s',
        rename_fields={
            'timestamp': 'asctime',
            'level': 'levelname'
        }
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return handler


def configure_structlog() -> None:
    """
    Configure structlog for key/value event logging.

    Shared by the API process and the Dramatiq worker so both emit the
    same JSON shape.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    )
