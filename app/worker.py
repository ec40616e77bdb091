"""
Dramatiq Worker Entrypoint

This module serves as the entry point for Dramatiq workers.
It imports all actor modules to register them with the broker.

Usage:
    dramatiq app.worker --processes 2 --threads 1 --verbose

Queues:
    faq_processing        - FAQ mining jobs and the re-cluster pass
    email_classification  - eligibility re-scans

A job processes its emails sequentially, so throughput scales with the
number of worker processes/threads, one job per thread.
"""

import structlog

from app.services.monitoring.logging import configure_structlog
from app.services.monitoring.error_tracking import init_sentry
from app.database import init_db
from app.actors import broker

configure_structlog()
logger = structlog.get_logger()

init_db()
init_sentry()

# Worker health check log
logger.info("worker_ready", broker=type(broker).__name__)
