"""
Sentry Error Tracking
Provides error tracking with job/email context for production debugging
"""

import logging
from typing import Optional

import sentry_sdk

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initialize Sentry SDK with FastAPI and Dramatiq integrations.

    If SENTRY_DSN is not configured, logs warning and returns False (disabled).
    """
    from app.config import settings

    if settings.sentry_dsn is None:
        logger.warning("Sentry DSN not configured - error tracking disabled")
        return False

    try:
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.dramatiq import DramatiqIntegration

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment or settings.environment,
            traces_sample_rate=0.1,  # 10% of requests traced
            integrations=[
                FastApiIntegration(),
                DramatiqIntegration(),
            ],
        )
        logger.info(
            "Sentry initialized",
            extra={"environment": settings.sentry_environment or settings.environment}
        )
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def set_processing_context(
    job_id: int,
    email_id: Optional[int] = None,
    stage: Optional[str] = None
) -> None:
    """
    Tag Sentry events with the job and email currently being processed.

    Args:
        job_id: ProcessingJob.id
        email_id: Email.id when inside the per-email loop
        stage: Pipeline stage (classify, extract, cluster, synthesize)
    """
    sentry_sdk.set_context("processing", {
        "job_id": job_id,
        "email_id": email_id,
        "stage": stage,
    })
    sentry_sdk.set_tag("job_id", str(job_id))
    if email_id is not None:
        sentry_sdk.set_tag("email_id", str(email_id))


def add_breadcrumb(
    category: str,
    message: str,
    level: str = "info",
    data: Optional[dict] = None
) -> None:
    """Add breadcrumb to Sentry for the processing trail."""
    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level=level,
        data=data or {}
    )
