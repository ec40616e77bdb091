"""
APScheduler Background Jobs

Periodic eligibility re-scan and re-cluster pass.
Jobs run via BackgroundScheduler in FastAPI process and enqueue Dramatiq actors.
"""

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config import settings

logger = structlog.get_logger(__name__)


def run_eligibility_rescan():
    """
    Enqueue a reclassification of all non-qualified emails.

    Safety net for conversations whose reply arrived without the ingestion
    path reclassifying the thread.
    """
    try:
        from app.actors.email_classifier import reclassify_emails

        reclassify_emails.send()
        logger.info("eligibility_rescan_enqueued")
    except Exception as e:
        logger.error("eligibility_rescan_enqueue_failed", error=str(e), exc_info=True)


def run_recluster_pass():
    """Enqueue clustering of questions whose embedding failed earlier."""
    try:
        from app.actors.faq_processor import recluster_questions

        recluster_questions.send(settings.recluster_batch_size)
        logger.info("recluster_pass_enqueued", limit=settings.recluster_batch_size)
    except Exception as e:
        logger.error("recluster_pass_enqueue_failed", error=str(e), exc_info=True)


def start_scheduler(environment: str = "production") -> BackgroundScheduler:
    """
    Start background scheduler with all jobs.

    Args:
        environment: Current environment (skip scheduler in testing)

    Returns:
        BackgroundScheduler instance
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    if environment == "testing":
        logger.info("scheduler_skipped", reason="testing_environment")
        return scheduler

    scheduler.add_job(
        run_eligibility_rescan,
        trigger=IntervalTrigger(minutes=settings.eligibility_rescan_minutes),
        id="eligibility_rescan",
        name="Email Eligibility Re-scan",
        replace_existing=True
    )
    logger.info("job_registered", job="eligibility_rescan",
               interval_minutes=settings.eligibility_rescan_minutes)

    scheduler.add_job(
        run_recluster_pass,
        trigger=IntervalTrigger(minutes=settings.recluster_interval_minutes),
        id="recluster_pass",
        name="Unclustered Question Re-cluster",
        replace_existing=True
    )
    logger.info("job_registered", job="recluster_pass",
               interval_minutes=settings.recluster_interval_minutes)

    scheduler.start()
    logger.info("scheduler_started", jobs=["eligibility_rescan", "recluster_pass"])

    return scheduler


def stop_scheduler(scheduler: BackgroundScheduler):
    """
    Stop background scheduler gracefully.

    Args:
        scheduler: BackgroundScheduler instance to stop
    """
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


__all__ = [
    "start_scheduler",
    "stop_scheduler",
    "run_eligibility_rescan",
    "run_recluster_pass",
]
