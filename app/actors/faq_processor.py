"""
FAQ Processing Actors
Dramatiq actors that run FAQ mining jobs and the re-cluster pass
"""

import gc
import dramatiq
import structlog
import psutil

logger = structlog.get_logger()


def on_faq_job_failure(message_data, exception):
    """
    Callback invoked by Dramatiq when a FAQ job actor raised.

    The pipeline already moved the job to `error`; this only records the
    crash. Jobs are never retried in place: a retry is a new job.
    """
    job_id = None
    if hasattr(message_data, 'args') and len(message_data.args) > 0:
        job_id = message_data.args[0]
    elif hasattr(message_data, 'kwargs') and 'job_id' in message_data.kwargs:
        job_id = message_data.kwargs['job_id']

    logger.error("faq_job_permanent_failure",
                job_id=job_id,
                error=str(exception),
                exception_type=type(exception).__name__)


@dramatiq.actor(
    max_retries=0,  # Terminal job states are final
    time_limit=3600000,  # 1 hour
    on_failure=on_faq_job_failure,
    queue_name="faq_processing"
)
def process_faq_job(job_id: int, correlation_id: str = None) -> None:
    """
    Run one ProcessingJob through the FAQ pipeline.

    Emails are processed sequentially; progress and completion events are
    published per job. Independent jobs run in parallel on other workers.

    Args:
        job_id: The ProcessingJob.id to run
        correlation_id: ID of the API request that enqueued the job
    """
    # Lazy imports to avoid circular dependencies and import-time side effects
    from app.database import get_session_factory
    from app.middleware.correlation_id import bind_job_context
    from app.services.faq_pipeline import build_pipeline

    bind_job_context(job_id, correlation_id)
    process = psutil.Process()
    memory_before_mb = process.memory_info().rss / 1024 / 1024
    logger.info("process_faq_job_start",
               job_id=job_id,
               memory_mb=round(memory_before_mb, 2))

    try:
        session_factory = get_session_factory()
        if session_factory is None:
            logger.error("process_faq_job_no_database", job_id=job_id)
            return

        pipeline = build_pipeline(session_factory)
        job = pipeline.run_job(job_id)

        if job is not None:
            logger.info("process_faq_job_finished",
                       job_id=job_id,
                       status=job.status,
                       processed_items=job.processed_items,
                       questions_found=job.questions_found)
    finally:
        # Explicit garbage collection keeps long-lived workers within memory limits
        gc.collect()
        memory_after_mb = process.memory_info().rss / 1024 / 1024
        logger.info("process_faq_job_complete",
                   job_id=job_id,
                   memory_before_mb=round(memory_before_mb, 2),
                   memory_after_mb=round(memory_after_mb, 2))


@dramatiq.actor(max_retries=3, queue_name="faq_processing")
def recluster_questions(limit: int = 100) -> None:
    """Embed and cluster questions left unclustered by earlier embedding failures."""
    from app.database import get_session_factory
    from app.services.faq_pipeline import build_pipeline

    session_factory = get_session_factory()
    if session_factory is None:
        logger.warning("recluster_skipped", reason="database_not_configured")
        return

    stats = build_pipeline(session_factory).recluster_pending(limit=limit)
    logger.info("recluster_questions_done", **stats)
