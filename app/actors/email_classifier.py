"""
Email Classification Actor
Re-scans stored emails and updates their FAQ eligibility
"""

import dramatiq
import structlog

logger = structlog.get_logger()


@dramatiq.actor(max_retries=3, min_backoff=15000, queue_name="email_classification")
def reclassify_emails(account_id: int = None) -> None:
    """
    Reclassify every non-qualified email (optionally for one account).

    Storage errors propagate so Dramatiq retries the scan.
    """
    from app.database import get_session_factory
    from app.services.eligibility_classifier import classify_pending_emails

    session_factory = get_session_factory()
    if session_factory is None:
        logger.warning("reclassify_skipped", reason="database_not_configured")
        return

    db = session_factory()
    try:
        stats = classify_pending_emails(db, account_id=account_id)
        logger.info("reclassify_emails_done", account_id=account_id, **stats)
    finally:
        db.close()
