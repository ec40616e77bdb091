"""
Job API Router
REST endpoints to start FAQ processing jobs, follow their progress, cancel and retry them
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import List, Optional
import structlog

from app.database import get_db
from app.middleware.correlation_id import get_correlation_id
from app.models.email import Email
from app.models.email_account import EmailAccount
from app.models.processing_job import JobStatus, ProcessingJob
from app.services.faq_pipeline import create_job, request_cancellation, select_unprocessed_email_ids

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"])


class CreateJobRequest(BaseModel):
    account_id: int
    email_ids: Optional[List[int]] = Field(
        None,
        description="Explicit batch; defaults to the account's unprocessed emails"
    )
    limit: Optional[int] = Field(None, ge=1, le=5000)


def _serialize_job(job: ProcessingJob) -> dict:
    processing_time_seconds = None
    if job.started_at and job.completed_at:
        processing_time_seconds = (job.completed_at - job.started_at).total_seconds()

    return {
        "id": job.id,
        "job_type": job.job_type,
        "status": job.status,
        "account_id": job.account_id,
        "progress": job.progress,
        "processed_items": job.processed_items,
        "total_items": job.total_items,
        "questions_found": job.questions_found,
        "errors_count": job.errors_count,
        "faq_groups_created": job.faq_groups_created,
        "questions_grouped": job.questions_grouped,
        "cancel_requested": job.cancel_requested,
        "error_message": job.error_message,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "processing_time_seconds": processing_time_seconds,
    }


def _enqueue(db: Session, job: ProcessingJob) -> None:
    try:
        from app.actors.faq_processor import process_faq_job
        process_faq_job.send(job.id, correlation_id=get_correlation_id())
        logger.info("faq_job_enqueued", job_id=job.id, total_items=job.total_items)
    except Exception as e:
        logger.error("faq_job_enqueue_failed", job_id=job.id, error=str(e))
        job.status = JobStatus.error.value
        job.error_message = f"Failed to enqueue: {str(e)}"
        db.commit()
        raise HTTPException(status_code=500, detail=f"Failed to enqueue job: {str(e)}")


@router.post("", status_code=202)
async def start_job(
    request: CreateJobRequest,
    db: Session = Depends(get_db)
):
    """
    Create a faq_processing job and enqueue it.

    Returns:
        The pending job
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    account = db.get(EmailAccount, request.account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")

    email_ids = request.email_ids
    if email_ids is None:
        email_ids = select_unprocessed_email_ids(db, account.id, limit=request.limit)
    else:
        owned = {
            row.id for row in db.query(Email.id).filter(
                Email.id.in_(email_ids),
                Email.account_id == account.id
            )
        }
        foreign = sorted(set(email_ids) - owned)
        if foreign:
            raise HTTPException(
                status_code=400,
                detail=f"Emails not found for account {account.id}: {foreign}"
            )

    job = create_job(db, account.id, email_ids)
    _enqueue(db, job)
    return _serialize_job(job)


@router.get("")
async def list_jobs(
    status: Optional[str] = Query(None, description="Filter by status"),
    account_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of jobs to return"),
    db: Session = Depends(get_db)
):
    """List recent jobs, newest first."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    query = db.query(ProcessingJob)
    if status:
        query = query.filter(ProcessingJob.status == status)
    if account_id is not None:
        query = query.filter(ProcessingJob.account_id == account_id)

    total = query.count()
    jobs = query.order_by(ProcessingJob.id.desc()).limit(limit).all()

    return {
        "total": total,
        "jobs": [_serialize_job(job) for job in jobs]
    }


@router.get("/{job_id}")
async def get_job_detail(
    job_id: int,
    db: Session = Depends(get_db)
):
    """
    Get status and counters for a single job

    Raises:
        404: Job not found
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    job = db.get(ProcessingJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return _serialize_job(job)


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: int,
    db: Session = Depends(get_db)
):
    """
    Request cancellation; the worker stops before its next email.

    Raises:
        404: Job not found
        409: Job already finished
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    job = db.get(ProcessingJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.is_terminal:
        raise HTTPException(status_code=409, detail=f"Job already {job.status}")

    job = request_cancellation(db, job_id)
    return _serialize_job(job)


@router.post("/{job_id}/retry", status_code=202)
async def retry_job(
    job_id: int,
    db: Session = Depends(get_db)
):
    """
    Start a new job over the same emails as a failed one.

    Terminal states are final, so the failed job stays as it is. Emails the
    failed job already finished are skipped by the new job.

    Raises:
        404: Job not found
        400: Job is not in "error" status
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    job = db.get(ProcessingJob, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.status != JobStatus.error.value:
        raise HTTPException(
            status_code=400,
            detail=f"Job is not in 'error' status (current: {job.status})"
        )

    new_job = create_job(db, job.account_id, job.email_ids, job_type=job.job_type)
    _enqueue(db, new_job)
    logger.info("job_retried", job_id=job_id, new_job_id=new_job.id)
    return _serialize_job(new_job)
