"""
ProcessingJob Model
Tracks long-running background jobs and their resumable progress
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from app.database import Base


class JobType(str, Enum):
    email_sync = "email_sync"
    faq_processing = "faq_processing"


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    error = "error"


TERMINAL_JOB_STATUSES = (JobStatus.completed.value, JobStatus.error.value)


class ProcessingJob(Base):
    """
    A batch job run by a Dramatiq worker.

    State machine: pending -> processing -> completed | error
    Terminal states are final; a retry is a new job row.
    progress is 0-100 and reaches 100 only together with completed.
    """
    __tablename__ = "processing_jobs"

    id = Column(Integer, primary_key=True, index=True)
    job_type = Column(String(50), nullable=False, default=JobType.faq_processing.value)
    status = Column(String(20), nullable=False, default=JobStatus.pending.value, index=True)
    account_id = Column(Integer, ForeignKey("email_accounts.id"), nullable=True, index=True)

    # {"email_ids": [...]} - the ordered batch this job walks through
    parameters = Column(JSON, nullable=True)

    # Progress
    progress = Column(Integer, nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    questions_found = Column(Integer, nullable=False, default=0)
    errors_count = Column(Integer, nullable=False, default=0)
    faq_groups_created = Column(Integer, nullable=False, default=0)
    questions_grouped = Column(Integer, nullable=False, default=0)

    cancel_requested = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_processing_jobs_account_status", "account_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    @property
    def email_ids(self):
        return list((self.parameters or {}).get("email_ids", []))

    def __repr__(self):
        return f"<ProcessingJob(id={self.id}, type='{self.job_type}', status='{self.status}', progress={self.progress})>"
