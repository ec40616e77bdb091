"""
Database Models
"""

from app.models.email_account import EmailAccount, AccountStatus, EmailProvider
from app.models.email import Email, EmailDirection, FilteringStatus
from app.models.question import Question
from app.models.faq_group import FAQGroup, QuestionGroupMembership
from app.models.processing_job import ProcessingJob, JobStatus, JobType

__all__ = [
    "EmailAccount",
    "AccountStatus",
    "EmailProvider",
    "Email",
    "EmailDirection",
    "FilteringStatus",
    "Question",
    "FAQGroup",
    "QuestionGroupMembership",
    "ProcessingJob",
    "JobStatus",
    "JobType",
]
