"""
Job Event Schemas
Payloads published to subscribers while a processing job runs
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class JobEvent(BaseModel):
    """Base for all job events; serialized with camelCase keys."""
    job_id: int = Field(alias="jobId")

    class Config:
        populate_by_name = True

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class ProgressEvent(JobEvent):
    type: Literal["progress"] = "progress"
    current: int
    total: int
    questions_found: int = Field(0, alias="questionsFound")
    errors: int = 0
    current_email_label: Optional[str] = Field(None, alias="currentEmailLabel")


class CompleteEvent(JobEvent):
    type: Literal["complete"] = "complete"
    processed: int
    questions_found: int = Field(0, alias="questionsFound")
    faq_groups_created: int = Field(0, alias="faqGroupsCreated")
    questions_grouped: int = Field(0, alias="questionsGrouped")


class ErrorEvent(JobEvent):
    type: Literal["error"] = "error"
    message: str
