"""
FAQ Pipeline Schemas
Value objects passed between the normalizer, classifier, extractor and validator
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.models.email import EmailDirection, FilteringStatus


class NormalizedEmail(BaseModel):
    """
    Provider-independent view of one mailbox message.
    """
    message_id: str
    thread_id: Optional[str] = None
    sender_email: str = ""
    sender_name: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    subject: str = ""
    body_text: str = ""
    received_at: datetime
    direction: EmailDirection = EmailDirection.unknown

    class Config:
        use_enum_values = True


class ClassificationResult(BaseModel):
    """Outcome of eligibility classification for a single email."""
    direction: EmailDirection
    has_response: bool
    response_count: int = 0
    filtering_status: FilteringStatus
    filtering_reason: Optional[str] = None

    class Config:
        use_enum_values = True


class ExtractedQuestion(BaseModel):
    """A candidate question returned by the text-completion capability."""
    text: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    category: str = "general"


class ExtractionResult(BaseModel):
    """
    Extraction output for one email body.

    failed=True means the capability call did not produce a usable answer
    (timeout, circuit open, malformed response). questions is then empty.
    """
    questions: List[ExtractedQuestion] = Field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


class QualityResult(BaseModel):
    """Local heuristic verdict on a candidate question."""
    is_valid: bool
    score: float = Field(ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)


class ClusterAssignment(BaseModel):
    """Where the clustering engine placed a question."""
    group_id: int
    created: bool
    similarity: float
