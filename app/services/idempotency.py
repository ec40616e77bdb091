"""
Idempotency Helpers
Stable keys for extracted questions so re-processing an email never duplicates rows
"""

import hashlib
import json
import re
from typing import Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.question import Question

logger = structlog.get_logger(__name__)

_TRAILING_PUNCTUATION = re.compile(r"[\s?.!]+$")


def generate_idempotency_key(operation: str, aggregate_id: str, payload: dict) -> str:
    """
    Generate consistent idempotency key for an operation.

    Format: {operation_type}:{aggregate_id}:{content_hash[:16]}
    """
    payload_json = json.dumps(payload, sort_keys=True, default=str)
    content_hash = hashlib.sha256(payload_json.encode()).hexdigest()
    return f"{operation}:{aggregate_id}:{content_hash[:16]}"


def normalize_question_text(text: str) -> str:
    """Lowercase, collapse whitespace and drop trailing punctuation."""
    collapsed = " ".join((text or "").split()).lower()
    return _TRAILING_PUNCTUATION.sub("", collapsed)


def question_idempotency_key(source_email_id: int, text: str) -> str:
    return generate_idempotency_key(
        "question",
        str(source_email_id),
        {"text": normalize_question_text(text)}
    )


def get_or_create_question(
    db: Session,
    source_email_id: int,
    text: str,
    confidence: float,
    category: Optional[str] = None,
    quality_score: Optional[float] = None,
    sender_email: Optional[str] = None,
    sender_name: Optional[str] = None
) -> Tuple[Question, bool]:
    """
    Insert a question unless one with the same key exists for the email.

    Uses a savepoint so a concurrent insert of the same key only rolls back
    this question, not the caller's transaction.

    Returns:
        (question, created)
    """
    key = question_idempotency_key(source_email_id, text)

    existing = db.query(Question).filter(
        Question.source_email_id == source_email_id,
        Question.idempotency_key == key
    ).first()
    if existing is not None:
        logger.info("question_idempotency_hit", email_id=source_email_id, question_id=existing.id)
        return existing, False

    question = Question(
        source_email_id=source_email_id,
        text=text,
        idempotency_key=key,
        confidence=confidence,
        category=category,
        quality_score=quality_score,
        sender_email=sender_email,
        sender_name=sender_name,
    )
    try:
        with db.begin_nested():
            db.add(question)
    except IntegrityError:
        existing = db.query(Question).filter(
            Question.source_email_id == source_email_id,
            Question.idempotency_key == key
        ).one()
        logger.info("question_idempotency_race", email_id=source_email_id, question_id=existing.id)
        return existing, False

    return question, True
