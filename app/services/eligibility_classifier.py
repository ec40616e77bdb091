"""
Eligibility Classifier Service
Decides which emails are eligible for FAQ mining based on direction and thread replies

An email qualifies when it was sent by a customer (inbound) AND the business
answered it later in the same conversation. Everything else is filtered out
or left pending until more of the thread is known.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Set

import structlog
from sqlalchemy.orm import Session

from app.models.email import Email, EmailDirection, FilteringStatus
from app.models.email_account import EmailAccount, AccountStatus
from app.models.pipeline_schemas import ClassificationResult

logger = structlog.get_logger(__name__)

REASON_OUTBOUND = "Email from connected business account"
REASON_NO_RESPONSE = "No response from business"
REASON_QUALIFIED = "Customer email with business response"
REASON_UNKNOWN_SENDER = "Sender address missing"

_SUBJECT_PREFIX = re.compile(r"^\s*(re|fwd|fw)\s*:\s*", re.IGNORECASE)


def normalize_subject(subject: Optional[str]) -> str:
    """
    Strip reply/forward prefixes so replies group with the original message.

    "Re: Fwd: RE: Billing question" -> "billing question"
    """
    if not subject:
        return ""
    normalized = subject
    while True:
        stripped = _SUBJECT_PREFIX.sub("", normalized, count=1)
        if stripped == normalized:
            break
        normalized = stripped
    return normalized.strip().lower()


def _normalize_address(address: Optional[str]) -> str:
    return (address or "").strip().lower()


def determine_direction(sender_email: Optional[str], connected_addresses: Iterable[str]) -> EmailDirection:
    """outbound if the sender is one of the business' connected addresses."""
    sender = _normalize_address(sender_email)
    if not sender:
        return EmailDirection.unknown
    connected = {_normalize_address(a) for a in connected_addresses}
    if sender in connected:
        return EmailDirection.outbound
    return EmailDirection.inbound


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; treat them as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _same_conversation(email, other) -> bool:
    if other is email:
        return False
    if getattr(other, "id", None) is not None and other.id == getattr(email, "id", None):
        return False
    if email.thread_id:
        return other.thread_id == email.thread_id
    subject = normalize_subject(email.subject)
    if not subject:
        return False
    return normalize_subject(other.subject) == subject


def later_responses(email, thread_emails: Sequence, connected_addresses: Iterable[str]) -> List:
    """Outbound messages of the conversation sent strictly after `email`, oldest first."""
    connected: Set[str] = {_normalize_address(a) for a in connected_addresses}
    email_time = _as_utc(email.received_at)
    if email_time is None:
        return []

    responses = []
    for other in thread_emails:
        if not _same_conversation(email, other):
            continue
        if determine_direction(other.sender_email, connected) != EmailDirection.outbound:
            continue
        other_time = _as_utc(other.received_at)
        if other_time is not None and other_time > email_time:
            responses.append(other)
    return sorted(responses, key=lambda other: _as_utc(other.received_at))


def classify_email(
    email,
    thread_emails: Sequence,
    connected_addresses: Iterable[str]
) -> ClassificationResult:
    """
    Classify one email against the other messages of its conversation.

    Pure function: reads sender, thread_id, subject and received_at from the
    given objects and returns the classification without touching storage.

    Conversation membership is the shared thread_id; when the email has no
    thread_id, messages with the same normalized subject are used instead.
    A response is an outbound message strictly later than the email.
    """
    connected: Set[str] = {_normalize_address(a) for a in connected_addresses}
    direction = determine_direction(email.sender_email, connected)

    response_count = len(later_responses(email, thread_emails, connected))
    has_response = response_count > 0

    if direction == EmailDirection.outbound:
        status, reason = FilteringStatus.filtered_out, REASON_OUTBOUND
    elif direction == EmailDirection.inbound and has_response:
        status, reason = FilteringStatus.qualified, REASON_QUALIFIED
    elif direction == EmailDirection.inbound:
        status, reason = FilteringStatus.filtered_out, REASON_NO_RESPONSE
    else:
        status, reason = FilteringStatus.pending, REASON_UNKNOWN_SENDER

    return ClassificationResult(
        direction=direction,
        has_response=has_response,
        response_count=response_count,
        filtering_status=status,
        filtering_reason=reason,
    )


def get_connected_addresses(db: Session) -> Set[str]:
    """Addresses of all active connected accounts (lowercase)."""
    rows = db.query(EmailAccount.email_address).filter(
        EmailAccount.status == AccountStatus.active.value
    ).all()
    return {_normalize_address(row[0]) for row in rows}


def find_thread_emails(db: Session, email: Email) -> List[Email]:
    """All stored emails of the same account that share a conversation with `email`."""
    query = db.query(Email).filter(Email.account_id == email.account_id)

    if email.thread_id:
        return query.filter(Email.thread_id == email.thread_id).all()

    # Without a thread id any message with the same normalized subject counts,
    # whether or not the provider threaded it
    subject = normalize_subject(email.subject)
    if not subject:
        return [email]

    candidates = query.filter(Email.subject.ilike(f"%{subject}%")).all()
    return [e for e in candidates if e.id == email.id or normalize_subject(e.subject) == subject]


def find_threadless_subject_matches(db: Session, email: Email) -> List[Email]:
    """Emails without a thread id whose normalized subject equals that of `email`."""
    subject = normalize_subject(email.subject)
    if not subject:
        return []

    candidates = db.query(Email).filter(
        Email.account_id == email.account_id,
        Email.thread_id.is_(None),
        Email.subject.ilike(f"%{subject}%")
    ).all()
    return [e for e in candidates if e.id != email.id and normalize_subject(e.subject) == subject]


def find_responses(
    db: Session,
    email: Email,
    connected_addresses: Optional[Iterable[str]] = None
) -> List[Email]:
    """Stored business replies to `email`, oldest first."""
    if connected_addresses is None:
        connected_addresses = get_connected_addresses(db)
    return later_responses(email, find_thread_emails(db, email), connected_addresses)


def apply_classification(
    db: Session,
    email: Email,
    connected_addresses: Optional[Iterable[str]] = None,
    thread_emails: Optional[Sequence[Email]] = None
) -> bool:
    """
    Classify an email and write the result onto the row.

    Idempotent: re-applying with an unchanged thread writes nothing.
    When an email newly becomes qualified its processed_for_faq flag is
    reset so the next FAQ job mines it.

    Does not commit; the caller owns the transaction.

    Returns:
        True if any classification column changed
    """
    if connected_addresses is None:
        connected_addresses = get_connected_addresses(db)
    if thread_emails is None:
        thread_emails = find_thread_emails(db, email)

    result = classify_email(email, thread_emails, connected_addresses)

    changes = {
        "direction": result.direction,
        "has_response": result.has_response,
        "response_count": result.response_count,
        "filtering_status": result.filtering_status,
        "filtering_reason": result.filtering_reason,
    }
    changed = any(getattr(email, field) != value for field, value in changes.items())
    if not changed:
        return False

    became_qualified = (
        email.filtering_status != FilteringStatus.qualified.value
        and result.filtering_status == FilteringStatus.qualified.value
    )

    for field, value in changes.items():
        setattr(email, field, value)

    if became_qualified:
        email.processed_for_faq = False
        email.processed_at = None

    logger.info("email_classified",
               email_id=email.id,
               direction=result.direction,
               filtering_status=result.filtering_status,
               has_response=result.has_response,
               became_qualified=became_qualified)
    return True


def reclassify_thread(
    db: Session,
    email: Email,
    connected_addresses: Optional[Iterable[str]] = None
) -> int:
    """
    Re-run classification for every email in the conversation of `email`.

    Called when a new message arrives, since a later outbound reply changes
    the verdict of earlier inbound messages. Does not commit.

    Returns:
        Number of emails whose classification changed
    """
    if connected_addresses is None:
        connected_addresses = get_connected_addresses(db)
    thread = find_thread_emails(db, email)
    if email not in thread:
        thread.append(email)

    # A threaded reply can answer a customer email the provider left unthreaded
    threadless = find_threadless_subject_matches(db, email) if email.thread_id else []

    changed = 0
    for member in thread:
        if apply_classification(db, member, connected_addresses, thread):
            changed += 1
    for member in threadless:
        if member in thread:
            continue
        if apply_classification(db, member, connected_addresses):
            changed += 1

    if changed:
        db.flush()
    logger.info("thread_reclassified",
               email_id=email.id,
               thread_id=email.thread_id,
               thread_size=len(thread),
               changed=changed)
    return changed


def classify_pending_emails(
    db: Session,
    account_id: Optional[int] = None
) -> dict:
    """
    Re-scan every email that is not yet qualified and commit changes.

    Safety net for threads whose replies arrived without triggering a
    reclassification (bulk imports, missed sync windows).

    Returns:
        dict with scanned, changed and qualified counts
    """
    connected = get_connected_addresses(db)

    query = db.query(Email).filter(
        Email.filtering_status != FilteringStatus.qualified.value
    )
    if account_id is not None:
        query = query.filter(Email.account_id == account_id)

    scanned = 0
    changed = 0
    qualified = 0
    for email in query.order_by(Email.id).all():
        scanned += 1
        if apply_classification(db, email, connected):
            changed += 1
            if email.filtering_status == FilteringStatus.qualified.value:
                qualified += 1

    db.commit()

    logger.info("pending_emails_classified",
               account_id=account_id,
               scanned=scanned,
               changed=changed,
               qualified=qualified)
    return {"scanned": scanned, "changed": changed, "qualified": qualified}
