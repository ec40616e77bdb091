"""
Email Ingestion Service
Stores normalized mailbox messages and reclassifies the affected conversation
"""

from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from app.models.email import Email, FilteringStatus
from app.models.email_account import EmailAccount
from app.models.pipeline_schemas import NormalizedEmail
from app.services.eligibility_classifier import get_connected_addresses, reclassify_thread
from app.services.message_normalizer import message_normalizer

logger = structlog.get_logger(__name__)


class EmailIngestionService:
    """
    Entry point for messages coming from a mailbox sync.

    Emails are stored once per (account, provider message id). Every newly
    stored email triggers reclassification of its whole conversation, since
    a business reply turns earlier customer emails into qualified ones.
    """

    def __init__(self, db: Session):
        self.db = db

    def ingest(self, account: EmailAccount, normalized: NormalizedEmail) -> Email:
        """
        Store one normalized email (idempotent) and commit.

        Returns:
            The stored Email row (existing row when already ingested)
        """
        existing = self.db.query(Email).filter(
            Email.account_id == account.id,
            Email.message_id == normalized.message_id
        ).first()
        if existing is not None:
            logger.info("email_already_ingested",
                       account_id=account.id,
                       email_id=existing.id,
                       message_id=normalized.message_id)
            return existing

        email = Email(
            account_id=account.id,
            message_id=normalized.message_id,
            thread_id=normalized.thread_id,
            sender_email=normalized.sender_email,
            sender_name=normalized.sender_name,
            recipients=", ".join(normalized.recipients) if normalized.recipients else None,
            subject=normalized.subject,
            body_text=normalized.body_text,
            received_at=normalized.received_at,
            filtering_status=FilteringStatus.pending.value,
            processed_for_faq=False,
        )
        self.db.add(email)
        self.db.flush()

        changed = reclassify_thread(self.db, email, get_connected_addresses(self.db))
        self.db.commit()

        logger.info("email_ingested",
                   account_id=account.id,
                   email_id=email.id,
                   thread_id=email.thread_id,
                   filtering_status=email.filtering_status,
                   reclassified=changed)
        return email

    def ingest_raw(self, account: EmailAccount, message: Dict, provider: Optional[str] = None) -> Email:
        """Normalize a provider payload (auto-detected when provider is None) and ingest it."""
        normalized = message_normalizer.normalize(message, provider=provider)
        return self.ingest(account, normalized)
