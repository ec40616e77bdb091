"""
Email Model
Stores synced mailbox messages together with their FAQ eligibility classification
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class EmailDirection(str, Enum):
    inbound = "inbound"
    outbound = "outbound"
    unknown = "unknown"


class FilteringStatus(str, Enum):
    pending = "pending"
    qualified = "qualified"
    filtered_out = "filtered_out"


class Email(Base):
    """
    A single message from a connected mailbox.

    Classification columns (direction, has_response, filtering_status) are
    owned by the eligibility classifier. Emails are never deleted; they are
    reclassified whenever their thread changes.
    """
    __tablename__ = "emails"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("email_accounts.id"), nullable=False, index=True)

    # Provider identity
    message_id = Column(String(255), nullable=False)
    thread_id = Column(String(255), nullable=True, index=True)

    # Email Metadata
    sender_email = Column(String(255), nullable=False, index=True)
    sender_name = Column(String(255), nullable=True)
    recipients = Column(Text, nullable=True)
    subject = Column(String(500), nullable=True)
    body_text = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False)

    # Eligibility Classification
    direction = Column(String(20), nullable=False, default=EmailDirection.unknown.value)
    has_response = Column(Boolean, nullable=False, default=False)
    response_count = Column(Integer, nullable=False, default=0)
    filtering_status = Column(String(20), nullable=False, default=FilteringStatus.pending.value, index=True)
    filtering_reason = Column(String(255), nullable=True)

    # FAQ Processing
    processed_for_faq = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processing_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    questions = relationship("Question", back_populates="source_email")

    __table_args__ = (
        UniqueConstraint("account_id", "message_id", name="uq_emails_account_message"),
        Index("ix_emails_account_status_processed", "account_id", "filtering_status", "processed_for_faq"),
    )

    def __repr__(self):
        return (
            f"<Email(id={self.id}, sender='{self.sender_email}', "
            f"direction='{self.direction}', filtering_status='{self.filtering_status}')>"
        )
