"""
Question Model
Customer questions extracted from qualified emails
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Float, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Question(Base):
    """
    A validated question extracted from one email.

    The idempotency_key is derived from the normalized question text, so
    re-running extraction against the same email never inserts a duplicate.
    The embedding stays NULL until the embedding capability succeeds.
    """
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    source_email_id = Column(Integer, ForeignKey("emails.id"), nullable=False, index=True)

    text = Column(Text, nullable=False)
    idempotency_key = Column(String(255), nullable=False)
    confidence = Column(Float, nullable=False, default=0.0)
    category = Column(String(100), nullable=True)
    quality_score = Column(Float, nullable=True)

    # Vector from the embedding capability (list of floats)
    embedding = Column(JSON, nullable=True)

    # Denormalized for the FAQ display
    sender_email = Column(String(255), nullable=True)
    sender_name = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    source_email = relationship("Email", back_populates="questions")
    membership = relationship("QuestionGroupMembership", back_populates="question", uselist=False)

    __table_args__ = (
        UniqueConstraint("source_email_id", "idempotency_key", name="uq_questions_email_key"),
    )

    def __repr__(self):
        return f"<Question(id={self.id}, email_id={self.source_email_id}, confidence={self.confidence})>"
