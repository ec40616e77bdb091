"""
FAQ Group Models
Clusters of near-duplicate questions and their membership rows
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Float,
    Boolean,
    JSON,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class FAQGroup(Base):
    """
    A published (or pending) FAQ entry backed by a cluster of questions.

    Clustering and curation writes lock the row first. The version column
    is SQLAlchemy's version counter: every UPDATE carries the version it read,
    so a concurrent writer gets a StaleDataError instead of a lost update.
    """
    __tablename__ = "faq_groups"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(Text, nullable=False)
    answer = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)

    # Aggregates over memberships
    question_count = Column(Integer, nullable=False, default=0)
    avg_confidence = Column(Float, nullable=False, default=0.0)
    max_confidence = Column(Float, nullable=False, default=0.0)
    representative_question_id = Column(Integer, ForeignKey("questions.id"), nullable=True)

    # Running mean of member embeddings
    centroid = Column(JSON, nullable=True)

    # Curation
    sort_order = Column(Integer, nullable=False, default=0)
    is_published = Column(Boolean, nullable=False, default=False)
    view_count = Column(Integer, nullable=False, default=0)
    helpful_count = Column(Integer, nullable=False, default=0)
    not_helpful_count = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship("QuestionGroupMembership", back_populates="group")

    __mapper_args__ = {"version_id_col": version}

    @property
    def frequency_score(self) -> float:
        """How often (weighted by confidence) customers ask this question."""
        return (self.question_count or 0) * (self.avg_confidence or 0.0)

    def __repr__(self):
        return f"<FAQGroup(id={self.id}, question_count={self.question_count}, version={self.version})>"


class QuestionGroupMembership(Base):
    """
    Assignment of a question to exactly one FAQ group.

    question_id is the primary key, so a question can never be a member of
    two groups. Memberships are immutable once written.
    """
    __tablename__ = "question_groups"

    question_id = Column(Integer, ForeignKey("questions.id"), primary_key=True)
    group_id = Column(Integer, ForeignKey("faq_groups.id"), nullable=False, index=True)
    similarity_score = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    question = relationship("Question", back_populates="membership")
    group = relationship("FAQGroup", back_populates="memberships")

    def __repr__(self):
        return f"<QuestionGroupMembership(question_id={self.question_id}, group_id={self.group_id})>"
