"""
Clustering Engine
Incrementally assigns embedded questions to FAQ groups by centroid similarity

Each question is compared with the centroids of existing groups. It joins
the most similar group when the similarity reaches the join threshold,
otherwise it founds a new group. Group rows are only written here.
"""

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.models.faq_group import FAQGroup, QuestionGroupMembership
from app.models.pipeline_schemas import ClusterAssignment
from app.models.question import Question
from app.services.clustering.similarity import cosine_similarity, running_mean, update_centroid
from app.services.errors import ConcurrencyConflict
from app.services.retry import RetryPolicy

logger = structlog.get_logger(__name__)

# Categories too vague to restrict the candidate set
GENERIC_CATEGORIES = {"", "general", "other", "unknown", "misc", "miscellaneous"}


def is_reliable_category(category: Optional[str]) -> bool:
    return bool(category) and category.strip().lower() not in GENERIC_CATEGORIES


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.max.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ClusteringEngine:
    """
    Owner of FAQGroup and QuestionGroupMembership writes.

    Joins take a row lock on the group (SELECT ... FOR UPDATE) and the
    group's version counter turns any concurrent update that slipped past
    the lock into a StaleDataError; both paths are retried with backoff.

    assign() and set_answer() commit their own transaction.
    """

    def __init__(
        self,
        join_threshold: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep_fn: Callable[[float], None] = time.sleep
    ):
        self.join_threshold = settings.cluster_join_threshold if join_threshold is None else join_threshold
        self.max_attempts = max_attempts or settings.cluster_max_retries
        self.backoff_seconds = settings.cluster_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.sleep_fn = sleep_fn

    def _policy(self, stage: str) -> RetryPolicy:
        return RetryPolicy(
            stage=stage,
            max_attempts=self.max_attempts,
            base_delay=self.backoff_seconds,
            sleep_fn=self.sleep_fn,
        )

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(self, db: Session, question: Question) -> Optional[ClusterAssignment]:
        """
        Place a question into a group.

        Returns:
            ClusterAssignment, or None when the question has no embedding
            or already belongs to a group

        Raises:
            StorageError: concurrency conflicts persisted past the retry limit
        """
        if not question.embedding:
            logger.debug("cluster_skipped_no_embedding", question_id=question.id)
            return None

        if self._existing_membership(db, question.id) is not None:
            logger.debug("cluster_skipped_already_member", question_id=question.id)
            return None

        return self._policy("cluster_assign").execute(self._assign_once, db, question)

    def _existing_membership(self, db: Session, question_id: int) -> Optional[QuestionGroupMembership]:
        return db.query(QuestionGroupMembership).filter(
            QuestionGroupMembership.question_id == question_id
        ).first()

    def candidate_groups(self, db: Session, category: Optional[str]) -> List[FAQGroup]:
        query = db.query(FAQGroup).filter(FAQGroup.centroid.isnot(None))
        if is_reliable_category(category):
            query = query.filter(FAQGroup.category == category)
        return query.order_by(FAQGroup.id).all()

    def _assign_once(self, db: Session, question: Question) -> Optional[ClusterAssignment]:
        best_group = None
        best_similarity = -1.0
        for group in self.candidate_groups(db, question.category):
            if len(group.centroid) != len(question.embedding):
                continue
            similarity = cosine_similarity(question.embedding, group.centroid)
            if similarity > best_similarity:
                best_group, best_similarity = group, similarity

        if best_group is not None and best_similarity >= self.join_threshold:
            return self._join(db, best_group.id, question)
        return self._create(db, question)

    def _join(self, db: Session, group_id: int, question: Question) -> Optional[ClusterAssignment]:
        try:
            group = db.query(FAQGroup).filter(
                FAQGroup.id == group_id
            ).with_for_update().populate_existing().one()

            # Centroid may have moved since candidates were scored
            similarity = cosine_similarity(question.embedding, group.centroid)
            if similarity < self.join_threshold:
                db.rollback()
                raise ConcurrencyConflict(
                    f"group {group_id} drifted below join threshold ({similarity:.4f})"
                )

            new_count = (group.question_count or 0) + 1
            group.avg_confidence = running_mean(group.avg_confidence or 0.0, question.confidence, new_count)
            group.centroid = update_centroid(group.centroid, question.embedding, new_count)
            group.question_count = new_count

            if self._takes_title(db, group, question):
                group.title = question.text
                group.max_confidence = question.confidence
                group.representative_question_id = question.id

            db.add(QuestionGroupMembership(
                question_id=question.id,
                group_id=group.id,
                similarity_score=similarity,
            ))
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise ConcurrencyConflict(f"group {group_id} version changed") from e
        except IntegrityError:
            # Another worker assigned this question first
            db.rollback()
            logger.info("cluster_membership_exists", question_id=question.id)
            return None

        logger.info("question_joined_group",
                   question_id=question.id,
                   group_id=group_id,
                   similarity=round(similarity, 4),
                   question_count=new_count)
        return ClusterAssignment(group_id=group_id, created=False, similarity=similarity)

    def _takes_title(self, db: Session, group: FAQGroup, question: Question) -> bool:
        """Higher confidence wins the title; on an exact tie the earlier question keeps it."""
        current_max = group.max_confidence or 0.0
        if question.confidence > current_max:
            return True
        if question.confidence < current_max or group.representative_question_id is None:
            return False

        representative = db.get(Question, group.representative_question_id)
        if representative is None:
            return True
        return (_as_utc(question.created_at), question.id) < (_as_utc(representative.created_at), representative.id)

    def _create(self, db: Session, question: Question) -> Optional[ClusterAssignment]:
        try:
            max_order = db.query(func.max(FAQGroup.sort_order)).scalar()
            group = FAQGroup(
                title=question.text,
                category=question.category,
                question_count=1,
                avg_confidence=question.confidence,
                max_confidence=question.confidence,
                representative_question_id=question.id,
                centroid=[float(v) for v in question.embedding],
                sort_order=(max_order or 0) + 1,
                is_published=False,
            )
            db.add(group)
            db.flush()

            db.add(QuestionGroupMembership(
                question_id=question.id,
                group_id=group.id,
                similarity_score=1.0,
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("cluster_membership_exists", question_id=question.id)
            return None

        logger.info("faq_group_created",
                   question_id=question.id,
                   group_id=group.id,
                   category=group.category,
                   sort_order=group.sort_order)
        return ClusterAssignment(group_id=group.id, created=True, similarity=1.0)

    # ------------------------------------------------------------------
    # Answer and statistics writes
    # ------------------------------------------------------------------

    def set_answer(self, db: Session, group_id: int, answer: str) -> None:
        """Write a synthesized answer under the group lock."""
        self._policy("set_answer").execute(self._set_answer_once, db, group_id, answer)

    def _set_answer_once(self, db: Session, group_id: int, answer: str) -> None:
        try:
            group = db.query(FAQGroup).filter(
                FAQGroup.id == group_id
            ).with_for_update().populate_existing().one()
            group.answer = answer
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise ConcurrencyConflict(f"group {group_id} version changed") from e
        logger.info("faq_answer_stored", group_id=group_id, answer_chars=len(answer))

    def recompute_statistics(self, db: Session, group_id: int) -> FAQGroup:
        """Rebuild question_count, avg_confidence and max_confidence from memberships."""
        return self._policy("recompute_statistics").execute(self._recompute_once, db, group_id)

    def _recompute_once(self, db: Session, group_id: int) -> FAQGroup:
        try:
            group = db.query(FAQGroup).filter(
                FAQGroup.id == group_id
            ).with_for_update().populate_existing().one()

            members = db.query(Question).join(
                QuestionGroupMembership, QuestionGroupMembership.question_id == Question.id
            ).filter(QuestionGroupMembership.group_id == group_id).all()

            group.question_count = len(members)
            if members:
                group.avg_confidence = sum(q.confidence for q in members) / len(members)
                best = min(members, key=lambda q: (-q.confidence, _as_utc(q.created_at), q.id))
                group.max_confidence = best.confidence
                group.representative_question_id = best.id
                group.title = best.text
            else:
                group.avg_confidence = 0.0
                group.max_confidence = 0.0
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise ConcurrencyConflict(f"group {group_id} version changed") from e

        logger.info("faq_group_statistics_recomputed",
                   group_id=group_id,
                   question_count=group.question_count,
                   avg_confidence=round(group.avg_confidence, 4))
        return group


# Global instance
clustering_engine = ClusteringEngine()
