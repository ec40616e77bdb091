"""
FAQ Curation Service
Admin ordering and publishing of FAQ groups, plus reader view/feedback counters
"""

import time
from typing import Callable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.models.faq_group import FAQGroup
from app.services.clustering.similarity import cosine_similarity
from app.services.embedding_indexer import EmbeddingIndexer
from app.services.errors import ConcurrencyConflict
from app.services.retry import RetryPolicy

logger = structlog.get_logger(__name__)


class UnknownGroupError(ValueError):
    """A reorder request named a group id that does not exist."""


class FAQCurationService:
    """
    Curation writes on FAQGroup rows.

    Same locking discipline as the clustering engine: rows are locked with
    SELECT ... FOR UPDATE and a stale version is retried with backoff.
    Every public method commits.
    """

    def __init__(self, max_attempts: int = 3, backoff_seconds: float = 0.05,
                 sleep_fn: Callable[[float], None] = time.sleep):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.sleep_fn = sleep_fn

    def _run(self, stage: str, func, *args):
        policy = RetryPolicy(
            stage=stage,
            max_attempts=self.max_attempts,
            base_delay=self.backoff_seconds,
            sleep_fn=self.sleep_fn,
        )
        return policy.execute(self._guarded, func, *args)

    def _guarded(self, func, db: Session, *args):
        try:
            return func(db, *args)
        except StaleDataError as e:
            db.rollback()
            raise ConcurrencyConflict(str(e)) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_groups(
        self,
        db: Session,
        published_only: bool = True,
        category: Optional[str] = None,
        sort: str = "order",
        limit: int = 50,
        offset: int = 0
    ) -> List[FAQGroup]:
        """
        FAQ groups in display order.

        sort="order" follows the curated sort_order, sort="popular" ranks by
        views and helpful votes, sort="frequency" by how often the question
        was asked.
        """
        query = db.query(FAQGroup)
        if published_only:
            query = query.filter(FAQGroup.is_published.is_(True))
        if category:
            query = query.filter(FAQGroup.category == category)

        if sort == "popular":
            query = query.order_by(FAQGroup.view_count.desc(), FAQGroup.helpful_count.desc(), FAQGroup.id)
        elif sort == "frequency":
            query = query.order_by(
                (FAQGroup.question_count * FAQGroup.avg_confidence).desc(), FAQGroup.id
            )
        else:
            query = query.order_by(FAQGroup.sort_order, FAQGroup.created_at.desc(), FAQGroup.id)
        return query.offset(offset).limit(limit).all()

    def search(
        self,
        db: Session,
        indexer: EmbeddingIndexer,
        text: str,
        limit: int = 10,
        min_similarity: Optional[float] = None
    ) -> Optional[List[Tuple[FAQGroup, float]]]:
        """
        Published groups whose centroid is close to the embedded search text,
        most similar first.

        Returns:
            (group, similarity) pairs, or None when the text could not be embedded
        """
        threshold = settings.faq_search_min_similarity if min_similarity is None else min_similarity

        vector = indexer.embed(text)
        if vector is None:
            return None

        groups = db.query(FAQGroup).filter(FAQGroup.is_published.is_(True)).all()

        matches: List[Tuple[FAQGroup, float]] = []
        for group in groups:
            if not group.centroid or len(group.centroid) != len(vector):
                continue
            similarity = cosine_similarity(vector, group.centroid)
            if similarity >= threshold:
                matches.append((group, similarity))

        matches.sort(key=lambda match: (-match[1], match[0].id))
        logger.info("faq_search", candidates=len(groups), matches=len(matches))
        return matches[:limit]

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def reorder(self, db: Session, ordered_ids: Sequence[int]) -> List[FAQGroup]:
        """
        Put the given groups first, in the given order, and renumber every
        group densely from 1. Groups not listed keep their relative order.

        Raises:
            UnknownGroupError: an id does not exist
        """
        return self._run("faq_reorder", self._reorder_once, db, list(ordered_ids))

    def _reorder_once(self, db: Session, ordered_ids: List[int]) -> List[FAQGroup]:
        groups = db.query(FAQGroup).order_by(
            FAQGroup.sort_order, FAQGroup.id
        ).with_for_update().populate_existing().all()
        by_id = {group.id: group for group in groups}

        missing = [group_id for group_id in ordered_ids if group_id not in by_id]
        if missing:
            db.rollback()
            raise UnknownGroupError(f"Unknown FAQ group ids: {missing}")

        seen = set()
        ordered: List[FAQGroup] = []
        for group_id in ordered_ids:
            if group_id not in seen:
                seen.add(group_id)
                ordered.append(by_id[group_id])
        ordered.extend(group for group in groups if group.id not in seen)

        for position, group in enumerate(ordered, 1):
            if group.sort_order != position:
                group.sort_order = position
        db.commit()

        logger.info("faq_groups_reordered", moved=len(seen), total=len(ordered))
        return ordered

    # ------------------------------------------------------------------
    # Publishing and reader counters
    # ------------------------------------------------------------------

    def _lock(self, db: Session, group_id: int) -> Optional[FAQGroup]:
        return db.query(FAQGroup).filter(
            FAQGroup.id == group_id
        ).with_for_update().populate_existing().first()

    def set_published(self, db: Session, group_id: int, published: bool) -> Optional[FAQGroup]:
        return self._run("faq_publish", self._set_published_once, db, group_id, published)

    def _set_published_once(self, db: Session, group_id: int, published: bool) -> Optional[FAQGroup]:
        group = self._lock(db, group_id)
        if group is None:
            db.rollback()
            return None
        group.is_published = published
        db.commit()
        logger.info("faq_group_publish_changed", group_id=group_id, is_published=published)
        return group

    def record_view(self, db: Session, group_id: int) -> Optional[FAQGroup]:
        """Count one view of a published group; None if it is not published."""
        return self._run("faq_view", self._record_view_once, db, group_id)

    def _record_view_once(self, db: Session, group_id: int) -> Optional[FAQGroup]:
        group = self._lock(db, group_id)
        if group is None or not group.is_published:
            db.rollback()
            return None
        group.view_count = (group.view_count or 0) + 1
        db.commit()
        return group

    def record_feedback(self, db: Session, group_id: int, helpful: bool) -> Optional[FAQGroup]:
        """Count a helpful / not helpful vote on a published group."""
        return self._run("faq_feedback", self._record_feedback_once, db, group_id, helpful)

    def _record_feedback_once(self, db: Session, group_id: int, helpful: bool) -> Optional[FAQGroup]:
        group = self._lock(db, group_id)
        if group is None or not group.is_published:
            db.rollback()
            return None
        if helpful:
            group.helpful_count = (group.helpful_count or 0) + 1
        else:
            group.not_helpful_count = (group.not_helpful_count or 0) + 1
        db.commit()
        logger.info("faq_feedback_recorded", group_id=group_id, helpful=helpful)
        return group


# Global instance
faq_curation = FAQCurationService()
