"""
Answer Synthesizer Service
Writes one consolidated answer per FAQ group from its member questions and source emails
"""

from typing import Iterable, List, Optional, Sequence

import structlog
from sqlalchemy.orm import Session

from app.config import settings
from app.models.email import Email
from app.models.faq_group import FAQGroup, QuestionGroupMembership
from app.models.question import Question
from app.services.capabilities import CapabilityError, TextCompletion
from app.services.clustering.engine import ClusteringEngine, clustering_engine
from app.services.eligibility_classifier import find_responses, get_connected_addresses

logger = structlog.get_logger(__name__)


class AnswerSynthesizer:
    """
    Produces group answers through the text-completion capability.

    A failed call leaves the previous answer untouched; the answer is
    written through the clustering engine, which owns group rows.
    """

    def __init__(
        self,
        completion: TextCompletion,
        engine: Optional[ClusteringEngine] = None,
        max_questions: Optional[int] = None,
        context_chars: Optional[int] = None,
        max_replies: int = 3
    ):
        self.completion = completion
        self.engine = engine or clustering_engine
        self.max_questions = max_questions or settings.synthesis_max_questions
        self.context_chars = context_chars or settings.synthesis_context_chars
        self.max_replies = max_replies

    def _group_material(self, db: Session, group_id: int):
        rows = db.query(Question, Email).join(
            QuestionGroupMembership, QuestionGroupMembership.question_id == Question.id
        ).join(
            Email, Email.id == Question.source_email_id
        ).filter(
            QuestionGroupMembership.group_id == group_id
        ).order_by(Question.confidence.desc(), Question.id).limit(self.max_questions).all()

        connected = get_connected_addresses(db)
        questions: List[str] = []
        contexts: List[str] = []
        seen_emails = set()
        for question, email in rows:
            questions.append(question.text)
            if email.id in seen_emails:
                continue
            seen_emails.add(email.id)
            if email.body_text:
                contexts.append(email.body_text[:self.context_chars])
            # Later business replies in the same conversation, oldest first
            for reply in find_responses(db, email, connected)[:self.max_replies]:
                if reply.id in seen_emails or not reply.body_text:
                    continue
                seen_emails.add(reply.id)
                contexts.append(f"Business reply: {reply.body_text[:self.context_chars]}")
        return questions, contexts

    def synthesize_for_group(self, db: Session, group_id: int) -> Optional[str]:
        """
        Synthesize and store the answer for one group.

        Returns:
            The new answer, or None when synthesis failed (previous answer kept)
        """
        group = db.get(FAQGroup, group_id)
        if group is None:
            logger.warning("synthesis_group_missing", group_id=group_id)
            return None

        questions, contexts = self._group_material(db, group_id)
        if not questions:
            logger.info("synthesis_skipped_no_questions", group_id=group_id)
            return None

        try:
            answer = self.completion.synthesize_answer(questions, contexts)
        except CapabilityError as e:
            logger.warning("answer_synthesis_failed",
                          group_id=group_id,
                          error=str(e),
                          exception_type=type(e).__name__)
            return None
        except Exception as e:
            logger.error("answer_synthesis_unexpected_error",
                        group_id=group_id,
                        error=str(e),
                        exc_info=True)
            return None

        if not answer or not answer.strip():
            logger.info("answer_synthesis_empty", group_id=group_id)
            return None

        answer = answer.strip()
        self.engine.set_answer(db, group_id, answer)
        logger.info("answer_synthesized",
                   group_id=group_id,
                   questions=len(questions),
                   contexts=len(contexts))
        return answer

    def synthesize_groups(self, db: Session, group_ids: Iterable[int]) -> int:
        """Synthesize answers for each group once; returns how many succeeded."""
        synthesized = 0
        for group_id in sorted(set(group_ids)):
            if self.synthesize_for_group(db, group_id) is not None:
                synthesized += 1
        return synthesized

    def improve_answer(self, original_answer: Optional[str], context_questions: Sequence[str]) -> Optional[str]:
        """
        Rewrite an answer for clarity. Standalone; stores nothing.

        Returns None without calling the capability when there is neither
        an answer nor context, and None when the call fails.
        """
        has_answer = bool(original_answer and original_answer.strip())
        questions = [q for q in (context_questions or []) if q and q.strip()]
        if not has_answer and not questions:
            return None

        try:
            improved = self.completion.improve_answer(original_answer or "", questions)
        except CapabilityError as e:
            logger.warning("answer_improvement_failed", error=str(e))
            return None
        except Exception as e:
            logger.error("answer_improvement_unexpected_error", error=str(e), exc_info=True)
            return None

        if not improved or not improved.strip():
            return None
        return improved.strip()
