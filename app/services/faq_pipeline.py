"""
FAQ Pipeline Orchestrator
Runs classification, extraction, validation, embedding, clustering and answer synthesis over a job's emails

State machine (ProcessingJob.status):
- pending -> processing: on dequeue; total_items = batch size, progress = 0
- processing: after every email processed_items += 1, progress = floor(100 * p / t)
- processing -> completed: after the last email and answer synthesis; progress = 100
- processing -> error: storage failure or cancellation

The last increment of processed_items is committed together with the
completed transition, so progress reads 100 exactly when the job is done.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.email import Email, FilteringStatus
from app.models.faq_group import QuestionGroupMembership
from app.models.job_events import CompleteEvent, ErrorEvent, ProgressEvent
from app.models.processing_job import JobStatus, JobType, ProcessingJob
from app.models.question import Question
from app.services.answer_synthesizer import AnswerSynthesizer
from app.services.capabilities import Embedding, TextCompletion
from app.services.clustering.engine import ClusteringEngine
from app.services.eligibility_classifier import apply_classification, get_connected_addresses
from app.services.embedding_indexer import EmbeddingIndexer
from app.services.errors import StorageError
from app.services.event_publisher import EventPublisher, get_event_publisher
from app.services.idempotency import get_or_create_question
from app.services.monitoring.error_tracking import set_processing_context
from app.services.quality_validator import QualityValidator, quality_validator
from app.services.question_extractor import QuestionExtractor

logger = structlog.get_logger(__name__)

CANCELLED_MESSAGE = "Job cancelled by user"
LABEL_MAX_CHARS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EmailOutcome:
    """Per-email counters folded into the job totals."""
    questions_found: int = 0
    errors: int = 0
    groups_created: int = 0
    questions_grouped: int = 0
    touched_groups: Set[int] = field(default_factory=set)


# ----------------------------------------------------------------------
# Job management
# ----------------------------------------------------------------------

def select_unprocessed_email_ids(db: Session, account_id: int, limit: Optional[int] = None) -> List[int]:
    """Ids of the account's emails the FAQ pipeline has not processed yet, oldest first."""
    query = db.query(Email.id).filter(
        Email.account_id == account_id,
        Email.processed_for_faq.is_(False)
    ).order_by(Email.received_at, Email.id)
    if limit:
        query = query.limit(limit)
    return [row[0] for row in query.all()]


def create_job(
    db: Session,
    account_id: Optional[int],
    email_ids: List[int],
    job_type: str = JobType.faq_processing.value
) -> ProcessingJob:
    """Create a pending job over an ordered email batch and commit."""
    job = ProcessingJob(
        job_type=job_type,
        status=JobStatus.pending.value,
        account_id=account_id,
        parameters={"email_ids": list(email_ids)},
        total_items=len(email_ids),
        processed_items=0,
        progress=0,
    )
    db.add(job)
    db.commit()
    logger.info("processing_job_created",
               job_id=job.id,
               account_id=account_id,
               job_type=job_type,
               total_items=len(email_ids))
    return job


def request_cancellation(db: Session, job_id: int) -> Optional[ProcessingJob]:
    """
    Ask a job to stop; honored before the next email.

    A pending job is cancelled right away. Terminal jobs are returned unchanged.
    """
    job = db.get(ProcessingJob, job_id)
    if job is None or job.is_terminal:
        return job

    if job.status == JobStatus.pending.value:
        job.status = JobStatus.error.value
        job.error_message = CANCELLED_MESSAGE
        job.completed_at = _utcnow()
    job.cancel_requested = True
    db.commit()
    logger.info("processing_job_cancel_requested", job_id=job_id, status=job.status)
    return job


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

class FAQPipeline:
    """
    Processes one ProcessingJob at a time, email by email.

    Capability failures are counted per email and never abort the batch;
    storage failures move the job to `error` and emit an error event.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        completion: TextCompletion,
        embedding: Embedding,
        publisher: Optional[EventPublisher] = None,
        engine: Optional[ClusteringEngine] = None,
        validator: Optional[QualityValidator] = None
    ):
        self.session_factory = session_factory
        self.extractor = QuestionExtractor(completion)
        self.validator = validator or quality_validator
        self.indexer = EmbeddingIndexer(embedding)
        self.engine = engine or ClusteringEngine()
        self.synthesizer = AnswerSynthesizer(completion, self.engine)
        self.publisher = publisher or get_event_publisher()

    def run_job(self, job_id: int) -> Optional[ProcessingJob]:
        """
        Run a pending job to completion.

        Returns:
            The job row in its final state, or None if it could not be claimed
        """
        db = self.session_factory()
        try:
            job = db.query(ProcessingJob).filter(
                ProcessingJob.id == job_id
            ).with_for_update(skip_locked=True).first()

            if job is None:
                logger.warning("processing_job_not_found_or_locked", job_id=job_id)
                return None

            if job.status != JobStatus.pending.value:
                logger.info("processing_job_not_pending", job_id=job_id, status=job.status)
                return job

            email_ids = job.email_ids
            job.status = JobStatus.processing.value
            job.started_at = _utcnow()
            job.total_items = len(email_ids)
            job.processed_items = 0
            job.progress = 0
            db.commit()

            logger.info("processing_job_started", job_id=job_id, total_items=len(email_ids))

            try:
                self._run(db, job, email_ids)
            except (SQLAlchemyError, StorageError) as e:
                logger.error("processing_job_storage_error",
                            job_id=job_id,
                            error=str(e),
                            exception_type=type(e).__name__)
                db.rollback()
                self._fail(db, job_id, str(e))
            except Exception as e:
                logger.error("processing_job_crashed",
                            job_id=job_id,
                            error=str(e),
                            exc_info=True)
                db.rollback()
                self._fail(db, job_id, str(e))
                raise

            final = db.get(ProcessingJob, job_id)
            db.refresh(final)
            return final
        finally:
            db.close()

    def _run(self, db: Session, job: ProcessingJob, email_ids: List[int]) -> None:
        total = len(email_ids)
        touched_groups: Set[int] = set()
        connected = get_connected_addresses(db)
        last_label = None

        for index, email_id in enumerate(email_ids):
            db.refresh(job)
            if job.cancel_requested:
                logger.info("processing_job_cancelled", job_id=job.id, processed_items=index)
                self._fail(db, job.id, CANCELLED_MESSAGE)
                return

            set_processing_context(job.id, email_id=email_id)
            outcome, label = self._process_email(db, job.id, email_id, connected)
            touched_groups |= outcome.touched_groups

            job.questions_found += outcome.questions_found
            job.errors_count += outcome.errors
            job.faq_groups_created += outcome.groups_created
            job.questions_grouped += outcome.questions_grouped

            processed = index + 1
            if processed < total:
                job.processed_items = processed
                job.progress = (100 * processed) // total
                db.commit()
                self._emit_progress(job, label)
            else:
                # Final increment lands with the completed transition
                db.commit()
                last_label = label

        if touched_groups:
            set_processing_context(job.id, stage="synthesize")
            synthesized = self.synthesizer.synthesize_groups(db, touched_groups)
            logger.info("processing_job_answers_synthesized",
                       job_id=job.id,
                       groups=len(touched_groups),
                       synthesized=synthesized)

        job = db.get(ProcessingJob, job.id)
        job.processed_items = total
        job.progress = 100
        job.status = JobStatus.completed.value
        job.completed_at = _utcnow()
        db.commit()

        if total:
            self._emit_progress(job, last_label)
        self.publisher.publish(CompleteEvent(
            job_id=job.id,
            processed=job.processed_items,
            questions_found=job.questions_found,
            faq_groups_created=job.faq_groups_created,
            questions_grouped=job.questions_grouped,
        ))
        logger.info("processing_job_completed",
                   job_id=job.id,
                   processed=job.processed_items,
                   questions_found=job.questions_found,
                   errors=job.errors_count,
                   faq_groups_created=job.faq_groups_created,
                   questions_grouped=job.questions_grouped)

    def _emit_progress(self, job: ProcessingJob, label: Optional[str]) -> None:
        self.publisher.publish(ProgressEvent(
            job_id=job.id,
            current=job.processed_items,
            total=job.total_items,
            questions_found=job.questions_found,
            errors=job.errors_count,
            current_email_label=label,
        ))

    def _fail(self, db: Session, job_id: int, message: str) -> None:
        job = db.get(ProcessingJob, job_id)
        if job is None or job.is_terminal:
            return
        job.status = JobStatus.error.value
        job.error_message = message
        job.completed_at = _utcnow()
        db.commit()
        self.publisher.publish(ErrorEvent(job_id=job_id, message=message))
        logger.error("processing_job_failed", job_id=job_id, error=message)

    # ------------------------------------------------------------------
    # Per-email pipeline
    # ------------------------------------------------------------------

    def _process_email(self, db: Session, job_id: int, email_id: int, connected) -> tuple:
        outcome = EmailOutcome()

        email = db.get(Email, email_id)
        if email is None:
            logger.warning("faq_email_missing", job_id=job_id, email_id=email_id)
            return outcome, None

        label = (email.subject or email.sender_email or "")[:LABEL_MAX_CHARS]

        if email.processed_for_faq:
            logger.info("faq_email_already_processed", job_id=job_id, email_id=email_id)
            return outcome, label

        # 1. Eligibility
        apply_classification(db, email, connected)
        if email.filtering_status != FilteringStatus.qualified.value:
            email.processed_for_faq = True
            email.processed_at = _utcnow()
            db.commit()
            logger.info("faq_email_not_eligible",
                       job_id=job_id,
                       email_id=email_id,
                       filtering_status=email.filtering_status,
                       reason=email.filtering_reason)
            return outcome, label
        db.commit()

        # 2. Extraction
        set_processing_context(job_id, email_id=email_id, stage="extract")
        result = self.extractor.extract(email.body_text, subject=email.subject, email_id=email_id)
        if result.failed:
            outcome.errors += 1
            email.processing_error = result.error
            db.commit()
            return outcome, label

        # 3. Validation + idempotent persistence
        questions: List[Question] = []
        for extracted in result.questions:
            quality = self.validator.validate(extracted.text)
            if not quality.is_valid:
                logger.info("question_rejected",
                           email_id=email_id,
                           score=quality.score,
                           reasons=quality.reasons)
                continue
            question, created = get_or_create_question(
                db,
                source_email_id=email.id,
                text=extracted.text,
                confidence=extracted.confidence,
                category=extracted.category,
                quality_score=quality.score,
                sender_email=email.sender_email,
                sender_name=email.sender_name,
            )
            if created:
                outcome.questions_found += 1
            questions.append(question)
        db.commit()

        # 4. Embedding + 5. Clustering
        set_processing_context(job_id, email_id=email_id, stage="cluster")
        for question in questions:
            clustered = self._embed_and_cluster(db, question, outcome)
            if clustered is False:
                outcome.errors += 1

        email.processed_for_faq = True
        email.processed_at = _utcnow()
        email.processing_error = None
        db.commit()

        logger.info("faq_email_processed",
                   job_id=job_id,
                   email_id=email_id,
                   questions_found=outcome.questions_found,
                   groups_created=outcome.groups_created,
                   errors=outcome.errors)
        return outcome, label

    def _embed_and_cluster(self, db: Session, question: Question, outcome: EmailOutcome) -> Optional[bool]:
        """
        Returns:
            True when clustered, None when already a member, False when the
            embedding could not be computed (question stays unclustered)
        """
        already_member = db.query(QuestionGroupMembership.question_id).filter(
            QuestionGroupMembership.question_id == question.id
        ).first()
        if already_member is not None:
            return None

        if not self.indexer.index_question(db, question):
            db.commit()
            return False
        db.commit()

        assignment = self.engine.assign(db, question)
        if assignment is None:
            return None

        outcome.questions_grouped += 1
        outcome.touched_groups.add(assignment.group_id)
        if assignment.created:
            outcome.groups_created += 1
        return True

    # ------------------------------------------------------------------
    # Re-cluster pass
    # ------------------------------------------------------------------

    def recluster_pending(self, limit: int = 100) -> dict:
        """
        Embed and cluster questions that missed clustering earlier
        (embedding capability was unavailable), then refresh their answers.
        """
        db = self.session_factory()
        try:
            pending = db.query(Question).outerjoin(
                QuestionGroupMembership, QuestionGroupMembership.question_id == Question.id
            ).filter(
                QuestionGroupMembership.question_id.is_(None)
            ).order_by(Question.id).limit(limit).all()

            outcome = EmailOutcome()
            failed = 0
            for question in pending:
                if self._embed_and_cluster(db, question, outcome) is False:
                    failed += 1

            if outcome.touched_groups:
                self.synthesizer.synthesize_groups(db, outcome.touched_groups)

            stats = {
                "scanned": len(pending),
                "clustered": outcome.questions_grouped,
                "groups_created": outcome.groups_created,
                "embedding_failures": failed,
            }
            logger.info("recluster_pass_completed", **stats)
            return stats
        finally:
            db.close()


def build_pipeline(session_factory: Callable[[], Session]) -> FAQPipeline:
    """Pipeline wired to the configured Claude and OpenAI adapters."""
    from app.services.claude_completion import ClaudeTextCompletion
    from app.services.openai_embedding import OpenAIEmbedding

    return FAQPipeline(
        session_factory=session_factory,
        completion=ClaudeTextCompletion(),
        embedding=OpenAIEmbedding(),
    )
