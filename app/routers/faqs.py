"""
FAQ API Router
Public FAQ listing with view/feedback counters, and admin curation endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import List, Optional
import structlog

from app.database import get_db
from app.models.faq_group import FAQGroup, QuestionGroupMembership
from app.models.question import Question
from app.services.answer_synthesizer import AnswerSynthesizer
from app.services.capabilities import TextCompletion
from app.services.clustering import clustering_engine
from app.services.embedding_indexer import EmbeddingIndexer
from app.services.faq_curation import UnknownGroupError, faq_curation

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/faqs", tags=["faqs"])


class FeedbackRequest(BaseModel):
    helpful: bool


class ReorderRequest(BaseModel):
    group_ids: List[int] = Field(..., min_length=1, description="Groups in their new display order")


class PublishRequest(BaseModel):
    published: bool = True


def get_text_completion() -> TextCompletion:
    from app.services.claude_completion import ClaudeTextCompletion
    return ClaudeTextCompletion()


def get_embedding_indexer() -> EmbeddingIndexer:
    from app.services.openai_embedding import OpenAIEmbedding
    return EmbeddingIndexer(OpenAIEmbedding())


def _serialize_group(group: FAQGroup) -> dict:
    return {
        "id": group.id,
        "title": group.title,
        "answer": group.answer,
        "category": group.category,
        "question_count": group.question_count,
        "avg_confidence": group.avg_confidence,
        "max_confidence": group.max_confidence,
        "frequency_score": group.frequency_score,
        "sort_order": group.sort_order,
        "is_published": group.is_published,
        "view_count": group.view_count,
        "helpful_count": group.helpful_count,
        "not_helpful_count": group.not_helpful_count,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


@router.get("")
async def list_faqs(
    category: Optional[str] = Query(None),
    sort: str = Query("order", pattern="^(order|popular|frequency)$"),
    include_unpublished: bool = Query(False, description="Admin view of all groups"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """List FAQ groups; published ones only unless include_unpublished is set."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    groups = faq_curation.list_groups(
        db,
        published_only=not include_unpublished,
        category=category,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return {"faqs": [_serialize_group(group) for group in groups]}


@router.get("/search")
def search_faqs(
    q: str = Query(..., min_length=3, max_length=500),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    indexer: EmbeddingIndexer = Depends(get_embedding_indexer)
):
    """
    Published FAQs semantically similar to the query text.

    Raises:
        502: The query could not be embedded
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    matches = faq_curation.search(db, indexer, q, limit=limit)
    if matches is None:
        raise HTTPException(status_code=502, detail="Search is unavailable")

    return {
        "query": q,
        "faqs": [
            dict(_serialize_group(group), similarity=round(similarity, 4))
            for group, similarity in matches
        ],
    }


@router.put("/reorder")
async def reorder_faqs(
    request: ReorderRequest,
    db: Session = Depends(get_db)
):
    """
    Set the display order. Listed groups come first; all groups are
    renumbered 1..n.

    Raises:
        400: Unknown group id
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    try:
        groups = faq_curation.reorder(db, request.group_ids)
    except UnknownGroupError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"faqs": [{"id": group.id, "sort_order": group.sort_order} for group in groups]}


@router.get("/{group_id}")
async def get_faq(
    group_id: int,
    db: Session = Depends(get_db)
):
    """
    Get a published FAQ and count the view.

    Raises:
        404: Group not found or not published
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    group = faq_curation.record_view(db, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="FAQ not found")
    return _serialize_group(group)


@router.post("/{group_id}/feedback")
async def submit_feedback(
    group_id: int,
    request: FeedbackRequest,
    db: Session = Depends(get_db)
):
    """
    Record a helpful / not helpful vote.

    Raises:
        404: Group not found or not published
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    group = faq_curation.record_feedback(db, group_id, request.helpful)
    if group is None:
        raise HTTPException(status_code=404, detail="FAQ not found")
    return {
        "id": group.id,
        "helpful_count": group.helpful_count,
        "not_helpful_count": group.not_helpful_count,
    }


@router.post("/{group_id}/publish")
async def publish_faq(
    group_id: int,
    request: PublishRequest,
    db: Session = Depends(get_db)
):
    """Publish or unpublish a group."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    group = faq_curation.set_published(db, group_id, request.published)
    if group is None:
        raise HTTPException(status_code=404, detail="FAQ group not found")
    return _serialize_group(group)


@router.post("/{group_id}/improve-answer")
def improve_faq_answer(
    group_id: int,
    db: Session = Depends(get_db),
    completion: TextCompletion = Depends(get_text_completion)
):
    """
    Rewrite the group's answer for clarity and store it.

    Raises:
        404: Group not found
        502: The completion service produced no answer
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    group = db.get(FAQGroup, group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="FAQ group not found")

    questions = [
        text for (text,) in db.query(Question.text).join(
            QuestionGroupMembership, QuestionGroupMembership.question_id == Question.id
        ).filter(
            QuestionGroupMembership.group_id == group_id
        ).order_by(Question.confidence.desc(), Question.id).limit(10).all()
    ]

    synthesizer = AnswerSynthesizer(completion, engine=clustering_engine)
    improved = synthesizer.improve_answer(group.answer, questions)
    if improved is None:
        raise HTTPException(status_code=502, detail="Answer improvement failed")

    clustering_engine.set_answer(db, group_id, improved)
    logger.info("faq_answer_improved", group_id=group_id)
    return {"id": group_id, "answer": improved}
