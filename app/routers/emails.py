"""
Email Ingestion API Router
Receives provider messages from the mailbox sync and stores them for FAQ mining
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
import structlog

from app.database import get_db
from app.models.email_account import EmailAccount
from app.services.email_ingestion import EmailIngestionService
from app.services.message_normalizer import MessageNormalizationError

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/accounts", tags=["emails"])


class IngestMessageRequest(BaseModel):
    provider: Optional[str] = None
    message: Dict[str, Any]


@router.post("/{account_id}/emails", status_code=201)
async def ingest_email(
    account_id: int,
    request: IngestMessageRequest,
    db: Session = Depends(get_db)
):
    """
    Store one Gmail/Outlook message and reclassify its conversation.

    Raises:
        404: Account not found
        422: Message payload cannot be normalized
    """
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")

    account = db.get(EmailAccount, account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")

    try:
        email = EmailIngestionService(db).ingest_raw(account, request.message, provider=request.provider)
    except MessageNormalizationError as e:
        logger.warning("email_ingest_rejected", account_id=account_id, error=str(e))
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "id": email.id,
        "message_id": email.message_id,
        "thread_id": email.thread_id,
        "direction": email.direction,
        "filtering_status": email.filtering_status,
        "filtering_reason": email.filtering_reason,
    }
