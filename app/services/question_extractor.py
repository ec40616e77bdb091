"""
Question Extractor Service
Turns a qualified email body into candidate FAQ questions via the text-completion capability
"""

from typing import Any, List, Optional

import structlog

from app.config import settings
from app.models.pipeline_schemas import ExtractedQuestion, ExtractionResult
from app.services.capabilities import CapabilityError, TextCompletion

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "general"
DEFAULT_CONFIDENCE = 0.5


class QuestionExtractor:
    """
    Extracts questions from email bodies.

    Never raises: a failed capability call yields an empty result flagged
    as failed, so the job can count the error and move on.
    """

    def __init__(
        self,
        completion: TextCompletion,
        max_body_chars: Optional[int] = None,
        max_question_chars: Optional[int] = None
    ):
        self.completion = completion
        self.max_body_chars = max_body_chars or settings.question_max_body_chars
        self.max_question_chars = max_question_chars or settings.question_max_text_chars

    def extract(self, body: Optional[str], subject: Optional[str] = None, email_id: Optional[int] = None) -> ExtractionResult:
        """
        Extract questions from one email body.

        Args:
            body: Plain-text body
            subject: Email subject, passed along as context
            email_id: Only used for logging

        Returns:
            ExtractionResult; failed=True when the capability call failed
        """
        if not body or not body.strip():
            logger.info("extraction_skipped_empty_body", email_id=email_id)
            return ExtractionResult()

        text = body.strip()
        if len(text) > self.max_body_chars:
            text = text[:self.max_body_chars]

        try:
            raw_items = self.completion.extract_questions(text, subject=subject)
        except CapabilityError as e:
            logger.warning("question_extraction_failed",
                          email_id=email_id,
                          error=str(e),
                          exception_type=type(e).__name__)
            return ExtractionResult(failed=True, error=str(e))
        except Exception as e:
            logger.error("question_extraction_unexpected_error",
                        email_id=email_id,
                        error=str(e),
                        exception_type=type(e).__name__,
                        exc_info=True)
            return ExtractionResult(failed=True, error=str(e))

        questions = self._parse_items(raw_items, email_id)
        logger.info("questions_extracted",
                   email_id=email_id,
                   returned=len(raw_items or []),
                   kept=len(questions))
        return ExtractionResult(questions=questions)

    def extract_questions(self, body: Optional[str], subject: Optional[str] = None) -> List[ExtractedQuestion]:
        """Convenience wrapper returning only the question list."""
        return self.extract(body, subject=subject).questions

    def _parse_items(self, raw_items: Any, email_id: Optional[int]) -> List[ExtractedQuestion]:
        if not isinstance(raw_items, list):
            logger.warning("extraction_response_not_a_list", email_id=email_id)
            return []

        questions: List[ExtractedQuestion] = []
        seen = set()
        for item in raw_items:
            parsed = self._parse_item(item)
            if parsed is None:
                logger.debug("extraction_item_skipped", email_id=email_id, item=str(item)[:200])
                continue
            key = parsed.text.lower()
            if key in seen:
                continue
            seen.add(key)
            questions.append(parsed)
        return questions

    def _parse_item(self, item: Any) -> Optional[ExtractedQuestion]:
        if not isinstance(item, dict):
            return None

        text = item.get("question") or item.get("text")
        if not isinstance(text, str) or not text.strip():
            return None
        text = " ".join(text.split())[:self.max_question_chars]

        raw_confidence = item.get("confidence", DEFAULT_CONFIDENCE)
        if raw_confidence is None:
            raw_confidence = DEFAULT_CONFIDENCE
        try:
            confidence = float(raw_confidence)
        except (TypeError, ValueError):
            return None
        confidence = min(1.0, max(0.0, confidence))

        category = item.get("category")
        if not isinstance(category, str) or not category.strip():
            category = DEFAULT_CATEGORY
        category = category.strip().lower()[:100]

        return ExtractedQuestion(text=text, confidence=confidence, category=category)
