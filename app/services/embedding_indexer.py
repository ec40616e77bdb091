"""
Embedding Indexer Service
Computes and stores question embeddings through the embedding capability
"""

import math
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from app.config import settings
from app.models.question import Question
from app.services.capabilities import CapabilityError, Embedding

logger = structlog.get_logger(__name__)


class EmbeddingIndexer:
    """
    Wraps the embedding capability.

    embed() returns None instead of raising; a question without an
    embedding is stored anyway and picked up by the re-cluster pass later.
    """

    def __init__(self, embedding: Embedding, dimensions: Optional[int] = None):
        self.embedding = embedding
        self.dimensions = dimensions or getattr(embedding, "dimensions", None) or settings.embedding_dimensions

    def embed(self, text: Optional[str]) -> Optional[List[float]]:
        if not text or not text.strip():
            return None

        try:
            vector = self.embedding.vectorize(text.strip())
        except CapabilityError as e:
            logger.warning("embedding_failed",
                          error=str(e),
                          exception_type=type(e).__name__)
            return None
        except Exception as e:
            logger.error("embedding_unexpected_error",
                        error=str(e),
                        exception_type=type(e).__name__,
                        exc_info=True)
            return None

        if vector is None:
            return None

        vector = [float(v) for v in vector]
        if len(vector) != self.dimensions:
            logger.warning("embedding_dimension_mismatch",
                          expected=self.dimensions,
                          actual=len(vector))
            return None
        if not all(math.isfinite(v) for v in vector):
            logger.warning("embedding_not_finite")
            return None
        return vector

    def index_question(self, db: Session, question: Question) -> bool:
        """
        Embed a question and store the vector on the row (no commit).

        Returns:
            True if the question now has an embedding
        """
        if question.embedding:
            return True
        vector = self.embed(question.text)
        if vector is None:
            return False
        question.embedding = vector
        db.flush()
        return True
