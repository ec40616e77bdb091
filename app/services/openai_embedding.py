"""
OpenAI Embedding Adapter
Implements the Embedding capability with the OpenAI embeddings endpoint
"""

from typing import List, Optional

import openai
from openai import OpenAI
import structlog

from app.config import settings
from app.services.capabilities import CapabilityError, CapabilityTimeout, Embedding
from app.services.monitoring.circuit_breakers import get_openai_breaker, CircuitBreakerError

logger = structlog.get_logger(__name__)


class OpenAIEmbedding(Embedding):
    """Embedding backed by OpenAI (text-embedding-ada-002, 1536 dimensions by default)."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None, dimensions: Optional[int] = None):
        if client is not None:
            self.client = client
        elif settings.openai_api_key:
            self.client = OpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )
        else:
            logger.warning("openai_api_key_missing")
            self.client = None
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions

    def vectorize(self, text: str) -> Optional[List[float]]:
        if self.client is None:
            raise CapabilityError("OpenAI client not configured")

        breaker = get_openai_breaker()
        try:
            response = breaker.call(
                self.client.embeddings.create,
                model=self.model,
                input=text,
            )
        except CircuitBreakerError as e:
            logger.error("openai_circuit_open")
            raise CapabilityError("OpenAI circuit breaker open") from e
        except openai.APITimeoutError as e:
            raise CapabilityTimeout(f"Embedding call timed out after {settings.llm_timeout_seconds}s") from e
        except openai.OpenAIError as e:
            raise CapabilityError(f"OpenAI API error: {e}") from e

        if not response.data:
            return None
        return list(response.data[0].embedding)
