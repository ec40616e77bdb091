"""
AI Capability Interfaces
Abstract text-completion and embedding capabilities the FAQ pipeline depends on

The pipeline never talks to a provider SDK directly; concrete adapters
(Claude, OpenAI) implement these interfaces and tests substitute fakes.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence


class CapabilityError(Exception):
    """
    A text-completion or embedding call failed.

    Covers provider errors, timeouts, an open circuit breaker and responses
    that cannot be parsed. Always recoverable by the caller.
    """


class CapabilityTimeout(CapabilityError):
    """The capability did not answer within the configured timeout."""


class TextCompletion(ABC):
    """Text-completion capability used for extraction and answer synthesis."""

    @abstractmethod
    def extract_questions(self, body: str, subject: Optional[str] = None) -> List[Dict]:
        """
        Return raw question items for an email body.

        Each item is a dict with "question", "confidence" and "category" keys.

        Raises:
            CapabilityError: call failed or the response was not valid JSON
        """

    @abstractmethod
    def synthesize_answer(self, questions: Sequence[str], contexts: Sequence[str]) -> Optional[str]:
        """
        Write one FAQ answer covering all questions, grounded in the contexts.

        Raises:
            CapabilityError: call failed
        """

    @abstractmethod
    def improve_answer(self, answer: str, context_questions: Sequence[str]) -> Optional[str]:
        """
        Rewrite an existing answer for clarity.

        Raises:
            CapabilityError: call failed
        """


class Embedding(ABC):
    """Embedding capability producing fixed-length vectors."""

    dimensions: int = 1536

    @abstractmethod
    def vectorize(self, text: str) -> Optional[List[float]]:
        """
        Return the embedding vector for text.

        Raises:
            CapabilityError: call failed
        """
