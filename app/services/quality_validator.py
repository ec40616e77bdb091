"""
Question Quality Validator
Local, deterministic heuristics that reject questions unfit for a FAQ
"""

import re
from typing import List, Optional

from app.config import settings
from app.models.pipeline_schemas import QualityResult

INTERROGATIVE_OPENERS = {
    "how", "what", "when", "where", "why", "who", "whom", "whose", "which",
    "can", "could", "do", "does", "did", "is", "are", "was", "were", "will",
    "would", "should", "shall", "may", "might", "have", "has", "am",
}

REQUEST_PHRASES = (
    "i need", "i want", "i would like", "i'd like", "looking for",
    "wondering", "please explain", "please let me know", "is there a way",
)

BOILERPLATE = {
    "hi", "hello", "hey", "dear", "thanks", "thank", "you", "regards", "best",
    "cheers", "sincerely", "kind", "greetings", "ok", "okay", "yes", "no",
    "please", "help", "asap", "urgent",
}

_WORD = re.compile(r"[A-Za-z0-9']+")

BASE_SCORE = 0.4
MAX_WORDS = 60
MAX_CHARS = 500


class QualityValidator:
    """
    Scores candidate questions between 0 and 1.

    A question is valid when its score reaches the threshold (0.5 by default).
    Interrogative structure raises the score; single words, greetings and
    very long passages lower it.
    """

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = settings.quality_threshold if threshold is None else threshold

    def validate(self, text: Optional[str]) -> QualityResult:
        if not text or not text.strip():
            return QualityResult(is_valid=False, score=0.0, reasons=["empty"])

        stripped = text.strip()
        words = [w.lower() for w in _WORD.findall(stripped)]
        reasons: List[str] = []

        if not words:
            return QualityResult(is_valid=False, score=0.0, reasons=["no_words"])

        score = BASE_SCORE

        if "?" in stripped:
            score += 0.2
            reasons.append("question_mark")

        if words[0] in INTERROGATIVE_OPENERS:
            score += 0.2
            reasons.append("interrogative_opener")
        elif any(phrase in stripped.lower() for phrase in REQUEST_PHRASES):
            score += 0.1
            reasons.append("request_phrasing")

        if 5 <= len(words) <= MAX_WORDS:
            score += 0.1
            reasons.append("reasonable_length")
        elif 2 <= len(words) <= 3:
            score -= 0.15
            reasons.append("too_short")

        if len(words) > MAX_WORDS or len(stripped) > MAX_CHARS:
            score -= 0.3
            reasons.append("too_long")

        if all(w in BOILERPLATE for w in words):
            score -= 0.3
            reasons.append("boilerplate_only")

        if len(words) == 1:
            score = min(score, 0.2)
            reasons.append("single_token")

        score = round(min(1.0, max(0.0, score)), 3)
        return QualityResult(is_valid=score >= self.threshold, score=score, reasons=reasons)


# Global instance
quality_validator = QualityValidator()
