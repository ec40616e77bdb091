"""
Claude Text Completion Adapter
Implements the TextCompletion capability with the Anthropic Messages API
"""

import json
from typing import Dict, List, Optional, Sequence

import anthropic
from anthropic import Anthropic
import structlog

from app.config import settings
from app.services.capabilities import CapabilityError, CapabilityTimeout, TextCompletion
from app.services.monitoring.circuit_breakers import get_claude_breaker, CircuitBreakerError

logger = structlog.get_logger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert at analyzing customer service email conversations to identify "
    "frequently asked questions. Focus on questions that would be valuable for a FAQ "
    "section and help other customers with similar issues."
)

EXTRACTION_PROMPT = """Analyze the following customer email and identify the customer questions that would be suitable for a FAQ.

Subject: {subject}

Email:
{body}

Instructions:
1. Only extract questions asked by the customer, not by the business.
2. Focus on questions other customers would commonly ask (products, services, policies, procedures, common issues).
3. Rephrase each question as a standalone question; drop names, order numbers and other personal details.
4. Ignore scheduling requests, spam, promotional content and questions that are purely account-specific.
5. Rate your confidence (0-1) that each question belongs in a FAQ.

Respond with JSON only:
{{
  "questions": [
    {{"question": "standalone question text", "confidence": 0.0, "category": "billing | technical | shipping | account | general"}}
  ]
}}"""

SYNTHESIS_SYSTEM_PROMPT = (
    "You are an expert at creating helpful FAQ answers that consolidate information "
    "from multiple customer interactions."
)

SYNTHESIS_PROMPT = """Create one FAQ answer for these similar customer questions.

Questions:
{questions}

Context from the original emails:
{contexts}

Instructions:
1. Write one clear answer that addresses all the questions.
2. Make it helpful and actionable; use steps or bullet points where needed.
3. Use a professional but friendly tone and keep it concise.
4. Do not mention individual customers.

Respond with just the answer, nothing else."""

IMPROVE_SYSTEM_PROMPT = "You are an expert at improving customer service answers for FAQ sections."

IMPROVE_PROMPT = """Improve the following FAQ answer for clarity and completeness.

Answer:
{answer}

Questions it should answer:
{questions}

Respond with just the improved answer, nothing else."""


def strip_code_fences(text: str) -> str:
    """Strip markdown code blocks if present (```json ... ```)"""
    cleaned_text = text.strip()
    if cleaned_text.startswith("```"):
        first_newline = cleaned_text.find('\n')
        if first_newline != -1:
            cleaned_text = cleaned_text[first_newline + 1:]
        if cleaned_text.endswith("```"):
            cleaned_text = cleaned_text[:-3].strip()
    return cleaned_text


class ClaudeTextCompletion(TextCompletion):
    """
    TextCompletion backed by Claude.

    SDK retries are disabled; one call has one fixed timeout and the
    circuit breaker isolates a failing API.
    """

    def __init__(self, client: Optional[Anthropic] = None, model: Optional[str] = None):
        if client is not None:
            self.client = client
        elif settings.anthropic_api_key:
            self.client = Anthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )
        else:
            logger.warning("anthropic_api_key_missing")
            self.client = None
        self.model = model or settings.anthropic_model

    def _complete(self, system: str, prompt: str, max_tokens: int, temperature: float) -> str:
        if self.client is None:
            raise CapabilityError("Anthropic client not configured")

        breaker = get_claude_breaker()
        try:
            message = breaker.call(
                self.client.messages.create,
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}]
            )
        except CircuitBreakerError as e:
            logger.error("claude_circuit_open")
            raise CapabilityError("Claude circuit breaker open") from e
        except anthropic.APITimeoutError as e:
            raise CapabilityTimeout(f"Claude call timed out after {settings.llm_timeout_seconds}s") from e
        except anthropic.APIError as e:
            raise CapabilityError(f"Claude API error: {e}") from e

        if not message.content:
            raise CapabilityError("Claude returned an empty response")

        logger.debug("claude_call_completed",
                    model=self.model,
                    input_tokens=message.usage.input_tokens,
                    output_tokens=message.usage.output_tokens)
        return message.content[0].text

    def extract_questions(self, body: str, subject: Optional[str] = None) -> List[Dict]:
        prompt = EXTRACTION_PROMPT.format(subject=subject or "(no subject)", body=body)
        result_text = self._complete(EXTRACTION_SYSTEM_PROMPT, prompt, max_tokens=1024, temperature=0.1)

        try:
            result = json.loads(strip_code_fences(result_text))
        except json.JSONDecodeError as e:
            raise CapabilityError(f"Extraction response is not valid JSON: {e}") from e

        if isinstance(result, list):
            return result
        if isinstance(result, dict) and isinstance(result.get("questions"), list):
            return result["questions"]
        raise CapabilityError("Extraction response has no questions list")

    def synthesize_answer(self, questions: Sequence[str], contexts: Sequence[str]) -> Optional[str]:
        prompt = SYNTHESIS_PROMPT.format(
            questions="\n".join(f"{i}. {q}" for i, q in enumerate(questions, 1)),
            contexts="\n---\n".join(contexts) or "(none)",
        )
        answer = self._complete(SYNTHESIS_SYSTEM_PROMPT, prompt, max_tokens=600, temperature=0.3)
        return answer.strip() or None

    def improve_answer(self, answer: str, context_questions: Sequence[str]) -> Optional[str]:
        prompt = IMPROVE_PROMPT.format(
            answer=answer or "(empty)",
            questions="\n".join(f"- {q}" for q in context_questions) or "(none)",
        )
        improved = self._complete(IMPROVE_SYSTEM_PROMPT, prompt, max_tokens=600, temperature=0.3)
        return improved.strip() or None
