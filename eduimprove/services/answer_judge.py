"""
answer_judge.py - Semantic answer checking with a local exact-match floor

Provides:
- AnswerJudge.analyze(...) - ask the AI model whether a student's answer is
  equivalent to the expected one
- exact_match_result(...) - deterministic fallback used when the model is
  rate limited, returns nothing usable, or cannot be reached

analyze() never raises. The only non-fallback failure is a missing API key,
which comes back as a result with ``error`` set.
"""

import json
import logging
import re
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from eduimprove.config import settings
from eduimprove.models.quiz import AnalysisResult
from eduimprove.services.ai_client import (
    AINotConfigured,
    AIRateLimited,
    AIServiceError,
    ai_chat,
)
from eduimprove.services.prompts import load_prompt
from eduimprove.services.quiz_session import normalize_answer

logger = logging.getLogger(__name__)

RATE_LIMIT_CONFIDENCE = 100
PARSE_FAILURE_CONFIDENCE = 80

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

ChatFn = Callable[..., Awaitable[str]]


class _EmptyResponse(Exception):
    pass


def answers_match(student_answer: str, correct_answer: str) -> bool:
    return normalize_answer(student_answer) == normalize_answer(correct_answer)


def exact_match_result(student_answer: str, correct_answer: str, *, rate_limited: bool) -> AnalysisResult:
    """Deterministic verdict: case-insensitive, trimmed string equality."""
    is_correct = answers_match(student_answer, correct_answer)
    if rate_limited:
        return AnalysisResult(
            is_correct=is_correct,
            confidence=RATE_LIMIT_CONFIDENCE,
            reasoning="Answer matches" if is_correct else "Answer doesn't match",
            feedback="Sahi jawab!" if is_correct else "Galat jawab",
            fallback=True,
        )
    return AnalysisResult(
        is_correct=is_correct,
        confidence=PARSE_FAILURE_CONFIDENCE,
        reasoning="Analysis completed",
        feedback="Sahi jawab!" if is_correct else "Koi baat nahi, next time better!",
        fallback=True,
    )


def parse_analysis(text: str) -> AnalysisResult:
    """Pull the first {...} block out of the model text and validate it.

    Raises ValueError when there is no JSON object or it does not fit.
    """
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ValueError("No JSON found")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Analysis is not an object")

    # Models occasionally return confidence as 0-1 or out of range
    confidence = data.get("confidence", PARSE_FAILURE_CONFIDENCE)
    if isinstance(confidence, (int, float)):
        if 0 < confidence <= 1:
            confidence *= 100
        data["confidence"] = int(max(0, min(100, round(confidence))))
    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Analysis does not match schema: {e}") from e


class AnswerJudge:
    """AI answer-equivalence checker.

    The chat function is injectable so the fallback path can be exercised
    without network access.
    """

    def __init__(
        self,
        chat: ChatFn = ai_chat,
        primary_model: Optional[str] = None,
        fallback_model: Optional[str] = None,
    ):
        self._chat = chat
        self.primary_model = primary_model or settings.judge_model
        self.fallback_model = fallback_model or settings.judge_fallback_model

    async def analyze(
        self,
        question: str,
        correct_answer: str,
        student_answer: str,
        topic: str = "",
        question_type: str = "short_answer",
    ) -> AnalysisResult:
        logger.info("Analyzing answer for topic: %s", topic)
        prompt = load_prompt("analyze_answer.yaml")
        messages = [
            {"role": "system", "content": prompt["system_prompt"]},
            {
                "role": "user",
                "content": prompt["user_template"].format(
                    question=question,
                    question_type=question_type,
                    topic=topic,
                    correct_answer=correct_answer,
                    student_answer=student_answer,
                ),
            },
        ]

        try:
            text = await self._ask(messages)
        except AIRateLimited:
            logger.warning("Answer judge rate limited, using exact-match fallback")
            return exact_match_result(student_answer, correct_answer, rate_limited=True)
        except AINotConfigured as e:
            return AnalysisResult(
                is_correct=False,
                confidence=0,
                feedback="Could not analyze answer",
                error=str(e),
            )
        except (AIServiceError, _EmptyResponse) as e:
            logger.error(f"Answer judge unavailable: {e}")
            return exact_match_result(student_answer, correct_answer, rate_limited=False)

        try:
            result = parse_analysis(text)
        except ValueError as e:
            logger.error(f"Failed to parse analysis: {e}")
            return exact_match_result(student_answer, correct_answer, rate_limited=False)

        logger.info("Analysis result: correct=%s confidence=%s", result.is_correct, result.confidence)
        return result

    async def _ask(self, messages: list[dict]) -> str:
        """Primary model, then the fallback model once if the body is empty."""
        text = await self._chat(messages, model=self.primary_model, temperature=0.1, max_tokens=500)
        if isinstance(text, str) and text.strip():
            return text

        logger.error("No response from primary model %s, trying %s", self.primary_model, self.fallback_model)
        text = await self._chat(messages, model=self.fallback_model, temperature=0.1, max_tokens=500)
        if isinstance(text, str) and text.strip():
            return text
        raise _EmptyResponse("No AI response")
