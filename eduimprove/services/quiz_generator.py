import json
import logging
from typing import Awaitable, Callable, Optional, Sequence

from pydantic import ValidationError

from eduimprove.models.quiz import ChatMessage, QuizQuestion
from eduimprove.services.ai_client import AINotConfigured, AIServiceError, ai_chat
from eduimprove.services.prompts import load_prompt
from eduimprove.services.study_chat import transcript

logger = logging.getLogger(__name__)

DEFAULT_NUM_QUESTIONS = 5
# Only the tail of a long chat goes into the prompt
MAX_TRANSCRIPT_MESSAGES = 20


class QuizGenerationError(ValueError):
    pass


def parse_quiz(text: str) -> list[QuizQuestion]:
    """Questions from the model's JSON. Raises QuizGenerationError when empty or malformed."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise QuizGenerationError("AI returned invalid JSON for quiz") from exc

    raw = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(raw, list) or not raw:
        raise QuizGenerationError("Quiz has no questions")

    questions = []
    for i, item in enumerate(raw):
        if isinstance(item, dict) and not item.get("id"):
            item = {**item, "id": f"q{i + 1}"}
        try:
            question = QuizQuestion.model_validate(item)
        except ValidationError as exc:
            raise QuizGenerationError(f"Question {i + 1} is malformed") from exc
        if question.type.is_closed and not question.options:
            raise QuizGenerationError(f"Question {i + 1} has no options")
        questions.append(question)
    return questions


async def generate_quiz(
    messages: Sequence[ChatMessage],
    topic: Optional[str] = None,
    student_level: Optional[str] = None,
    num_questions: int = DEFAULT_NUM_QUESTIONS,
    chat: Callable[..., Awaitable[str]] = ai_chat,
) -> list[QuizQuestion]:
    prompt = load_prompt("quiz_generation.yaml")
    user_message = prompt["user_template"].format(
        topic=topic or "General Study",
        student_level=student_level or "Class 8",
        num_questions=num_questions,
        transcript=transcript(list(messages)[-MAX_TRANSCRIPT_MESSAGES:]),
    )

    try:
        result_text = await chat(
            [
                {"role": "system", "content": prompt["system_prompt"]},
                {"role": "user", "content": user_message},
            ],
            use_case="quiz",
            temperature=0.5,
            json_mode=True,
            max_tokens=2048,
        )
    except AINotConfigured:
        raise
    except AIServiceError as exc:
        logger.error("AI call failed during quiz generation: %s", exc)
        raise QuizGenerationError("AI failed to generate quiz") from exc

    questions = parse_quiz(result_text)
    logger.info("Generated %d quiz questions for topic %s", len(questions), topic)
    return questions
