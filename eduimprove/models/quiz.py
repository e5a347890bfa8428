from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire; accepts either on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "mcq"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    SHORT_ANSWER = "short_answer"

    @property
    def is_closed(self) -> bool:
        return self in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE)


class QuizQuestion(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    type: QuestionType
    question: str
    options: Optional[list[str]] = None
    correct_answer: str
    explanation: str = ""
    difficulty: str = "medium"
    topic: str = ""


class QuizResult(CamelModel):
    correct_count: int
    total: int
    accuracy: int
    understanding: str
    correct: list[bool] = []
    questions: list[QuizQuestion] = []
    answers: list[str] = []


class AnalysisResult(CamelModel):
    is_correct: bool
    confidence: int = Field(ge=0, le=100)
    reasoning: str = ""
    feedback: str = ""
    partial_credit: Optional[int] = None
    key_concept_matched: Optional[bool] = None
    fallback: Optional[bool] = None
    error: Optional[str] = None


class ChatMessage(CamelModel):
    role: str
    content: str = ""
    image_url: Optional[str] = None


# ── Request bodies ───────────────────────────────────────────────────

class AnalyzeRequest(CamelModel):
    question: str
    correct_answer: str
    student_answer: str
    topic: str = ""
    question_type: str = "short_answer"


class QuizGenerateRequest(CamelModel):
    messages: list[ChatMessage] = []
    topic: str = ""
    student_level: str = "Class 10"


class QuizAttemptSubmission(CamelModel):
    student_id: int
    topic: str = ""
    questions: list[QuizQuestion]
    answers: list[str]
