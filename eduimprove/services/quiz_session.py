"""
quiz_session.py - Quiz session state machine and scoring

A session walks NotStarted -> InProgress(0) -> AwaitingNext(0) ->
InProgress(1) -> ... -> Finished. Transitions are pure functions returning a
new QuizAttemptState; QuizSession wraps them for callers that need the
settle delay and the once-only completion callback.
"""

import asyncio
import inspect
import logging
import string
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Union

from eduimprove.config import settings
from eduimprove.models.quiz import QuestionType, QuizQuestion, QuizResult
from eduimprove.services.scoring_policy import DEFAULT_POLICY, ScoringPolicy, percentage

logger = logging.getLogger(__name__)


class QuizSessionError(ValueError):
    """A transition was requested from a phase that does not allow it."""


class QuizPhase(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    AWAITING_NEXT = "awaiting_next"
    FINISHED = "finished"


@dataclass(frozen=True)
class QuizAttemptState:
    questions: tuple = ()
    answers: tuple = ()
    index: int = 0
    phase: QuizPhase = QuizPhase.NOT_STARTED

    @property
    def completed(self) -> bool:
        return self.phase == QuizPhase.FINISHED

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if self.phase in (QuizPhase.IN_PROGRESS, QuizPhase.AWAITING_NEXT):
            return self.questions[self.index]
        return None

    @property
    def revealing(self) -> bool:
        """True while the explanation for the current answer is shown."""
        return self.phase == QuizPhase.AWAITING_NEXT


# ── Scoring ──────────────────────────────────────────────────────────

def normalize_answer(answer: Optional[str]) -> str:
    if not answer:
        return ""
    return answer.strip().lower()


def _option_index(options: Sequence[str], value: str) -> Optional[int]:
    """Resolve an answer to an option position: by option text, else by letter label."""
    normalized = normalize_answer(value)
    if not normalized:
        return None
    for i, option in enumerate(options):
        if normalize_answer(option) == normalized:
            return i
    # "b" / "b)" / "(b)" / "b." letter labels
    label = normalized.strip("().: ")
    if len(label) == 1 and label in string.ascii_lowercase:
        i = string.ascii_lowercase.index(label)
        if i < len(options):
            return i
    return None


def is_answer_correct(question: QuizQuestion, answer: Optional[str]) -> bool:
    if normalize_answer(answer) == normalize_answer(question.correct_answer):
        return bool(normalize_answer(answer))

    if question.type == QuestionType.MULTIPLE_CHOICE and question.options:
        chosen = _option_index(question.options, answer or "")
        expected = _option_index(question.options, question.correct_answer)
        return chosen is not None and chosen == expected
    return False


def understanding_tier(accuracy: float, policy: ScoringPolicy = DEFAULT_POLICY) -> str:
    return policy.quiz_tier(accuracy)


def score_quiz(
    questions: Sequence[QuizQuestion],
    answers: Sequence[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> QuizResult:
    if not questions:
        raise QuizSessionError("Cannot score a quiz without questions")

    correct = [
        is_answer_correct(q, answers[i] if i < len(answers) else None)
        for i, q in enumerate(questions)
    ]
    correct_count = sum(correct)
    accuracy = percentage(correct_count, len(questions))
    return QuizResult(
        correct_count=correct_count,
        total=len(questions),
        accuracy=accuracy,
        understanding=understanding_tier(accuracy, policy),
        correct=correct,
        questions=list(questions),
        answers=list(answers),
    )


# ── Transitions ──────────────────────────────────────────────────────

def start(questions: Sequence[QuizQuestion]) -> QuizAttemptState:
    if not questions:
        raise QuizSessionError("Quiz has no questions")
    return QuizAttemptState(questions=tuple(questions), answers=(), index=0, phase=QuizPhase.IN_PROGRESS)


def submit_answer(state: QuizAttemptState, answer: str) -> QuizAttemptState:
    if state.phase != QuizPhase.IN_PROGRESS:
        raise QuizSessionError(f"Cannot submit an answer while {state.phase.value}")
    return replace(state, answers=state.answers + (answer,), phase=QuizPhase.AWAITING_NEXT)


def advance(
    state: QuizAttemptState,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> tuple[QuizAttemptState, Optional[QuizResult]]:
    """Move past a revealed answer. Returns the result only on the finishing step."""
    if state.phase == QuizPhase.FINISHED:
        return state, None
    if state.phase != QuizPhase.AWAITING_NEXT:
        raise QuizSessionError(f"Cannot advance while {state.phase.value}")

    if state.index + 1 < len(state.questions):
        return replace(state, index=state.index + 1, phase=QuizPhase.IN_PROGRESS), None

    finished = replace(state, phase=QuizPhase.FINISHED)
    return finished, score_quiz(finished.questions, finished.answers, policy)


def replay(
    questions: Sequence[QuizQuestion],
    answers: Sequence[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> QuizResult:
    """Run a complete answer sheet through the machine and return the result."""
    if len(answers) != len(questions):
        raise QuizSessionError(
            f"Expected {len(questions)} answers, got {len(answers)}"
        )
    state = start(questions)
    result = None
    for answer in answers:
        state = submit_answer(state, answer)
        state, result = advance(state, policy)
    return result


# ── Driver ───────────────────────────────────────────────────────────

CompletionCallback = Callable[[QuizResult], Union[None, Awaitable[None]]]


class QuizSession:
    """Holds one student's quiz state and fires on_complete exactly once."""

    def __init__(
        self,
        questions: Sequence[QuizQuestion],
        on_complete: Optional[CompletionCallback] = None,
        settle_delay: Optional[float] = None,
        policy: ScoringPolicy = DEFAULT_POLICY,
    ):
        self.state = start(questions)
        self.result: Optional[QuizResult] = None
        self._on_complete = on_complete
        self._settle_delay = settings.quiz_settle_delay if settle_delay is None else settle_delay
        self._policy = policy
        self._completion_fired = False

    def submit_answer(self, answer: str) -> bool:
        """Record the answer for the current question; returns its correctness."""
        question = self.state.current_question
        self.state = submit_answer(self.state, answer)
        return is_answer_correct(question, answer)

    async def advance(self) -> Optional[QuizResult]:
        self.state, result = advance(self.state, self._policy)
        if result is None:
            return None

        self.result = result
        logger.info(f"Quiz finished: {result.correct_count}/{result.total} ({result.accuracy}%)")
        if self._settle_delay > 0:
            await asyncio.sleep(self._settle_delay)
        await self._fire_completion(result)
        return result

    async def _fire_completion(self, result: QuizResult) -> None:
        if self._completion_fired or self._on_complete is None:
            return
        self._completion_fired = True
        outcome = self._on_complete(result)
        if inspect.isawaitable(outcome):
            await outcome
