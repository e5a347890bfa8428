"""Shared builders for the test suite."""

from datetime import datetime, timedelta, timezone

import aiosqlite

from eduimprove.db.database import SCHEMA_PATH
from eduimprove.models.quiz import QuizQuestion
from eduimprove.models.study import QuizAttemptRecord, StudySessionRecord

# A Sunday, midday UTC
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


async def setup_test_db(path: str = ":memory:") -> aiosqlite.Connection:
    """Open a database with the full schema loaded."""
    db = await aiosqlite.connect(path)
    db.row_factory = aiosqlite.Row
    await db.executescript(SCHEMA_PATH.read_text())
    await db.commit()
    return db


def session(days_ago: float = 0, student_id: int = 1, **fields) -> StudySessionRecord:
    return StudySessionRecord(
        student_id=student_id,
        created_at=NOW - timedelta(days=days_ago),
        **fields,
    )


def quiz(days_ago: float = 0, student_id: int = 1, **fields) -> QuizAttemptRecord:
    return QuizAttemptRecord(
        student_id=student_id,
        created_at=NOW - timedelta(days=days_ago),
        **fields,
    )


def sample_questions() -> list[QuizQuestion]:
    return [
        QuizQuestion(
            id="q1",
            type="mcq",
            question="Capital of France?",
            options=["Paris", "London", "Rome", "Berlin"],
            correct_answer="Paris",
            topic="Geography",
        ),
        QuizQuestion(
            id="q2",
            type="true_false",
            question="Water boils at 100°C at sea level.",
            options=["True", "False"],
            correct_answer="True",
            topic="Science",
        ),
        QuizQuestion(
            id="q3",
            type="short_answer",
            question="Chemical formula of water?",
            correct_answer="H2O",
            topic="Chemistry",
        ),
    ]
