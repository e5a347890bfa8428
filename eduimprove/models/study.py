import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from eduimprove.models.quiz import CamelModel, ChatMessage


def parse_timestamp(value: Any) -> datetime:
    """Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (with 'T' or space separator, with or
    without a trailing 'Z'). Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _json_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return list(value)


class StudySessionRecord(BaseModel):
    id: Optional[int] = None
    student_id: int
    topic: Optional[str] = None
    subject: Optional[str] = None
    time_spent: Optional[int] = None
    improvement_score: Optional[float] = None
    understanding_level: Optional[str] = None
    weak_areas: list[str] = []
    strong_areas: list[str] = []
    created_at: datetime

    @field_validator("weak_areas", "strong_areas", mode="before")
    @classmethod
    def _decode_areas(cls, v):
        return _json_list(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def _decode_created_at(cls, v):
        return parse_timestamp(v)


class QuizAttemptRecord(BaseModel):
    id: Optional[int] = None
    student_id: int
    topic: Optional[str] = None
    accuracy_percentage: Optional[float] = None
    total_questions: Optional[int] = None
    correct_answers: Optional[int] = None
    understanding: Optional[str] = None
    created_at: datetime

    @field_validator("created_at", mode="before")
    @classmethod
    def _decode_created_at(cls, v):
        return parse_timestamp(v)


class StudentProfile(BaseModel):
    id: int
    full_name: str
    student_class: Optional[str] = None
    school_id: Optional[int] = None
    district: Optional[str] = None
    parent_whatsapp: Optional[str] = None
    is_banned: bool = False


# ── Request bodies ───────────────────────────────────────────────────

class ChatRequest(CamelModel):
    messages: list[ChatMessage]
    student_id: Optional[int] = None
    analyze_session: bool = False


class SessionAnalysis(CamelModel):
    weak_areas: list[str] = []
    strong_areas: list[str] = []
    understanding: str = "average"
    topics: list[str] = []


class StudySessionCreate(CamelModel):
    student_id: int
    messages: list[ChatMessage] = []
    topic: Optional[str] = None
    subject: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    time_spent: Optional[int] = None
    improvement_score: Optional[float] = None
    understanding_level: Optional[str] = None
    weak_areas: list[str] = []
    strong_areas: list[str] = []


class TTSRequest(CamelModel):
    text: str = ""
    voice_id: Optional[str] = None


class WeeklyReportRequest(CamelModel):
    student_id: Optional[int] = None
    test_mode: bool = False
