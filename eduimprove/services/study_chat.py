"""
study_chat.py - AI study-buddy chat and end-of-session analysis

Provides:
- validate_messages(messages) - reject empty text and oversized images before any AI call
- detect_topic(messages) - subject keyword spotting for the session topic
- study_chat(messages, analyze_session) - tutor reply, optionally with a session analysis
- analyze_session(messages) - weak/strong areas and understanding level for a finished chat
- session_minutes(started_at, ended_at) - whole minutes studied, at least 1
"""

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from pydantic import ValidationError

from eduimprove.models.quiz import CamelModel, ChatMessage
from eduimprove.models.study import SessionAnalysis
from eduimprove.services.ai_client import AINotConfigured, AIServiceError, ai_chat
from eduimprove.services.prompts import load_prompt
from eduimprove.services.scoring_policy import UNDERSTANDING_LEVELS, round_half_up

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
DEFAULT_TOPIC = "General Study"
FALLBACK_REPLY = "Sorry bhai, kuch problem ho gaya. Phir se try kar!"

# Checked in this order; "maths" before "math" so the longer name wins.
TOPIC_KEYWORDS = (
    "physics", "chemistry", "maths", "math", "biology", "history",
    "geography", "english", "hindi", "science", "social",
)

ChatFn = Callable[..., Awaitable[str]]


class ChatValidationError(ValueError):
    """The chat request cannot be sent to the tutor as is."""


class ChatReply(CamelModel):
    response: str
    session_analysis: Optional[SessionAnalysis] = None
    error: Optional[str] = None


def image_size(data_url: str) -> int:
    """Decoded byte size of a base64 data URL (or bare base64 string)."""
    _, _, data = data_url.rpartition(",")
    try:
        return len(base64.b64decode(data, validate=False))
    except (binascii.Error, ValueError) as e:
        raise ChatValidationError("Image could not be read") from e


def validate_messages(messages: Sequence[ChatMessage]) -> None:
    if not messages:
        raise ChatValidationError("No messages provided")
    for msg in messages:
        if msg.image_url and image_size(msg.image_url) > MAX_IMAGE_BYTES:
            raise ChatValidationError("Please upload an image smaller than 5MB")
    last = messages[-1]
    if last.role == "user" and not last.content.strip() and not last.image_url:
        raise ChatValidationError("Message is empty")


def detect_topic(messages: Sequence[ChatMessage]) -> Optional[str]:
    """Subject named in the earliest user message that names one."""
    for msg in messages:
        if msg.role != "user":
            continue
        text = msg.content.lower()
        for keyword in TOPIC_KEYWORDS:
            if keyword in text:
                return keyword.capitalize()
    return None


def session_minutes(started_at: datetime, ended_at: datetime) -> int:
    minutes = round_half_up((ended_at - started_at).total_seconds() / 60)
    return max(minutes, 1)


def transcript(messages: Sequence[ChatMessage]) -> str:
    lines = []
    for msg in messages:
        speaker = "Student" if msg.role == "user" else "Tutor"
        content = msg.content.strip() or "[image]"
        lines.append(f"{speaker}: {content}")
    return "\n".join(lines)


def _to_ai_message(msg: ChatMessage) -> dict:
    if not msg.image_url:
        return {"role": msg.role, "content": msg.content}
    parts = []
    if msg.content.strip():
        parts.append({"type": "text", "text": msg.content})
    parts.append({"type": "image_url", "image_url": {"url": msg.image_url}})
    return {"role": msg.role, "content": parts}


async def analyze_session(messages: Sequence[ChatMessage], chat: ChatFn = ai_chat) -> SessionAnalysis:
    """Ask the model for weak/strong areas. Falls back to an empty "average" analysis."""
    prompt = load_prompt("session_analysis.yaml")
    try:
        text = await chat(
            [
                {"role": "system", "content": prompt["system_prompt"]},
                {"role": "user", "content": prompt["user_template"].format(transcript=transcript(messages))},
            ],
            use_case="cheap",
            temperature=0.3,
            json_mode=True,
        )
        analysis = SessionAnalysis.model_validate(json.loads(text))
    except (AIServiceError, json.JSONDecodeError, ValidationError, TypeError) as e:
        logger.error("Session analysis failed: %s", e)
        return SessionAnalysis()

    if analysis.understanding not in UNDERSTANDING_LEVELS:
        analysis.understanding = "average"
    return analysis


async def study_chat(
    messages: Sequence[ChatMessage],
    analyze: bool = False,
    chat: ChatFn = ai_chat,
) -> ChatReply:
    """Tutor reply for the conversation so far.

    Raises ChatValidationError for bad input and AINotConfigured when no key
    is set. Any other provider failure returns the fallback reply with ``error``.
    """
    validate_messages(messages)

    prompt = load_prompt("study_chat.yaml")
    ai_messages = [{"role": "system", "content": prompt["system_prompt"]}]
    ai_messages += [_to_ai_message(m) for m in messages]

    try:
        text = await chat(ai_messages, use_case="chat", temperature=0.7, max_tokens=1024)
    except AINotConfigured:
        raise
    except AIServiceError as e:
        logger.error("Study chat failed: %s", e)
        return ChatReply(response=FALLBACK_REPLY, error=str(e))

    reply = ChatReply(response=text or FALLBACK_REPLY)
    if analyze:
        reply.session_analysis = await analyze_session(messages, chat)
    return reply
