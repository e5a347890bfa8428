"""Centralized AI client supporting OpenAI-compatible gateways and Anthropic.

Usage:
    from eduimprove.services.ai_client import ai_chat

    text = await ai_chat(
        messages=[
            {"role": "system", "content": "You are a friendly study buddy."},
            {"role": "user", "content": "Photosynthesis samjhao"},
        ],
        use_case="chat",          # "chat", "quiz", "cheap", or None for default
        json_mode=False,
    )

Provider is auto-detected from the resolved model name:
  - Models starting with "claude-" route to Anthropic
  - Everything else routes to the OpenAI-compatible endpoint (AI_BASE_URL)

Provider failures are raised as AIServiceError subclasses so callers can
tell a rate limit or a missing key apart from everything else.
"""

import logging
from enum import Enum

from eduimprove.config import settings

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """The AI provider call failed."""


class AIRateLimited(AIServiceError):
    """The provider answered 429."""


class AINotConfigured(AIServiceError):
    """No API key for the provider the model routes to."""


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


_ANTHROPIC_PREFIXES = ("claude-",)


def _resolve_model(use_case: str | None) -> str:
    """Pick the model name based on the use case and config overrides."""
    if use_case == "chat" and settings.chat_model:
        return settings.chat_model
    if use_case == "quiz" and settings.quiz_model:
        return settings.quiz_model
    if use_case == "cheap" and settings.cheap_model:
        return settings.cheap_model
    return settings.model_name


def _detect_provider(model: str) -> AIProvider:
    """Auto-detect the provider from the model name.

    Models starting with 'claude-' are routed to Anthropic.
    Everything else uses the global ai_provider setting (default: OpenAI).
    """
    model_lower = model.lower()
    for prefix in _ANTHROPIC_PREFIXES:
        if model_lower.startswith(prefix):
            return AIProvider.ANTHROPIC
    try:
        return AIProvider(settings.ai_provider.lower())
    except ValueError:
        return AIProvider.OPENAI


async def ai_chat(
    messages: list[dict],
    *,
    model: str | None = None,
    use_case: str | None = None,
    temperature: float = 0.7,
    json_mode: bool = False,
    max_tokens: int = 1024,
) -> str:
    """Send a chat completion and return the assistant text ("" when empty).

    An explicit ``model`` wins over ``use_case``.
    """
    model = model or _resolve_model(use_case)
    provider = _detect_provider(model)

    if provider == AIProvider.OPENAI:
        return await _openai_chat(messages, model, temperature, json_mode, max_tokens)
    elif provider == AIProvider.ANTHROPIC:
        return await _anthropic_chat(messages, model, temperature, json_mode, max_tokens)
    else:
        raise ValueError(f"Unknown AI provider: {provider}")


async def _openai_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    json_mode: bool,
    max_tokens: int,
) -> str:
    import openai
    from openai import AsyncOpenAI

    if not settings.api_key:
        logger.error("API_KEY is not configured")
        raise AINotConfigured("AI service is not configured")

    client = AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.ai_base_url or None,
        timeout=settings.http_timeout,
        max_retries=0,
    )
    kwargs: dict = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    logger.info("Calling %s via OpenAI-compatible endpoint", model)
    try:
        response = await client.chat.completions.create(**kwargs)
    except openai.RateLimitError as e:
        logger.warning("Rate limited by %s: %s", model, e)
        raise AIRateLimited(str(e)) from e
    except openai.OpenAIError as e:
        logger.error("OpenAI-compatible call to %s failed: %s", model, e)
        raise AIServiceError(str(e)) from e

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def _to_anthropic_content(content):
    """Translate OpenAI-style content parts (text + data-URL images) to Anthropic blocks."""
    if isinstance(content, str):
        return content
    blocks = []
    for part in content:
        if part.get("type") == "text":
            blocks.append({"type": "text", "text": part["text"]})
        elif part.get("type") == "image_url":
            url = part["image_url"]["url"]
            header, _, data = url.partition(",")
            media_type = header.removeprefix("data:").split(";")[0] or "image/jpeg"
            blocks.append({
                "type": "image",
                "source": {"type": "base64", "media_type": media_type, "data": data},
            })
    return blocks


async def _anthropic_chat(
    messages: list[dict],
    model: str,
    temperature: float,
    json_mode: bool,
    max_tokens: int,
) -> str:
    import anthropic

    if not settings.anthropic_api_key:
        logger.error("ANTHROPIC_API_KEY is not configured")
        raise AINotConfigured("AI service is not configured")

    client = anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.http_timeout,
        max_retries=0,
    )

    # Anthropic uses a separate system parameter, not a system message
    system_text = ""
    chat_messages = []
    for msg in messages:
        if msg["role"] == "system":
            system_text += msg["content"] + "\n"
        else:
            chat_messages.append({"role": msg["role"], "content": _to_anthropic_content(msg["content"])})

    if json_mode:
        system_text += "\nYou MUST respond with valid JSON only. No other text.\n"

    kwargs: dict = {
        "model": model,
        "messages": chat_messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system_text.strip():
        kwargs["system"] = system_text.strip()

    logger.info("Calling %s via Anthropic", model)
    try:
        response = await client.messages.create(**kwargs)
    except anthropic.RateLimitError as e:
        logger.warning("Rate limited by %s: %s", model, e)
        raise AIRateLimited(str(e)) from e
    except anthropic.AnthropicError as e:
        logger.error("Anthropic call to %s failed: %s", model, e)
        raise AIServiceError(str(e)) from e

    if not response.content:
        return ""
    return getattr(response.content[0], "text", "") or ""
