"""ElevenLabs text-to-speech for tutor replies."""

import base64
import logging
import re
from typing import Optional

import httpx

from eduimprove.config import settings

logger = logging.getLogger(__name__)

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
OUTPUT_FORMAT = "mp3_44100_128"

VOICE_SETTINGS = {
    "stability": 0.4,
    "similarity_boost": 0.8,
    "style": 0.3,
    "use_speaker_boost": True,
    "speed": 1.0,
}

# Decorative symbols the chat UI uses; a voice would read them out literally.
_EMOJI = re.compile(
    "[\U0001F389\U0001F4DA\U0001F4AA\U0001F916\U0001F44B✓✔❌⚠️"
    "\U0001F64F\U0001F44D\U0001F4A1\U0001F3AF\U0001F4CA\U0001F4C8\U0001F4C9\U0001F525⭐]"
)
_HEADING = re.compile(r"#{1,6}\s")


class TTSError(Exception):
    """Speech could not be produced."""


class TTSInputError(TTSError):
    """The text has nothing to speak."""


def clean_for_tts(text: str) -> str:
    text = _EMOJI.sub("", text or "")
    text = text.replace("**", "").replace("*", "")
    text = _HEADING.sub("", text)
    return text.strip()


async def synthesize_speech(
    text: str,
    voice_id: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Synthesize `text` and return the MP3 audio as base64.

    Raises TTSInputError when there is nothing to speak and TTSError otherwise.
    """
    if not text or not text.strip():
        raise TTSInputError("No text provided")

    api_key = settings.elevenlabs_api_key
    if not api_key:
        raise TTSError("ElevenLabs API key not configured")

    clean_text = clean_for_tts(text)
    if not clean_text:
        raise TTSInputError("No speakable text after cleaning")

    url = ELEVENLABS_TTS_URL.format(voice_id=voice_id or settings.elevenlabs_voice_id)
    payload = {
        "text": clean_text,
        "model_id": settings.elevenlabs_model,
        "voice_settings": VOICE_SETTINGS,
    }
    headers = {"xi-api-key": api_key, "Content-Type": "application/json"}

    try:
        if client is not None:
            response = await client.post(url, params={"output_format": OUTPUT_FORMAT}, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=settings.http_timeout) as http:
                response = await http.post(url, params={"output_format": OUTPUT_FORMAT}, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"ElevenLabs request failed: {e}")
        raise TTSError(f"ElevenLabs request failed: {e}") from e

    if response.status_code >= 400:
        logger.error("ElevenLabs API error: %s %s", response.status_code, response.text)
        raise TTSError(f"ElevenLabs API error: {response.status_code}")

    return base64.b64encode(response.content).decode("ascii")
