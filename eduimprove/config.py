import sys
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI-compatible gateway (empty base URL = api.openai.com)
    api_key: str = ""
    ai_base_url: str = ""
    model_name: str = "gpt-4o"
    # AI provider for non-Claude model names: "openai" or "anthropic"
    ai_provider: str = "openai"
    anthropic_api_key: str = ""
    # Model overrides per use case (empty = use default model_name)
    chat_model: str = "gpt-4o"
    quiz_model: str = "gpt-4o"
    cheap_model: str = "gpt-4o-mini"
    # Answer judge: primary model, then fallback when the body comes back empty
    judge_model: str = "gpt-4o-mini"
    judge_fallback_model: str = "gpt-4o"
    # ElevenLabs text-to-speech
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = "onwK4e9ZLuTAKqWW03F9"
    elevenlabs_model: str = "eleven_multilingual_v2"
    # Twilio WhatsApp transport
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from: str = ""
    whatsapp_country_code: str = "91"
    # Seconds between WhatsApp dispatches (provider rate limit)
    report_dispatch_delay: float = 0.5
    # Seconds the UI shows the scoring message before the quiz completes
    quiz_settle_delay: float = 1.5
    http_timeout: float = 60.0
    database_path: str = "eduimprove.db"
    # JWT_SECRET must be set via environment variable - no default
    jwt_secret: str = ""
    # CORS origins (comma-separated)
    cors_origins: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def _load_settings() -> Settings:
    """Load settings and validate the token secret.

    Vendor API keys are optional here: a missing key fails only the request
    that needs it.
    """
    s = Settings()

    if not s.jwt_secret:
        print("ERROR: JWT_SECRET environment variable is required but not set.", file=sys.stderr)
        print("Set JWT_SECRET to a secure random string (at least 32 characters).", file=sys.stderr)
        sys.exit(1)

    if len(s.jwt_secret) < 32:
        print("ERROR: JWT_SECRET must be at least 32 characters.", file=sys.stderr)
        sys.exit(1)

    return s


settings = _load_settings()
