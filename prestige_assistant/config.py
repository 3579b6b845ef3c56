import logging
import os

logger = logging.getLogger(__name__)


class Settings:
    # -------- Upstream backend --------
    API_BASE: str = os.getenv("API_BASE", "https://backend-production-09c4.up.railway.app")
    BACKEND_TIMEOUT: float = float(os.getenv("BACKEND_TIMEOUT", "15.0"))
    EVENTS_PAGE_LIMIT: int = int(os.getenv("EVENTS_PAGE_LIMIT", "100"))
    EVENTS_MAX_PAGES: int = int(os.getenv("EVENTS_MAX_PAGES", "10"))
    TRANSACTIONS_LIMIT: int = int(os.getenv("TRANSACTIONS_LIMIT", "200"))

    # -------- Gemini --------
    GEMINI_URL: str = os.getenv(
        "GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta/models"
    )
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_TIMEOUT: float = float(os.getenv("GEMINI_TIMEOUT", "60.0"))
    GEMINI_TEMPERATURE: float = float(os.getenv("GEMINI_TEMPERATURE", "0.5"))
    GEMINI_TOP_P: float = float(os.getenv("GEMINI_TOP_P", "0.9"))
    AI_INCLUDE_ROLE: bool = os.getenv("AI_INCLUDE_ROLE", "") == "1"

    # -------- ElevenLabs --------
    ELEVENLABS_URL: str = os.getenv("ELEVENLABS_URL", "https://api.elevenlabs.io/v1/text-to-speech")
    ELEVENLABS_API_KEY: str = os.getenv("ELEVENLABS_API_KEY", "")
    ELEVENLABS_VOICE_ID: str = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
    ELEVENLABS_MODEL: str = os.getenv("ELEVENLABS_MODEL", "eleven_multilingual_v2")
    TTS_TIMEOUT: float = float(os.getenv("TTS_TIMEOUT", "30.0"))

    # -------- Sessions --------
    SESSION_TTL_SECONDS: float = float(os.getenv("SESSION_TTL_SECONDS", "300"))
    MAX_HISTORY_PAIRS: int = int(os.getenv("MAX_HISTORY_PAIRS", "6"))
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "10000"))

    # -------- Snapshot --------
    AI_CTX_LIMIT: int = int(os.getenv("AI_CTX_LIMIT", "200"))

    # -------- Messages --------
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "2000"))
    # IANA name; empty means the host's local timezone
    DISPLAY_TIMEZONE: str = os.getenv("DISPLAY_TIMEZONE", "")

    # -------- HTTP --------
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")

    # -------- Logging --------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def _validate_settings(s: Settings) -> None:
    """Validate all settings at startup. Raises AssertionError on invalid config."""
    assert s.API_BASE, "API_BASE must be set"
    assert s.BACKEND_TIMEOUT > 0, "BACKEND_TIMEOUT must be positive"
    assert s.GEMINI_TIMEOUT > 0, "GEMINI_TIMEOUT must be positive"
    assert s.TTS_TIMEOUT > 0, "TTS_TIMEOUT must be positive"
    assert s.EVENTS_PAGE_LIMIT > 0, "EVENTS_PAGE_LIMIT must be positive"
    assert s.EVENTS_MAX_PAGES > 0, "EVENTS_MAX_PAGES must be positive"
    assert s.TRANSACTIONS_LIMIT > 0, "TRANSACTIONS_LIMIT must be positive"
    assert 0 <= s.GEMINI_TEMPERATURE <= 2.0, "GEMINI_TEMPERATURE must be in [0, 2]"
    assert 0 < s.GEMINI_TOP_P <= 1.0, "GEMINI_TOP_P must be in (0, 1]"
    assert s.SESSION_TTL_SECONDS > 0, "SESSION_TTL_SECONDS must be positive"
    assert s.MAX_HISTORY_PAIRS > 0, "MAX_HISTORY_PAIRS must be positive"
    assert s.MAX_SESSIONS > 0, "MAX_SESSIONS must be positive"
    assert s.AI_CTX_LIMIT > 0, "AI_CTX_LIMIT must be positive"
    assert s.MAX_MESSAGE_LENGTH > 0, "MAX_MESSAGE_LENGTH must be positive"


_validate_settings(settings)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger.info("Backend API base: %s", settings.API_BASE)
logger.info("Gemini model: %s (key configured: %s)", settings.GEMINI_MODEL, bool(settings.GEMINI_API_KEY))
logger.info("Speech synthesis configured: %s", bool(settings.ELEVENLABS_API_KEY))
