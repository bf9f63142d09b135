from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/.env (two levels up from backend/src/talkwell/core/config.py)
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        case_sensitive=True,
        extra="ignore",
    )

    DATABASE_URL: str = "sqlite+aiosqlite:///./talkwell.db"

    # Vapi voice engine
    VAPI_API_KEY: Optional[str] = None
    VAPI_ASSISTANT_ID: Optional[str] = None
    VAPI_BASE_URL: str = "https://api.vapi.ai"

    # Voice session knobs
    VOICE_END_GRACE_SECONDS: float = 5.0
    VOICE_EXPECTS_END_REPORT: bool = True
    VOICE_TICK_SECONDS: float = 1.0

    # Engine call bounds
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_RETRIES: int = 2

    # Comma-separated list
    CORS_ORIGINS: Optional[str] = None


settings = Settings()
