from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Required Secrets (No defaults, will fail fast if missing)
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # Vision / LLM provider. A missing key only downgrades the AI endpoints to soft failures.
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_URL: str = "https://api.openai.com/v1/chat/completions"
    VISION_MODEL: str = "gpt-4o"
    AI_TIMEOUT_SECONDS: float = 30.0

    # Storage
    STORAGE_BUCKET: str = "report-photos"
    MAX_UPLOAD_SIZE_BYTES: int = 5 * 1024 * 1024

    # Community rules
    RECENT_DAYS: int = 30
    VERIFIED_THRESHOLD: int = 2
    LEADERBOARD_LIMIT: int = 50
    ALLOW_UPVOTE_REMOVAL: bool = True
    ADMIN_EMAILS: str = ""

    # --- Need score policy ---
    NEED_VOLUME_WEIGHT: float = 30
    NEED_VOLUME_SATURATION: float = 15
    NEED_OPEN_WEIGHT: float = 25
    NEED_UPVOTE_WEIGHT: float = 20
    NEED_UPVOTE_SATURATION: float = 5
    NEED_BACKLOG_WEIGHT: float = 15
    NEED_SPEED_WEIGHT: float = 10
    NEED_SPEED_SATURATION_HOURS: float = 72
    NEED_EMPTY_SCORE: int = 10

    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Pydantic v2 config to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

# Instantiate as a singleton to be imported across the app
settings = Settings()

# Fail Fast validation for the required variables
if not settings.SUPABASE_URL:
    raise RuntimeError("Missing required env var: SUPABASE_URL")
if not settings.SUPABASE_KEY:
    raise RuntimeError("Missing required env var: SUPABASE_KEY")
