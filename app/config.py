"""Configuration settings for Callcoach."""

import os
import secrets
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./callcoach.db")

    # JWT
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_MINUTES: int = int(os.getenv("JWT_EXPIRE_MINUTES", "480"))

    # OpenAI (speech-to-text + chat completion)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_TRANSCRIBE_MODEL: str = os.getenv("OPENAI_TRANSCRIBE_MODEL", "whisper-1")
    OPENAI_CHAT_MODEL: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    OPENAI_TIMEOUT_SECONDS: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "120"))

    # Storage / upload
    STORAGE_DIR: str = os.getenv("STORAGE_DIR", "storage")
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
    MAX_UPLOAD_SIZE_MB: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "100"))

    # Background transcription
    TRANSCRIPTION_INLINE_WORKER: bool = os.getenv("TRANSCRIPTION_INLINE_WORKER", "true").lower() == "true"
    WORKER_POLL_INTERVAL_SECONDS: float = float(os.getenv("WORKER_POLL_INTERVAL_SECONDS", "2"))
    # A running job older than this is assumed to belong to a dead worker
    JOB_STALE_AFTER_SECONDS: float = float(os.getenv("JOB_STALE_AFTER_SECONDS", "300"))

    # Client
    STATUS_POLL_INTERVAL_SECONDS: float = float(os.getenv("STATUS_POLL_INTERVAL_SECONDS", "10"))

    # Application
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")
    APP_ENV: str = os.getenv("APP_ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    @property
    def max_upload_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def validate(self) -> list[str]:
        """Validate settings and return list of warnings."""
        errors = []
        if not os.getenv("JWT_SECRET_KEY"):
            errors.append("JWT_SECRET_KEY is not set - using auto-generated key (not persistent across restarts)")
        if not self.OPENAI_API_KEY:
            errors.append("OPENAI_API_KEY is not set - transcription and analysis will be unavailable")
        elif not self.OPENAI_API_KEY.startswith("sk-"):
            errors.append("OPENAI_API_KEY does not look like an OpenAI key (expected 'sk-' prefix)")
        if self.JOB_STALE_AFTER_SECONDS < 2 * self.OPENAI_TIMEOUT_SECONDS:
            errors.append("JOB_STALE_AFTER_SECONDS is below twice OPENAI_TIMEOUT_SECONDS - live jobs may be re-queued")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
