"""Application configuration from environment."""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from env / .env."""

    app_name: str = "Territory Quest"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite+aiosqlite:///./territory_quest.db"

    # JWT bearer tokens
    secret_key: str = "change-me-in-production-use-env"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # Auth cookie (session-based for browser clients)
    auth_cookie_name: str = "tq_auth"
    auth_cookie_max_age: int = 60 * 60 * 24 * 14  # 14 days

    # Syllabus generation (any OpenAI-compatible chat completions gateway)
    ai_api_key: str = ""
    ai_base_url: str | None = None
    ai_model: str = "gpt-4o-mini"
    ai_timeout_seconds: float = 60.0
    syllabus_max_chars: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()


# Base path of the project (parent of app/)
BASE_DIR = Path(__file__).resolve().parent.parent.parent
