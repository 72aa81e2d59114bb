from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    LANDINGKIT_INTERNAL_API_TOKEN: str
    LANDINGKIT_DB_URL: str = "sqlite:///./landingkit.db"
    LANDINGKIT_TEMPLATES_DIR: Path = Path("templates/shopify")

    SHOPIFY_ADMIN_API_VERSION: str = "2025-01"
    SHOPIFY_REQUEST_TIMEOUT_SECONDS: float = 20.0
    SHOPIFY_TOKEN_REFRESH_BUFFER_SECONDS: int = 300

    MEDIA_POLL_ATTEMPTS: int = 10
    MEDIA_POLL_INTERVAL_SECONDS: float = 0.5

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_REQUEST_TIMEOUT_SECONDS: int = 120

    @field_validator("SHOPIFY_ADMIN_API_VERSION")
    @classmethod
    def validate_api_version(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("SHOPIFY_ADMIN_API_VERSION cannot be empty")
        return cleaned

    @field_validator("SHOPIFY_TOKEN_REFRESH_BUFFER_SECONDS", "MEDIA_POLL_ATTEMPTS")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must be >= 0")
        return value

    @field_validator("GEMINI_API_KEY")
    @classmethod
    def normalize_gemini_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
