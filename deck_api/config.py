from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment (and `.env`)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # Generative AI (OpenAI-compatible endpoint)
    ai_api_key: str = ""
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    ai_model: str = "gemini-2.0-flash"
    ai_timeout: float = 60.0
    ai_temperature: float = 0.8
    ai_max_tokens: int = 8192

    # Firestore
    firestore_project: Optional[str] = None
    firestore_database: str = "(default)"

    # Quiz reconciliation
    quiz_batch_size: int = Field(20, ge=1)
    quiz_type: str = "multiple-choice"
    quiz_claim_ttl_seconds: int = Field(600, ge=1)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
