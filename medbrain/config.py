"""
Configuration settings for medbrain.

Reads credentials and tuning knobs from the project .env file.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Gemini
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    llm_temperature: float = Field(default=0.3, alias="LLM_TEMPERATURE")
    llm_timeout_seconds: float = Field(default=120.0, alias="LLM_TIMEOUT_SECONDS")
    llm_max_retries: int = Field(default=2, alias="LLM_MAX_RETRIES")

    # Knowledge base retrieval
    knowledge_max_chunks: int = Field(default=5, alias="KNOWLEDGE_MAX_CHUNKS")
    knowledge_max_chars_per_chunk: int = Field(default=1200, alias="KNOWLEDGE_MAX_CHARS_PER_CHUNK")

    # Workflow policy
    synthesis_validation: bool = Field(default=True, alias="SYNTHESIS_VALIDATION")
    isolate_specialized_failures: bool = Field(default=True, alias="ISOLATE_SPECIALIZED_FAILURES")

    # Billing
    tokens_per_credit: int = Field(default=1000, alias="TOKENS_PER_CREDIT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_json: bool = Field(default=False, alias="LOG_JSON")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
