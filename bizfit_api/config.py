"""Environment configuration using pydantic-settings."""

import re
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI configuration
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_max_tokens: int = 800
    llm_temperature: float = 0.3
    llm_timeout_seconds: float = 15.0

    # Outbound LLM rate limiting (sliding window, per process)
    ai_max_requests_per_window: int = 20
    ai_window_seconds: float = 60.0
    ai_max_wait_seconds: float = 3.0
    ai_max_history: int = 50
    ai_cleanup_interval_seconds: float = 120.0

    # Fit analysis
    analysis_shortlist_size: int = 5

    # AI content cache
    content_cache_ttl: int = 3600  # 1 hour
    content_cache_max_entries: int = 5000
    database_url: str = "sqlite:///./bizfit.db"

    # Inbound HTTP rate limiting
    rate_limit_per_minute: int = 30

    # Server configuration
    port: int = 3001
    host: str = "0.0.0.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    environment: Literal["development", "production"] = "development"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def has_openai_key(self) -> bool:
        """Check if an OpenAI API key is configured."""
        return bool(self.openai_api_key and self.openai_api_key.startswith("sk-"))

    def validate_openai_api_key(self) -> int:
        """Validate OpenAI API key format.

        Returns:
            Integer status code (not derived from key content):
            - 0: not set
            - 1: valid format
            - 2: incorrect prefix
            - 3: incorrect length
            - 4: invalid characters
        """
        if not self.openai_api_key:
            return 0

        key = self.openai_api_key

        if not key.startswith("sk-"):
            return 2

        if len(key) < 20 or len(key) > 200:
            return 3

        if not re.match(r"^[A-Za-z0-9_-]+$", key[3:]):
            return 4

        return 1


# validate_openai_api_key codes
API_KEY_CHECKS: dict[int, str] = {
    0: "not_set",
    1: "valid",
    2: "bad_prefix",
    3: "bad_length",
    4: "bad_characters",
}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
