"""Tests for configuration module."""

import os
from unittest.mock import patch

from bizfit_api.config import Settings, get_settings


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self) -> None:
        """Test that default values are set correctly."""
        # Create settings with explicit defaults (ignoring env vars)
        settings = Settings(
            openai_api_key="",
            database_url="sqlite:///./bizfit.db",
            rate_limit_per_minute=30,  # Override test env var
        )

        assert settings.openai_base_url == "https://api.openai.com/v1"
        assert settings.llm_model == "gpt-4o-mini"
        assert settings.llm_max_tokens == 800
        assert settings.llm_temperature == 0.3
        assert settings.llm_timeout_seconds == 15.0
        assert settings.ai_max_requests_per_window == 20
        assert settings.ai_window_seconds == 60.0
        assert settings.ai_max_wait_seconds == 3.0
        assert settings.ai_max_history == 50
        assert settings.ai_cleanup_interval_seconds == 120.0
        assert settings.analysis_shortlist_size == 5
        assert settings.content_cache_ttl == 3600
        assert settings.content_cache_max_entries == 5000
        assert settings.port == 3001
        assert settings.log_level == "INFO"

    def test_is_development(self) -> None:
        """Test is_development property."""
        settings = Settings(environment="development")
        assert settings.is_development is True

        settings = Settings(environment="production")
        assert settings.is_development is False

    def test_has_openai_key_valid(self) -> None:
        """Test has_openai_key with a well-formed key."""
        settings = Settings(openai_api_key="sk-test1234567890abcdef")
        assert settings.has_openai_key is True

    def test_has_openai_key_invalid(self) -> None:
        """Test has_openai_key with a key lacking the sk- prefix."""
        settings = Settings(openai_api_key="invalid-key")
        assert settings.has_openai_key is False

    def test_has_openai_key_empty(self) -> None:
        """Test has_openai_key with empty API key."""
        settings = Settings(openai_api_key="")
        assert settings.has_openai_key is False

    @patch.dict(os.environ, {"OPENAI_API_KEY": "sk-envtest1234567890"})
    def test_load_from_env(self) -> None:
        """Test loading settings from environment variables."""
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.openai_api_key == "sk-envtest1234567890"
        get_settings.cache_clear()

    def test_get_settings_caching(self) -> None:
        """Test that get_settings returns cached instance."""
        get_settings.cache_clear()
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2
        get_settings.cache_clear()

    def test_mock_settings_fixture(self, mock_settings) -> None:
        """Environment overrides flow through get_settings."""
        settings = mock_settings(ai_max_requests_per_window="5", analysis_shortlist_size="3")
        assert settings.ai_max_requests_per_window == 5
        assert settings.analysis_shortlist_size == 3


class TestValidateOpenAIApiKey:
    """Tests for API key format validation."""

    def test_not_set(self) -> None:
        assert Settings(openai_api_key="").validate_openai_api_key() == 0

    def test_valid(self) -> None:
        assert Settings(openai_api_key="sk-abcdefghij0123456789").validate_openai_api_key() == 1

    def test_wrong_prefix(self) -> None:
        assert Settings(openai_api_key="pk-abcdefghij0123456789").validate_openai_api_key() == 2

    def test_wrong_length(self) -> None:
        assert Settings(openai_api_key="sk-short").validate_openai_api_key() == 3

    def test_invalid_characters(self) -> None:
        """Keys may only contain letters, digits, dashes and underscores."""
        assert Settings(openai_api_key="sk-abcdefghij 0123456789!").validate_openai_api_key() == 4
