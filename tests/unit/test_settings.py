"""Unit tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from src.settings import AppSettings, get_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every variable the settings read."""
    for name in (
        "FEED_RATE_LIMIT_PER_MINUTE",
        "FEED_RATE_LIMIT_PER_HOUR",
        "FEED_CLIENT_POOL_SIZE",
        "FEED_MAX_RESPONSE_BYTES",
        "APP_ENVIRONMENT",
        "ENVIRONMENT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.unit
class TestAppSettings:
    """Tests for AppSettings."""

    def test_defaults(self) -> None:
        """Test default values."""
        settings = AppSettings()

        assert settings.rate_limit_per_minute == 60
        assert settings.rate_limit_per_hour == 1000
        assert settings.client_pool_size == 100
        assert settings.max_response_size_bytes == 10 * 1024 * 1024
        assert settings.environment is None
        assert settings.is_production is False

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test reading overrides from the environment."""
        monkeypatch.setenv("FEED_RATE_LIMIT_PER_MINUTE", "5")
        monkeypatch.setenv("FEED_RATE_LIMIT_PER_HOUR", "50")
        monkeypatch.setenv("FEED_CLIENT_POOL_SIZE", "3")
        monkeypatch.setenv("FEED_MAX_RESPONSE_BYTES", "2048")

        settings = AppSettings()

        assert settings.rate_limit_per_minute == 5
        assert settings.rate_limit_per_hour == 50
        assert settings.client_pool_size == 3
        assert settings.max_response_size_bytes == 2048

    def test_app_environment_preferred(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that APP_ENVIRONMENT wins over ENVIRONMENT."""
        monkeypatch.setenv("APP_ENVIRONMENT", "development")
        monkeypatch.setenv("ENVIRONMENT", "production")

        assert AppSettings().is_production is False

    def test_invalid_ceiling_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a zero ceiling is rejected."""
        monkeypatch.setenv("FEED_RATE_LIMIT_PER_MINUTE", "0")

        with pytest.raises(ValidationError):
            AppSettings()

    def test_get_settings_not_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that each call sees the current environment."""
        assert get_settings().is_production is False

        monkeypatch.setenv("ENVIRONMENT", "prod")

        assert get_settings().is_production is True
