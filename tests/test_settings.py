"""
Tests for configuration loading.
"""

import pytest
from fastapi.testclient import TestClient

from jengatrack.core.settings import ConfigurationError, Settings, get_settings
from jengatrack.webhook.main import app, get_whatsapp_provider


class TestSettings:
    """Tests for required configuration."""

    def test_missing_database_url(self, monkeypatch, reset_settings):
        """Test a missing database URL is a configuration error naming both variables."""
        monkeypatch.setenv("DATABASE_URL", "")

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()

        message = str(exc_info.value)
        assert "DATABASE_URL" in message
        assert "SUPABASE_SERVICE_ROLE_KEY" in message

    def test_missing_service_role_key(self, monkeypatch, reset_settings):
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_defaults(self):
        settings = Settings(DATABASE_URL="sqlite://", SUPABASE_SERVICE_ROLE_KEY="key")

        assert settings.TWILIO_WHATSAPP_NUMBER == "whatsapp:+14155238886"
        assert settings.DASHBOARD_URL == "https://jengatrack.app"
        assert settings.INTERACTION_LOG_CAPACITY == 500
        assert settings.twilio_configured is False

    def test_webhook_secret_falls_back_to_auth_token(self):
        settings = Settings(
            DATABASE_URL="sqlite://",
            SUPABASE_SERVICE_ROLE_KEY="key",
            TWILIO_AUTH_TOKEN="token",
        )
        assert settings.webhook_secret == "token"


class TestStartup:
    """Tests for configuration checks at app startup."""

    @pytest.fixture
    def fresh_provider(self):
        get_whatsapp_provider.cache_clear()
        yield
        get_whatsapp_provider.cache_clear()

    def test_startup_fails_without_database_url(self, monkeypatch, reset_settings):
        """Test the webhook app refuses to start when required settings are unset."""
        monkeypatch.setenv("DATABASE_URL", "")

        with pytest.raises(ConfigurationError) as exc_info:
            with TestClient(app):
                pass

        assert "DATABASE_URL" in str(exc_info.value)

    def test_startup_fails_with_unconfigured_twilio(
        self, monkeypatch, reset_settings, fresh_provider
    ):
        monkeypatch.setenv("WHATSAPP_PROVIDER", "twilio")
        monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
        monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)

        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass

    def test_startup_succeeds_with_required_settings(self, reset_settings, fresh_provider):
        with TestClient(app) as client:
            assert client.get("/api/webhook/debug").status_code == 200
