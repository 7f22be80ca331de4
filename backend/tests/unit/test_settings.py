"""
Unit tests for Pydantic Settings configuration.

Tests settings loading and validation.
"""

from zoneinfo import ZoneInfo

import pytest

from app.config.settings import Settings


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_loads_from_env(self):
        """Settings should load from environment variables."""
        from app.config.settings import settings

        # Set by the test configuration
        assert settings.jwt_secret is not None
        assert settings.stripe_webhook_secret is not None

    def test_settings_has_defaults(self):
        """Settings should have sensible defaults."""
        settings = Settings(_env_file=None)

        assert settings.quota_timezone == "UTC"
        assert settings.payment_currency == "usd"
        assert settings.stripe_webhook_tolerance_seconds == 300
        assert settings.stripe_max_network_retries >= 1
        assert settings.activity_feed_size == 15
        assert 100 in settings.download_milestones

    def test_quota_zone_property(self):
        settings = Settings(_env_file=None, quota_timezone="Europe/Lisbon")
        assert settings.quota_zone == ZoneInfo("Europe/Lisbon")

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, quota_timezone="Mars/Olympus_Mons")

    def test_production_requires_secrets(self):
        """Production refuses to start without database and secrets."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, environment="production", database_url=None)

    def test_production_with_secrets(self):
        settings = Settings(
            _env_file=None,
            environment="production",
            jwt_secret="secret",
            stripe_secret_key="sk_live_x",
            stripe_webhook_secret="whsec_x",
            database_url="postgresql://u:p@db:5432/entitlements",
        )
        assert settings.is_production is True
        assert settings.is_development is False

    def test_allowed_origins_includes_localhost(self):
        """allowed_origins should include localhost for development."""
        settings = Settings(_env_file=None)

        assert "http://localhost:5173" in settings.allowed_origins
        assert "http://localhost:3000" in settings.allowed_origins
