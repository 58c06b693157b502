"""Tests for ShareSettings construction and validation."""

import pytest

from conftest import ENCRYPTION_SECRET, SESSION_SECRET
from vault_shares.settings import ShareSettings


def _valid(**overrides):
    fields = {
        "environment": "test",
        "encryption_key": ENCRYPTION_SECRET,
        "session_secret": SESSION_SECRET,
    }
    fields.update(overrides)
    return ShareSettings(**fields)


class TestValidate:

    def test_local_settings_valid(self):
        assert _valid().validate() == []

    def test_missing_secrets(self):
        errors = ShareSettings().validate()
        assert "local: ENCRYPTION_KEY is required" in errors
        assert "local: SESSION_SECRET is required" in errors

    def test_production_needs_supabase(self):
        errors = _valid(environment="production").validate()
        assert "production: SUPABASE_SERVICE_ROLE_KEY is required" in errors
        assert "production: supabase_url is required" in errors

    def test_production_complete(self):
        settings = _valid(
            environment="production",
            supabase_url="https://xyz.supabase.co",
            supabase_service_role_key="svc-key",
        )
        assert settings.validate() == []
        assert settings.is_local is False

    @pytest.mark.parametrize("overrides", [
        {"deposit_ip_limit_per_minute": 0},
        {"deposit_share_limit_per_hour": -1},
        {"store_timeout_seconds": 0},
    ])
    def test_non_positive_limits(self, overrides):
        assert _valid(**overrides).validate()

    def test_repr_hides_secrets(self):
        settings = _valid(supabase_service_role_key="svc-key")
        text = repr(settings)
        assert ENCRYPTION_SECRET not in text
        assert SESSION_SECRET not in text
        assert "svc-key" not in text


class TestFromEnv:

    def test_defaults(self):
        settings = ShareSettings.from_env({})
        assert settings.environment == "local"
        assert settings.deposit_ip_limit_per_minute == 10
        assert settings.deposit_share_limit_per_hour == 100
        assert settings.github_api_url == "https://api.github.com"
        assert settings.log_json is True

    def test_overrides(self):
        settings = ShareSettings.from_env({
            "ENVIRONMENT": "staging",
            "ENCRYPTION_KEY": f" {ENCRYPTION_SECRET} ",
            "SUPABASE_URL": "https://xyz.supabase.co/",
            "DEPOSIT_IP_LIMIT_PER_MINUTE": "5",
            "STORE_TIMEOUT_SECONDS": "2.5",
            "CORS_ORIGINS": "https://app.example.com, https://www.example.com",
            "LOG_LEVEL": "debug",
            "LOG_FORMAT": "console",
        })
        assert settings.environment == "staging"
        assert settings.encryption_key == ENCRYPTION_SECRET
        assert settings.supabase_url == "https://xyz.supabase.co"
        assert settings.deposit_ip_limit_per_minute == 5
        assert settings.store_timeout_seconds == 2.5
        assert settings.cors_origins == ("https://app.example.com", "https://www.example.com")
        assert settings.log_level == "DEBUG"
        assert settings.log_json is False

    def test_blank_numbers_use_defaults(self):
        settings = ShareSettings.from_env({"RESOLVE_TIMEOUT_SECONDS": "  "})
        assert settings.resolve_timeout_seconds == 10.0
