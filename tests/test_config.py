"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from otpgate.config import Settings, get_settings, reset_settings_cache


class TestDefaults:
    def test_policy_defaults(self):
        settings = Settings(jwt_secret="x" * 32)

        assert settings.otp_ttl_seconds == 300
        assert settings.max_failed_attempts == 3
        assert settings.lockout_seconds == 600
        assert settings.token_ttl_minutes == 24 * 60
        assert settings.normalize_identifiers is False
        assert settings.enforce_lockout_on_verify is False

    def test_generates_secret_when_missing(self):
        settings = Settings()
        assert len(settings.jwt_secret) >= 32


class TestFromEnv:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("OTP_TTL_SECONDS", "30")
        monkeypatch.setenv("MAX_FAILED_ATTEMPTS", "5")
        monkeypatch.setenv("LOCKOUT_SECONDS", "60")
        monkeypatch.setenv("NORMALIZE_IDENTIFIERS", "true")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.test, http://b.test")

        settings = Settings.from_env()

        assert settings.otp_ttl_seconds == 30
        assert settings.max_failed_attempts == 5
        assert settings.lockout_seconds == 60
        assert settings.normalize_identifiers is True
        assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]

    def test_get_settings_is_cached_until_reset(self, monkeypatch):
        reset_settings_cache()
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("LOCKOUT_SECONDS", "120")
        reset_settings_cache()
        assert get_settings().lockout_seconds == 120


class TestValidation:
    @pytest.mark.parametrize(
        "field", ["otp_ttl_seconds", "max_failed_attempts", "lockout_seconds", "token_ttl_minutes"]
    )
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            Settings(jwt_secret="x" * 32, **{field: 0})
