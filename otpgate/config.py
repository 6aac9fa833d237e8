from __future__ import annotations

import os
import secrets
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from otpgate.logging import get_logger

logger = get_logger(__name__)

# Fixed by the code format; not configurable
OTP_CODE_LENGTH = 6


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the OTP authentication service."""

    jwt_secret: str = env_field(None, "JWT_SECRET")
    jwt_issuer: str = env_field("otpgate", "JWT_ISSUER")
    token_ttl_minutes: int = env_field(
        24 * 60,
        "TOKEN_TTL_MINUTES",
        description="Session token validity, independent of OTP expiry",
    )
    otp_ttl_seconds: int = env_field(
        5 * 60, "OTP_TTL_SECONDS", description="Lifetime of an issued one-time code"
    )
    max_failed_attempts: int = env_field(
        3,
        "MAX_FAILED_ATTEMPTS",
        description="Consecutive wrong codes before the identifier is blocked",
    )
    lockout_seconds: int = env_field(
        10 * 60, "LOCKOUT_SECONDS", description="Length of the block window"
    )
    normalize_identifiers: bool = env_field(
        False,
        "NORMALIZE_IDENTIFIERS",
        description="Strip whitespace and lower-case emails before keying records",
    )
    enforce_lockout_on_verify: bool = env_field(
        False,
        "ENFORCE_LOCKOUT_ON_VERIFY",
        description="Reject code verification while the identifier is blocked",
    )
    otp_log_codes: bool = env_field(
        False,
        "OTP_LOG_CODES",
        description="Development delivery: write issued codes to the log",
    )
    cleanup_interval_seconds: int = env_field(300, "CLEANUP_INTERVAL_SECONDS")
    host: str = env_field("0.0.0.0", "HOST")
    port: int = env_field(3001, "PORT")
    cors_allow_origins: list[str] = env_field(
        ["http://localhost:5173"], "CORS_ALLOW_ORIGINS"
    )
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow runtime resets between tests",
    )

    model_config = ConfigDict(extra="ignore", validate_default=True)

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator(
        "token_ttl_minutes",
        "otp_ttl_seconds",
        "max_failed_attempts",
        "lockout_seconds",
        "cleanup_interval_seconds",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("jwt_secret", mode="before")
    @classmethod
    def _ensure_jwt_secret(cls, value: str | None) -> str:
        if value:
            return value
        # Tokens signed with a generated secret do not survive a restart
        logger.warning(
            "jwt_secret_generated",
            message="JWT_SECRET not set; issued tokens are valid for this process only",
        )
        return secrets.token_urlsafe(64)


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
