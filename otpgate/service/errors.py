from __future__ import annotations

from typing import Optional

from otpgate.service.auth import AuthFailure, ErrorCode


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass pairs an HTTP status_code with a stable error_code:
    - validation_error (400)
    - otp_expired (401)
    - invalid_code (401)
    - invalid_token (401)
    - rate_limited (429)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Malformed identifier or code (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed (401)."""
    status_code = 401
    error_code = "unauthorized"


class OtpExpiredError(AuthenticationError):
    """No challenge, or the challenge is past its deadline (401)."""
    error_code = "otp_expired"


class InvalidCodeError(AuthenticationError):
    """Wrong code for a still-valid challenge (401)."""
    error_code = "invalid_code"


class InvalidTokenError(AuthenticationError):
    """Bearer token missing, malformed, expired or forged (401)."""
    error_code = "invalid_token"


class RateLimitedError(ServiceError):
    """Identifier is blocked (429)."""
    status_code = 429
    error_code = "rate_limited"


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


def error_from_failure(failure: AuthFailure) -> ServiceError:
    """Translate a core failure result into the matching exception."""
    if failure.code is ErrorCode.RATE_LIMITED:
        detail: dict = {"remaining_time": failure.remaining_seconds}
        if failure.blocked_until is not None:
            detail["blocked_until"] = failure.blocked_until.isoformat()
        return RateLimitedError(failure.message, detail=detail)
    if failure.code is ErrorCode.OTP_EXPIRED:
        return OtpExpiredError(failure.message, detail={"expired": True})
    if failure.code is ErrorCode.INVALID_CODE:
        return InvalidCodeError(
            failure.message,
            detail={"attempts_remaining": failure.attempts_remaining},
        )
    if failure.code is ErrorCode.INVALID_TOKEN:
        return InvalidTokenError(failure.message)
    return ValidationError(failure.message)


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "OtpExpiredError",
    "InvalidCodeError",
    "InvalidTokenError",
    "RateLimitedError",
    "ServerError",
    "error_from_failure",
]
