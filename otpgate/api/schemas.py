from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from otpgate.storage.models import User

# Upper bound on body strings; identifiers and codes are far shorter
MAX_FIELD_LENGTH = 320


class ErrorBody(BaseModel):
    """Error envelope body with a stable code value."""

    code: str
    message: str
    details: Optional[Any] = None


class Envelope(BaseModel):
    """API envelope format."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("field cannot be empty")
    return value


class OtpRequest(BaseModel):
    identifier: str = Field(..., max_length=MAX_FIELD_LENGTH)

    @field_validator("identifier")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        return _require_text(value)


class OtpVerifyRequest(BaseModel):
    identifier: str = Field(..., max_length=MAX_FIELD_LENGTH)
    otp: str = Field(..., max_length=MAX_FIELD_LENGTH)

    @field_validator("identifier", "otp")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        return _require_text(value)


class OtpRequestedResponse(BaseModel):
    message: str = "OTP generated successfully"
    expires_in: int
    expires_at: datetime


class UserResponse(BaseModel):
    identifier: str
    created_at: datetime
    last_login: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            identifier=user.identifier,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class AuthResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
