from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header

from otpgate.api.schemas import (
    AuthResponse,
    Envelope,
    OtpRequest,
    OtpRequestedResponse,
    OtpVerifyRequest,
    UserResponse,
)
from otpgate.logging import get_logger
from otpgate.service.auth import AuthFailure
from otpgate.service.errors import InvalidTokenError, error_from_failure
from otpgate.service.runtime import get_runtime

logger = get_logger(__name__)

router = APIRouter(prefix="/auth")


def _extract_bearer(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


@router.post("/request-otp", response_model=Envelope, tags=["auth"])
async def request_otp(body: OtpRequest):
    """Issue a one-time code for an email or phone identifier.

    Raises:
        400: If the identifier is not a valid email or phone number
        429: If the identifier is blocked after repeated failures
    """
    result = get_runtime().auth.request_challenge(body.identifier)
    if isinstance(result, AuthFailure):
        raise error_from_failure(result)
    return Envelope(
        status="ok",
        data=OtpRequestedResponse(
            expires_in=result.expires_in_seconds, expires_at=result.expires_at
        ),
    )


@router.post("/verify-otp", response_model=Envelope, tags=["auth"])
async def verify_otp(body: OtpVerifyRequest):
    """Exchange a valid code for a bearer token.

    Raises:
        400: If the identifier or code is malformed
        401: If the code has expired or does not match
    """
    result = get_runtime().auth.verify_challenge(body.identifier, body.otp)
    if isinstance(result, AuthFailure):
        raise error_from_failure(result)
    return Envelope(
        status="ok",
        data=AuthResponse(
            token=result.token, user=UserResponse.from_user(result.user)
        ),
    )


@router.get("/me", response_model=Envelope, tags=["auth"])
async def get_current_user(authorization: Optional[str] = Header(None)):
    token = _extract_bearer(authorization)
    if not token:
        raise InvalidTokenError("missing or malformed bearer token")
    result = get_runtime().auth.get_current_user(token)
    if isinstance(result, AuthFailure):
        raise error_from_failure(result)
    return Envelope(status="ok", data={"user": UserResponse.from_user(result)})
