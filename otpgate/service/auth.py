from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, Union

from otpgate.config import Settings
from otpgate.logging import get_logger
from otpgate.service.concurrency import Clock, KeyedLock, utc_now
from otpgate.service.delivery import LogDelivery, OtpDelivery
from otpgate.service.lockout import LockoutManager, LockoutStore
from otpgate.service.otp import OtpManager, OtpStore
from otpgate.service.tokens import TokenService
from otpgate.service.validation import (
    is_valid_code,
    is_valid_identifier,
    normalize_identifier,
)
from otpgate.storage.models import User

logger = get_logger(__name__)


class AuthStore(OtpStore, LockoutStore, Protocol):
    def get_user(self, identifier: str) -> Optional[User]: ...

    def save_user(self, user: User) -> User: ...


class ErrorCode(str, Enum):
    """Stable failure kinds returned by the authentication core."""

    VALIDATION_ERROR = "validation_error"
    RATE_LIMITED = "rate_limited"
    OTP_EXPIRED = "otp_expired"
    INVALID_CODE = "invalid_code"
    INVALID_TOKEN = "invalid_token"


@dataclass
class AuthFailure:
    code: ErrorCode
    message: str
    blocked_until: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    attempts_remaining: Optional[int] = None

    ok = False


@dataclass
class ChallengeIssued:
    identifier: str
    expires_at: datetime
    expires_in_seconds: int

    ok = True


@dataclass
class Authenticated:
    token: str
    user: User

    ok = True


def _seconds_until(deadline: datetime, now: datetime) -> int:
    return max(0, math.ceil((deadline - now).total_seconds()))


class AuthService:
    """Identifier-keyed OTP login: challenge requests, verification, token lookup.

    Operations on one identifier are serialized through a per-identifier lock;
    different identifiers never contend. The clock is read once per operation,
    after the lock is taken, and that instant is used for every expiry and
    block comparison in the operation.

    Check order is part of the contract:
    identifier/code shape, block status, challenge expiry, code match, then
    lockout bookkeeping. Malformed input therefore never reveals block status
    and an expired challenge never counts as a failed attempt.
    """

    def __init__(
        self,
        store: AuthStore,
        settings: Settings,
        *,
        clock: Clock = utc_now,
        delivery: Optional[OtpDelivery] = None,
        tokens: Optional[TokenService] = None,
    ) -> None:
        self.store: AuthStore = store
        self.settings = settings
        self._clock = clock
        self.otp = OtpManager(store, ttl_seconds=settings.otp_ttl_seconds, clock=clock)
        self.lockout = LockoutManager(
            store,
            max_attempts=settings.max_failed_attempts,
            block_seconds=settings.lockout_seconds,
            clock=clock,
        )
        self.tokens = tokens or TokenService(
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            ttl_minutes=settings.token_ttl_minutes,
            clock=clock,
        )
        self.delivery: OtpDelivery = delivery or LogDelivery(
            log_codes=settings.otp_log_codes
        )
        self._locks = KeyedLock()
        self.logger = logger
        self._last_cleanup = time.monotonic()

    def _key(self, identifier: Any) -> Any:
        if self.settings.normalize_identifiers and isinstance(identifier, str):
            return normalize_identifier(identifier)
        return identifier

    def _blocked_failure(self, blocked_until: datetime, now: datetime) -> AuthFailure:
        return AuthFailure(
            code=ErrorCode.RATE_LIMITED,
            message="too many failed attempts, try again later",
            blocked_until=blocked_until,
            remaining_seconds=_seconds_until(blocked_until, now),
        )

    def request_challenge(self, identifier: Any) -> Union[ChallengeIssued, AuthFailure]:
        key = self._key(identifier)
        if not is_valid_identifier(key):
            return AuthFailure(
                code=ErrorCode.VALIDATION_ERROR,
                message="identifier must be a valid email or phone number",
            )

        with self._locks.hold(key):
            now = self._clock()
            blocked_until = self.lockout.get_blocked_until(key, now)
            if blocked_until is not None:
                self.logger.warning("otp_request_blocked", identifier=key)
                return self._blocked_failure(blocked_until, now)

            if self.store.get_user(key) is None:
                self.store.save_user(User.new(key, now))
                self.logger.info("user_created", identifier=key)

            code, expires_at = self.otp.issue(key, now)

        self.delivery.send(key, code, expires_at)
        return ChallengeIssued(
            identifier=key,
            expires_at=expires_at,
            expires_in_seconds=_seconds_until(expires_at, now),
        )

    def verify_challenge(
        self, identifier: Any, code: Any
    ) -> Union[Authenticated, AuthFailure]:
        key = self._key(identifier)
        if not is_valid_identifier(key):
            return AuthFailure(
                code=ErrorCode.VALIDATION_ERROR, message="invalid identifier format"
            )
        if not is_valid_code(code):
            return AuthFailure(
                code=ErrorCode.VALIDATION_ERROR, message="code must be 6 digits"
            )

        with self._locks.hold(key):
            now = self._clock()
            if self.settings.enforce_lockout_on_verify:
                blocked_until = self.lockout.get_blocked_until(key, now)
                if blocked_until is not None:
                    self.logger.warning("otp_verify_blocked", identifier=key)
                    return self._blocked_failure(blocked_until, now)

            if self.otp.is_expired(key, now):
                return AuthFailure(
                    code=ErrorCode.OTP_EXPIRED,
                    message="code has expired, request a new one",
                )

            if not self.otp.validate(key, code, now):
                state = self.lockout.record_failure(key, now)
                remaining = max(0, self.lockout.max_attempts - state.failed_attempts)
                self.logger.warning(
                    "otp_verify_failed",
                    identifier=key,
                    failed_attempts=state.failed_attempts,
                    attempts_remaining=remaining,
                )
                return AuthFailure(
                    code=ErrorCode.INVALID_CODE,
                    message="invalid code",
                    attempts_remaining=remaining,
                )

            self.lockout.reset_attempts(key)
            user = self.store.get_user(key)
            if user is None:
                # Only reachable if the user record was removed out of band
                user = User.new(key, now)
            user.last_login = now
            self.store.save_user(user)
            token = self.tokens.issue(key)

        self.logger.info("otp_verify_succeeded", identifier=key)
        return Authenticated(token=token, user=user)

    def get_current_user(self, token: Optional[str]) -> Union[User, AuthFailure]:
        identifier = self.tokens.verify(token)
        user = self.store.get_user(identifier) if identifier else None
        if user is None:
            return AuthFailure(
                code=ErrorCode.INVALID_TOKEN, message="invalid or expired token"
            )
        return user

    def cleanup_expired_states(self, now: Optional[datetime] = None) -> int:
        """Purge expired challenges and lapsed lockouts.

        Lazy expiry on read already hides these records; this only reclaims
        memory. Each purge re-checks the record under the identifier's lock.

        Returns:
            Number of records removed
        """
        now = now or self._clock()
        otps = 0
        lockouts = 0
        for identifier in self.otp.expired_identifiers(now):
            with self._locks.hold(identifier):
                otps += int(self.otp.purge_if_expired(identifier, now))
        for identifier in self.lockout.lapsed_identifiers(now):
            with self._locks.hold(identifier):
                lockouts += int(self.lockout.purge_if_lapsed(identifier, now))

        cleaned = otps + lockouts
        if cleaned > 0:
            self.logger.debug(
                "auth_state_cleanup", cleaned=cleaned, otps=otps, lockouts=lockouts
            )
        self._last_cleanup = time.monotonic()
        return cleaned

    def maybe_cleanup(self, interval_seconds: Optional[int] = None) -> int:
        """Run cleanup if the interval has elapsed since the last sweep.

        Returns:
            Number of entries cleaned, or 0 if cleanup was skipped
        """
        interval = interval_seconds or self.settings.cleanup_interval_seconds
        if time.monotonic() - self._last_cleanup >= interval:
            return self.cleanup_expired_states()
        return 0
