from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional


@dataclass
class User:
    identifier: str
    created_at: datetime
    last_login: datetime

    @classmethod
    def new(cls, identifier: str, now: datetime) -> "User":
        return cls(identifier=identifier, created_at=now, last_login=now)


@dataclass
class OtpChallenge:
    identifier: str
    code: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def new(
        cls, identifier: str, code: str, now: datetime, ttl_seconds: int
    ) -> "OtpChallenge":
        return cls(
            identifier=identifier,
            code=code,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class LockoutState:
    identifier: str
    failed_attempts: int = 0
    blocked_until: Optional[datetime] = None

    def is_blocking(self, now: datetime, max_attempts: int) -> bool:
        return (
            self.failed_attempts >= max_attempts
            and self.blocked_until is not None
            and self.blocked_until > now
        )

    def has_lapsed(self, now: datetime) -> bool:
        """A block whose deadline has passed; the record then reads as absent."""
        return self.blocked_until is not None and self.blocked_until <= now
