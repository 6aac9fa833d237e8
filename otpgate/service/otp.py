from __future__ import annotations

import hmac
import secrets
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from otpgate.config import OTP_CODE_LENGTH
from otpgate.logging import get_logger
from otpgate.service.concurrency import Clock, utc_now
from otpgate.storage.models import OtpChallenge

logger = get_logger(__name__)


class OtpStore(Protocol):
    def get_otp(self, identifier: str) -> Optional[OtpChallenge]: ...

    def save_otp(self, challenge: OtpChallenge) -> OtpChallenge: ...

    def delete_otp(self, identifier: str) -> bool: ...

    def list_otps(self) -> List[OtpChallenge]: ...


def generate_code(length: int = OTP_CODE_LENGTH) -> str:
    """Uniformly random numeric code, leading zeros included."""
    return str(secrets.randbelow(10**length)).zfill(length)


class OtpManager:
    """Issues and checks the single active challenge per identifier.

    Expiry and matching are separate questions: callers check ``is_expired``
    first so an expired challenge is never reported as a wrong code.
    """

    def __init__(
        self,
        store: OtpStore,
        *,
        ttl_seconds: int,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(
        self, identifier: str, now: Optional[datetime] = None
    ) -> Tuple[str, datetime]:
        now = now or self._clock()
        challenge = OtpChallenge.new(
            identifier, generate_code(), now, self.ttl_seconds
        )
        # Overwrites any previous challenge, used or not
        self.store.save_otp(challenge)
        logger.info(
            "otp_challenge_issued",
            identifier=identifier,
            expires_at=challenge.expires_at.isoformat(),
        )
        return challenge.code, challenge.expires_at

    def is_expired(self, identifier: str, now: Optional[datetime] = None) -> bool:
        """True when no challenge exists or its deadline has been reached."""
        challenge = self.store.get_otp(identifier)
        if not challenge:
            return True
        return challenge.is_expired(now or self._clock())

    def validate(
        self, identifier: str, code: str, now: Optional[datetime] = None
    ) -> bool:
        challenge = self.store.get_otp(identifier)
        if not challenge:
            return False
        if not hmac.compare_digest(challenge.code.encode(), code.encode()):
            return False
        return not challenge.is_expired(now or self._clock())

    def expired_identifiers(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        return [c.identifier for c in self.store.list_otps() if c.is_expired(now)]

    def purge_if_expired(self, identifier: str, now: Optional[datetime] = None) -> bool:
        # Re-read: a fresh challenge may have replaced the one seen by the sweep
        challenge = self.store.get_otp(identifier)
        if not challenge or not challenge.is_expired(now or self._clock()):
            return False
        return self.store.delete_otp(identifier)
