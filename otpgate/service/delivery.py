from __future__ import annotations

from datetime import datetime
from typing import Protocol

from otpgate.logging import get_logger

logger = get_logger(__name__)


class OtpDelivery(Protocol):
    def send(self, identifier: str, code: str, expires_at: datetime) -> None: ...


class LogDelivery:
    """Development stand-in for an email/SMS sender.

    Records that a code went out. The code itself is only written when
    ``log_codes`` is enabled, which should never be the case in production.
    """

    def __init__(self, *, log_codes: bool = False) -> None:
        self.log_codes = log_codes

    def send(self, identifier: str, code: str, expires_at: datetime) -> None:
        channel = "email" if "@" in identifier else "sms"
        if self.log_codes:
            logger.info(
                "otp_delivered",
                channel=channel,
                identifier=identifier,
                dev_code=code,
                expires_at=expires_at.isoformat(),
            )
        else:
            logger.info(
                "otp_delivered",
                channel=channel,
                identifier=identifier,
                expires_at=expires_at.isoformat(),
            )
