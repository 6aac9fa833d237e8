from __future__ import annotations

import copy
import threading
from typing import Dict, List, Optional

from otpgate.logging import get_logger
from otpgate.storage.models import LockoutState, OtpChallenge, User


class MemoryStore:
    """In-process backing store for users, OTP challenges and lockout records.

    Records are keyed by identifier. Reads and writes hand out copies so callers
    never share a mutable record with the store between operations.
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[str, User] = {}
        self.otps: Dict[str, OtpChallenge] = {}
        self.lockouts: Dict[str, LockoutState] = {}
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()

    # -- users ---------------------------------------------------------------

    def get_user(self, identifier: str) -> Optional[User]:
        with self._data_lock:
            user = self.users.get(identifier)
            return copy.copy(user) if user else None

    def save_user(self, user: User) -> User:
        with self._data_lock:
            self.users[user.identifier] = copy.copy(user)
        return user

    def delete_user(self, identifier: str) -> bool:
        with self._data_lock:
            return self.users.pop(identifier, None) is not None

    # -- otp challenges ------------------------------------------------------

    def get_otp(self, identifier: str) -> Optional[OtpChallenge]:
        with self._data_lock:
            challenge = self.otps.get(identifier)
            return copy.copy(challenge) if challenge else None

    def save_otp(self, challenge: OtpChallenge) -> OtpChallenge:
        with self._data_lock:
            self.otps[challenge.identifier] = copy.copy(challenge)
        return challenge

    def delete_otp(self, identifier: str) -> bool:
        with self._data_lock:
            return self.otps.pop(identifier, None) is not None

    def list_otps(self) -> List[OtpChallenge]:
        with self._data_lock:
            return [copy.copy(challenge) for challenge in self.otps.values()]

    # -- lockout state -------------------------------------------------------

    def get_lockout(self, identifier: str) -> Optional[LockoutState]:
        with self._data_lock:
            state = self.lockouts.get(identifier)
            return copy.copy(state) if state else None

    def save_lockout(self, state: LockoutState) -> LockoutState:
        with self._data_lock:
            self.lockouts[state.identifier] = copy.copy(state)
        return state

    def delete_lockout(self, identifier: str) -> bool:
        with self._data_lock:
            return self.lockouts.pop(identifier, None) is not None

    def list_lockouts(self) -> List[LockoutState]:
        with self._data_lock:
            return [copy.copy(state) for state in self.lockouts.values()]

    def clear(self) -> None:
        """Drop every record. Used by tests and local resets."""
        with self._data_lock:
            self.users.clear()
            self.otps.clear()
            self.lockouts.clear()
        self.logger.info("memory_store_cleared")
