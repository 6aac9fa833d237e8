from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Protocol

from otpgate.logging import get_logger
from otpgate.service.concurrency import Clock, utc_now
from otpgate.storage.models import LockoutState

logger = get_logger(__name__)


class LockoutStore(Protocol):
    def get_lockout(self, identifier: str) -> Optional[LockoutState]: ...

    def save_lockout(self, state: LockoutState) -> LockoutState: ...

    def delete_lockout(self, identifier: str) -> bool: ...

    def list_lockouts(self) -> List[LockoutState]: ...


class LockoutManager:
    """Consecutive failed-verification accounting with a timed block.

    Block status is derived from the stored deadline at read time. Once the
    deadline passes the record reads as absent, whether or not it has been
    purged yet. Every failure at or beyond the threshold re-arms the block, so
    wrong guesses during an active block extend it.
    """

    def __init__(
        self,
        store: LockoutStore,
        *,
        max_attempts: int,
        block_seconds: int,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.max_attempts = max_attempts
        self.block_window = timedelta(seconds=block_seconds)
        self._clock = clock

    def _current(self, identifier: str, now: datetime) -> Optional[LockoutState]:
        state = self.store.get_lockout(identifier)
        if state is None or state.has_lapsed(now):
            return None
        return state

    def is_blocked(self, identifier: str, now: Optional[datetime] = None) -> bool:
        now = now or self._clock()
        state = self._current(identifier, now)
        return bool(state and state.is_blocking(now, self.max_attempts))

    def get_blocked_until(
        self, identifier: str, now: Optional[datetime] = None
    ) -> Optional[datetime]:
        now = now or self._clock()
        state = self._current(identifier, now)
        if state and state.is_blocking(now, self.max_attempts):
            return state.blocked_until
        return None

    def get_failed_attempts(
        self, identifier: str, now: Optional[datetime] = None
    ) -> int:
        state = self._current(identifier, now or self._clock())
        return state.failed_attempts if state else 0

    def record_failure(
        self, identifier: str, now: Optional[datetime] = None
    ) -> LockoutState:
        now = now or self._clock()
        state = self._current(identifier, now) or LockoutState(identifier=identifier)
        state.failed_attempts += 1
        if state.failed_attempts >= self.max_attempts:
            state.blocked_until = now + self.block_window
            logger.warning(
                "lockout_triggered",
                identifier=identifier,
                failed_attempts=state.failed_attempts,
                blocked_until=state.blocked_until.isoformat(),
            )
        self.store.save_lockout(state)
        return state

    def reset_attempts(self, identifier: str) -> None:
        self.store.delete_lockout(identifier)

    def lapsed_identifiers(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        return [s.identifier for s in self.store.list_lockouts() if s.has_lapsed(now)]

    def purge_if_lapsed(self, identifier: str, now: Optional[datetime] = None) -> bool:
        state = self.store.get_lockout(identifier)
        if not state or not state.has_lapsed(now or self._clock()):
            return False
        return self.store.delete_lockout(identifier)
