import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Environment defaults must be set before otpgate reads its settings
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from otpgate.config import Settings  # noqa: E402
from otpgate.service.auth import AuthService  # noqa: E402
from otpgate.service.runtime import reset_runtime_for_tests  # noqa: E402
from otpgate.storage.memory import MemoryStore  # noqa: E402


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingDelivery:
    """Captures issued codes instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, datetime]] = []

    def send(self, identifier: str, code: str, expires_at: datetime) -> None:
        self.sent.append((identifier, code, expires_at))

    def last_code(self, identifier: str) -> str:
        for sent_to, code, _ in reversed(self.sent):
            if sent_to == identifier:
                return code
        raise AssertionError(f"no code sent to {identifier}")


def wrong_code(code: str) -> str:
    """A well-formed code guaranteed to differ from ``code``."""
    return "000000" if code != "000000" else "111111"


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings():
    return Settings(jwt_secret="Test-Secret-Key_for-Automation-Only-987654321!")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def auth_service(store, settings, clock, delivery):
    return AuthService(store, settings, clock=clock, delivery=delivery)
