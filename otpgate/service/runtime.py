from __future__ import annotations

import threading

from otpgate.config import get_settings, reset_settings_cache
from otpgate.logging import get_logger
from otpgate.service.auth import AuthService
from otpgate.storage.memory import MemoryStore

logger = get_logger(__name__)


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        self.store = MemoryStore()
        self.auth = AuthService(self.store, self.settings)
        logger.info(
            "runtime_init_complete",
            otp_ttl_seconds=self.settings.otp_ttl_seconds,
            max_failed_attempts=self.settings.max_failed_attempts,
            lockout_seconds=self.settings.lockout_seconds,
            test_mode=self.settings.test_mode,
        )


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking:
    - First check without lock (fast path for existing runtime)
    - Second check with lock to prevent race condition during creation
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""

    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime
