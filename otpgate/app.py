from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from otpgate.api.error_handling import register_exception_handlers
from otpgate.api.routes import router
from otpgate.api.schemas import HealthResponse
from otpgate.config import get_settings
from otpgate.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

__version__ = "0.1.0"

_cleanup_task: asyncio.Task | None = None


async def _run_state_cleanup(interval_seconds: int) -> None:
    """Background loop that purges expired challenges and lapsed lockouts."""
    from otpgate.service.runtime import get_runtime

    interval = max(interval_seconds, 1)
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                get_runtime().auth.cleanup_expired_states()
            except Exception as exc:
                logger.error("auth_state_cleanup_failed", error=str(exc))
    except asyncio.CancelledError:
        logger.info("auth_state_cleanup_stopped")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global _cleanup_task
    from otpgate.service.runtime import get_runtime

    runtime = get_runtime()
    _cleanup_task = asyncio.create_task(
        _run_state_cleanup(runtime.settings.cleanup_interval_seconds)
    )
    logger.info("startup_complete", version=__version__)

    yield

    if _cleanup_task:
        _cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _cleanup_task
        _cleanup_task = None
    logger.info("shutdown_complete")


app = FastAPI(title="otpgate", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    return get_settings().cors_allow_origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag each request with a correlation ID for log tracing.

    The ID comes from the X-Request-ID header when the client sends one and is
    echoed back in the response header either way.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    logger.info("request_started", method=request.method, path=request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


register_exception_handlers(app)
app.include_router(router)


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health() -> HealthResponse:
    return HealthResponse(timestamp=datetime.now(timezone.utc))


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("otpgate.app:app", host=settings.host, port=settings.port)
