# app/main.py
from __future__ import annotations

"""
# Password Reset API — Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the email OTP password-reset
service.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- Long-lived handles (session factory, Redis client) are created once and
  handed to the ledgers by reference; tests inject their own.
- Explicit **middleware order**: request id (inner) → CORS (outer).
- Centralized exception handling: every error is `{"error", "code"}` JSON.

## Health checks
- `/healthz` — liveness (process up).
- `/readyz` — readiness (quick DB/Redis checks).
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.routers.password_reset import router as password_reset_router
from app.core.clock import Clock, utcnow
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import (
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.logger import setup_logging
from app.core.redis_client import RedisClient, redis_wrapper
from app.db.session import db_healthcheck, dispose_engine, get_session_factory
from app.middleware.request_id import RequestIDMiddleware
from app.security_headers import configure_cors
from app.services.notifier import EmailNotifier, Notifier
from app.services.otp_ledger import OtpLedger
from app.services.rate_limiter import RateLimiter
from app.services.reset_coordinator import ResetCoordinator
from app.services.reset_token_ledger import ResetTokenLedger
from app.services.user_directory import SqlUserDirectory, UserDirectory

logger = logging.getLogger("password_reset")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup:
        - Connect Redis when the app owns the client. The rate limiter fails
          closed, so a missing Redis means reset requests end in 500s.

    Shutdown:
        - Close Redis and dispose the DB engine (owned handles only).
    """
    logger.info("✅ Password Reset API starting up (env=%s)", app.state.settings.ENV)
    owns_infra = getattr(app.state, "owns_infra", False)
    if owns_infra:
        try:
            await app.state.redis.connect()
        except RuntimeError:
            logger.exception("Redis connect failed; rate-limited endpoints will return 500 until it recovers")
    try:
        yield
    finally:
        if owns_infra:
            await app.state.redis.close()
            await dispose_engine()
        logger.info("🛑 Password Reset API shutting down")


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[Settings] = None,
    *,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    redis: Optional[RedisClient] = None,
    notifier: Optional[Notifier] = None,
    directory: Optional[UserDirectory] = None,
    clock: Clock = utcnow,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Any collaborator left as None is built from settings (production path).
    """
    cfg = cfg or default_settings
    setup_logging(cfg)

    owns_infra = session_factory is None and redis is None
    session_factory = session_factory or get_session_factory()
    redis = redis or redis_wrapper

    coordinator = ResetCoordinator(
        settings=cfg,
        rate_limiter=RateLimiter(redis, key_prefix=cfg.REDIS_KEY_PREFIX, clock=clock),
        otp_ledger=OtpLedger(session_factory, clock=clock),
        token_ledger=ResetTokenLedger(session_factory, clock=clock),
        directory=directory or SqlUserDirectory(session_factory),
        notifier=notifier or EmailNotifier(cfg),
        clock=clock,
        sleep=sleep,
    )

    app = FastAPI(
        title=cfg.PROJECT_NAME,
        version=cfg.VERSION,
        docs_url="/docs" if cfg.ENABLE_DOCS else None,
        redoc_url=None,
        openapi_url="/openapi.json" if cfg.ENABLE_DOCS else None,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.redis = redis
    app.state.session_factory = session_factory
    app.state.reset_coordinator = coordinator
    app.state.owns_infra = owns_infra

    # ── Middlewares (last added = outermost) ────────────────────────────────
    app.add_middleware(RequestIDMiddleware)
    configure_cors(app, cfg)

    # ── Exception handlers ──────────────────────────────────────────────────
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)           # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)

    # ── Routers ─────────────────────────────────────────────────────────────
    app.include_router(password_reset_router, prefix=cfg.API_PREFIX)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/healthz", tags=["meta"])
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/readyz", tags=["meta"])
    async def readyz() -> dict[str, object]:
        """Per-dependency booleans and an aggregated `ready` flag."""
        redis_ok = await app.state.redis.is_connected()
        db_ok = await db_healthcheck(app.state.session_factory)
        return {"ready": bool(db_ok and redis_ok), "checks": {"db": db_ok, "redis": redis_ok}}

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn/Gunicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()
__all__ = ["create_app", "app"]


# Local dev runner (prefer: `uvicorn app.main:app --reload`)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "1") == "1",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
