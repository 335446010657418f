# app/db/session.py
from __future__ import annotations

"""
Password Reset — Database Engines & Session Factories

- One async engine + `async_sessionmaker` per process, created lazily so
  importing this module never opens connections.
- Ledgers receive the session factory by reference at construction and open
  short-lived sessions per operation.
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


# ─────────────────────────────────────────────────────────────
# ⚡ Builders
# ─────────────────────────────────────────────────────────────
def build_async_engine(cfg: Settings, url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine; pool knobs only apply to server databases."""
    dsn = url or cfg.ASYNC_DATABASE_URL
    kwargs: dict = {"echo": cfg.DB_ECHO, "future": True, "pool_pre_ping": True}
    if make_url(dsn).get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=cfg.DB_POOL_SIZE,
            max_overflow=cfg.DB_MAX_OVERFLOW,
            pool_timeout=cfg.DB_POOL_TIMEOUT,
            pool_recycle=cfg.DB_POOL_RECYCLE,
        )
    return create_async_engine(dsn, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


# ─────────────────────────────────────────────────────────────
# 🧱 Process-wide handles (lazy)
# ─────────────────────────────────────────────────────────────
def get_async_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_async_engine(settings)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_async_engine())
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the process engine (lifespan shutdown)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed.")
    _engine = None
    _session_factory = None


async def db_healthcheck(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Quick SELECT 1 to verify DB connectivity (used by /readyz)."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("DB healthcheck failed")
        return False


__all__ = [
    "build_async_engine",
    "build_session_factory",
    "get_async_engine",
    "get_session_factory",
    "dispose_engine",
    "db_healthcheck",
]
