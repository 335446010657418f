# tests/fixtures/db.py
"""
DB fixtures for tests (async, SQLite in memory):
- One fresh database per test (function-scoped engine)
- StaticPool so every session shares the single in-memory connection
- Tables built from the ORM registry
"""

from typing import AsyncGenerator, List, Type

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import base
from app.db.session import build_session_factory

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"


@pytest.fixture()
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(base.Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture()
def fetch_all(session_factory: async_sessionmaker[AsyncSession]):
    """`await fetch_all(Model)` → every row of that table (for assertions)."""

    async def _fetch(model: Type) -> List:
        async with session_factory() as session:
            return list((await session.execute(select(model))).scalars().all())

    return _fetch
