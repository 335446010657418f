from __future__ import annotations

"""
Reset-token ledger — sole writer of `reset_tokens`.

Tokens are looked up by value only. Issuing never touches older tokens for
the same email; after a successful redeem `invalidate_siblings` clears them
and `discard` drops the redeemed row itself.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, utcnow
from app.core.security import fingerprint, generate_reset_token
from app.db.models.reset_token import ResetToken

logger = logging.getLogger(__name__)


class ResetTokenLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, clock: Clock = utcnow) -> None:
        self._sessions = session_factory
        self._clock = clock

    async def issue(self, email: str, *, ttl: timedelta) -> ResetToken:
        now = self._clock()
        record = ResetToken(
            email=email,
            token=generate_reset_token(),
            created_at=now,
            expires_at=now + ttl,
            used=False,
        )
        async with self._sessions() as session, session.begin():
            session.add(record)
            await session.flush()
        logger.info("Reset token issued (email=%s, id=%s)", fingerprint(email)[:12], record.id)
        return record

    async def fetch_active(self, token: str) -> Optional[ResetToken]:
        stmt = select(ResetToken).where(ResetToken.token == token, ResetToken.used.is_(False))
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def consume(self, record: ResetToken) -> bool:
        """Single-use claim; False when another request already redeemed it."""
        stmt = (
            update(ResetToken)
            .where(ResetToken.id == record.id, ResetToken.used.is_(False))
            .values(used=True)
        )
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
        won = result.rowcount == 1
        if won:
            record.used = True
        return won

    async def invalidate_siblings(self, email: str, exclude_id: int) -> int:
        """Delete every other reset token for `email`."""
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(ResetToken).where(ResetToken.email == email, ResetToken.id != exclude_id)
            )
        return result.rowcount or 0

    async def discard(self, record: ResetToken) -> None:
        async with self._sessions() as session, session.begin():
            await session.execute(delete(ResetToken).where(ResetToken.id == record.id))

    async def delete_expired(self, record: ResetToken) -> bool:
        now = self._clock()
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(ResetToken).where(ResetToken.id == record.id, ResetToken.expires_at < now)
            )
        return result.rowcount == 1

    async def purge_expired(self) -> int:
        now = self._clock()
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(ResetToken).where(or_(ResetToken.expires_at < now, ResetToken.used.is_(True)))
            )
        return result.rowcount or 0


__all__ = ["ResetTokenLedger"]
