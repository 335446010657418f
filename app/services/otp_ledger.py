from __future__ import annotations

"""
OTP ledger — sole writer of `otp_tokens`
========================================

Every state change of an OTP record goes through here:

- **rotate**: invalidate the active OTP(s) and insert a fresh one in **one
  transaction**, so there is never more than one usable code per
  `(email, purpose)`.
- **record_failed_attempt**: a single `UPDATE ... SET attempts = attempts + 1
  RETURNING` so concurrent wrong guesses can never share an attempt slot.
- **consume**: conditional `UPDATE ... WHERE used = false`; the row count
  decides which of two racing verifications wins.
- Two interleaved rotations can each miss the other's insert and leave two
  unused rows. Only the newest is ever served; whenever it is consumed,
  discarded or deleted, every older unused row for the pair is retired in
  the same transaction so it cannot resurface.

Sessions are opened per operation from the injected `async_sessionmaker`.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, utcnow
from app.core.security import fingerprint, generate_otp_code, hash_otp, verify_otp
from app.db.models.otp import OtpToken

logger = logging.getLogger(__name__)


class OtpLedger:
    """Issue, look up, attempt-count and consume password-reset OTPs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, clock: Clock = utcnow) -> None:
        self._sessions = session_factory
        self._clock = clock

    # ─────────────────────────────────────────────────────────
    # 🎲 Generation & hashing
    # ─────────────────────────────────────────────────────────
    @staticmethod
    def generate_code() -> str:
        return generate_otp_code()

    @staticmethod
    async def verify_code(record: OtpToken, code: str) -> bool:
        return await verify_otp(code, record.otp_hash)

    # ─────────────────────────────────────────────────────────
    # ✍️ Issue / rotate
    # ─────────────────────────────────────────────────────────
    async def invalidate_active(self, email: str, purpose: str) -> int:
        """Mark every unused OTP for `(email, purpose)` as used."""
        async with self._sessions() as session, session.begin():
            return await self._invalidate(session, email, purpose)

    async def issue(
        self,
        email: str,
        purpose: str,
        code: str,
        *,
        ttl: timedelta,
        max_attempts: int,
    ) -> OtpToken:
        otp_hash = await hash_otp(code)
        async with self._sessions() as session, session.begin():
            return await self._insert(session, email, purpose, otp_hash, ttl, max_attempts)

    async def rotate(
        self,
        email: str,
        purpose: str,
        code: str,
        *,
        ttl: timedelta,
        max_attempts: int,
    ) -> OtpToken:
        """Invalidate the active OTP(s) and issue a new one atomically."""
        otp_hash = await hash_otp(code)
        async with self._sessions() as session, session.begin():
            invalidated = await self._invalidate(session, email, purpose)
            record = await self._insert(session, email, purpose, otp_hash, ttl, max_attempts)
        logger.info(
            "OTP issued (email=%s, purpose=%s, superseded=%d)",
            fingerprint(email)[:12], purpose, invalidated,
        )
        return record

    # ─────────────────────────────────────────────────────────
    # 🔎 Lookup
    # ─────────────────────────────────────────────────────────
    async def fetch_active(self, email: str, purpose: str) -> Optional[OtpToken]:
        """Newest unused OTP for the pair, expired or not (expiry is the caller's call)."""
        stmt = (
            select(OtpToken)
            .where(OtpToken.email == email, OtpToken.purpose == purpose, OtpToken.used.is_(False))
            .order_by(OtpToken.created_at.desc(), OtpToken.id.desc())
            .limit(1)
        )
        async with self._sessions() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    # ─────────────────────────────────────────────────────────
    # 🔁 State transitions
    # ─────────────────────────────────────────────────────────
    async def record_failed_attempt(self, record: OtpToken) -> int:
        """
        Atomically bump `attempts` and return the attempts left.

        When the new count reaches `max_attempts` the record is deleted and 0
        is returned. A record that vanished concurrently also yields 0.
        """
        stmt = (
            update(OtpToken)
            .where(OtpToken.id == record.id)
            .values(attempts=OtpToken.attempts + 1)
            .returning(OtpToken.attempts, OtpToken.max_attempts)
        )
        async with self._sessions() as session, session.begin():
            row = (await session.execute(stmt)).one_or_none()
            if row is None:
                return 0
            attempts, max_attempts = row
            record.attempts = attempts
            if attempts >= max_attempts:
                await session.execute(delete(OtpToken).where(OtpToken.id == record.id))
                await self._retire_older(session, record)
                logger.warning("OTP attempt budget exhausted (id=%s); record removed", record.id)
                return 0
        return max_attempts - attempts

    async def consume(self, record: OtpToken) -> bool:
        """Mark the OTP used. Returns False if it was already used or gone."""
        stmt = (
            update(OtpToken)
            .where(OtpToken.id == record.id, OtpToken.used.is_(False))
            .values(used=True)
        )
        async with self._sessions() as session, session.begin():
            result = await session.execute(stmt)
            won = result.rowcount == 1
            if won:
                await self._retire_older(session, record)
        if won:
            record.used = True
        return won

    async def discard(self, record: OtpToken) -> None:
        async with self._sessions() as session, session.begin():
            await session.execute(delete(OtpToken).where(OtpToken.id == record.id))
            await self._retire_older(session, record)

    async def delete_expired(self, record: OtpToken) -> bool:
        """Delete the record only if it is past `expires_at` (used or not)."""
        now = self._clock()
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(OtpToken).where(OtpToken.id == record.id, OtpToken.expires_at < now)
            )
            if result.rowcount == 1:
                await self._retire_older(session, record)
        return result.rowcount == 1

    async def purge_expired(self) -> int:
        """Sweep expired or already-used rows; returns how many were removed."""
        now = self._clock()
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(OtpToken).where(or_(OtpToken.expires_at < now, OtpToken.used.is_(True)))
            )
        return result.rowcount or 0

    # ─────────────────────────────────────────────────────────
    # 🧰 Internals (run inside the caller's transaction)
    # ─────────────────────────────────────────────────────────
    @staticmethod
    async def _invalidate(session: AsyncSession, email: str, purpose: str) -> int:
        result = await session.execute(
            update(OtpToken)
            .where(OtpToken.email == email, OtpToken.purpose == purpose, OtpToken.used.is_(False))
            .values(used=True)
        )
        return result.rowcount or 0

    @staticmethod
    async def _retire_older(session: AsyncSession, record: OtpToken) -> int:
        result = await session.execute(
            update(OtpToken)
            .where(
                OtpToken.email == record.email,
                OtpToken.purpose == record.purpose,
                OtpToken.used.is_(False),
                OtpToken.id < record.id,
            )
            .values(used=True)
        )
        return result.rowcount or 0

    async def _insert(
        self,
        session: AsyncSession,
        email: str,
        purpose: str,
        otp_hash: str,
        ttl: timedelta,
        max_attempts: int,
    ) -> OtpToken:
        now = self._clock()
        record = OtpToken(
            email=email,
            purpose=purpose,
            otp_hash=otp_hash,
            created_at=now,
            expires_at=now + ttl,
            attempts=0,
            max_attempts=max_attempts,
            used=False,
        )
        session.add(record)
        await session.flush()
        return record


__all__ = ["OtpLedger"]
