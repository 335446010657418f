from __future__ import annotations

"""
🎟️ Password Reset — Reset Token
===============================

Opaque bearer token handed out after a successful OTP verification and
redeemed exactly once to set a new password.

• Looked up by `token` value (unique), never by email.
• Issuing a token leaves older ones alone; siblings are deleted only after a
  successful redemption.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, func, text

from app.core.clock import as_utc, is_expired
from app.db.base_class import Base, BigIntPK


class ResetToken(Base):
    __tablename__ = "reset_tokens"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, doc="URL-safe random, 256 bits")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    __table_args__ = (Index("ix_reset_tokens_expires_at", "expires_at"),)

    def is_expired(self, now: datetime) -> bool:
        return is_expired(self.expires_at, now)

    @property
    def expires_at_utc(self) -> datetime | None:
        return as_utc(self.expires_at)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ResetToken id={self.id} email={self.email} used={self.used}>"
