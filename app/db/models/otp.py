from __future__ import annotations

"""
🔑 Password Reset — OTP (One-Time Password)
==========================================

Short-lived 6-digit codes emailed during the first step of a password reset.

Design highlights
-----------------
• **Per-email purpose scoping**: at most one *active* (unused) OTP per
  `(email, purpose)`; rotation invalidates older rows in the same transaction
  that inserts the new one.
• Only a bcrypt digest of the code is stored (`otp_hash`).
• `attempts` only ever grows, via a single atomic UPDATE in `OtpLedger`.

Notes
-----
• No `expires_at > created_at` CHECK so tests can insert already-expired rows.
  Freshness is enforced in application code at read time.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, func, text

from app.core.clock import as_utc, is_expired
from app.db.base_class import Base, BigIntPK


class OtpToken(Base):
    """One-time password issued for a password reset."""

    __tablename__ = "otp_tokens"

    # ─────────────── Identity ───────────────
    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    # ─────────────── OTP Details ───────────────
    email = Column(String(320), nullable=False, doc="Normalized (trimmed, lowercase) email")
    otp_hash = Column(String(255), nullable=False, doc="bcrypt digest of the 6-digit code")
    purpose = Column(String(64), nullable=False, doc="e.g. 'password_reset'")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, doc="Expiration timestamp (UTC)")
    attempts = Column(Integer, nullable=False, default=0, server_default=text("0"))
    max_attempts = Column(Integer, nullable=False, default=5, server_default=text("5"))
    used = Column(Boolean, nullable=False, default=False, server_default=text("false"))

    # ─────────────── Indexes ───────────────
    __table_args__ = (
        Index(
            "ix_otp_tokens_active_by_email_purpose",
            "email",
            "purpose",
            postgresql_where=text("used = false"),
        ),
        Index("ix_otp_tokens_expires_at", "expires_at"),
    )

    # ─────────────── Helpers ───────────────
    def is_expired(self, now: datetime) -> bool:
        return is_expired(self.expires_at, now)

    @property
    def attempts_exhausted(self) -> bool:
        return (self.attempts or 0) >= (self.max_attempts or 0)

    @property
    def expires_at_utc(self) -> datetime | None:
        return as_utc(self.expires_at)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<OtpToken id={self.id} email={self.email} purpose={self.purpose} "
            f"attempts={self.attempts}/{self.max_attempts} used={self.used}>"
        )
