from __future__ import annotations

"""
👤 Password Reset — User (credential store)
==========================================

Minimal account record backing `SqlUserDirectory`: the reset flow only needs
to find a user by email, replace the password hash and mark the email as
confirmed (a successful OTP round-trip proves mailbox ownership).

Design highlights
-----------------
• Email stored lowercase and unique; lookups use the normalized form.
• **DB-driven, tz-aware timestamps** (`func.now()`; `timezone=True`).
"""

from uuid import uuid4

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, Uuid, func, text

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    # ── Identity & Authentication ─────────────────────────────────────────────
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(320), nullable=False, unique=True)
    hashed_password = Column(String, nullable=False, doc="bcrypt hash of the password")
    email_confirmed = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))

    # ── Timestamps ────────────────────────────────────────────────────────────
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (CheckConstraint("length(email) > 0", name="email_not_blank"),)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email} confirmed={self.email_confirmed}>"
