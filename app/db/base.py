# app/db/base.py
"""
Password Reset — SQLAlchemy Base registry
=========================================

Import all ORM models so their tables are registered on `Base.metadata`
(Alembic autogeneration, `create_all` in tests).

Tip: Keep this file import-only; no runtime logic.
"""

from app.db.base_class import Base
from app.db.models.otp import OtpToken
from app.db.models.reset_token import ResetToken
from app.db.models.user import User

__all__ = ["Base", "OtpToken", "ResetToken", "User"]
