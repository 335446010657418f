from __future__ import annotations

"""
User directory — the account store seen by the reset flow.

The coordinator depends only on the `UserDirectory` protocol. The bundled
`SqlUserDirectory` backs it with the local `users` table; deployments that
keep accounts elsewhere plug in their own implementation.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.security import hash_password_async
from app.db.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    id: UUID
    email: str
    email_confirmed: bool = False


class UserDirectory(Protocol):
    async def lookup_by_email(self, email: str) -> Optional[DirectoryUser]: ...

    async def update_password(self, user_id: UUID, password: str, *, confirm_email: bool) -> None:
        """Set a new password. Raises on failure."""
        ...


class UserNotUpdated(RuntimeError):
    """The directory refused or could not apply a password update."""


class SqlUserDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def lookup_by_email(self, email: str) -> Optional[DirectoryUser]:
        stmt = select(User).where(User.email == email, User.is_active.is_(True))
        async with self._sessions() as session:
            user = (await session.execute(stmt)).scalar_one_or_none()
        if user is None:
            return None
        return DirectoryUser(id=user.id, email=user.email, email_confirmed=bool(user.email_confirmed))

    async def update_password(self, user_id: UUID, password: str, *, confirm_email: bool) -> None:
        hashed = await hash_password_async(password)
        values: dict = {"hashed_password": hashed}
        if confirm_email:
            values["email_confirmed"] = True
        async with self._sessions() as session, session.begin():
            result = await session.execute(update(User).where(User.id == user_id).values(**values))
        if result.rowcount != 1:
            raise UserNotUpdated(f"No user row updated for id={user_id}")
        logger.info("Password updated (user_id=%s)", user_id)


__all__ = ["DirectoryUser", "UserDirectory", "UserNotUpdated", "SqlUserDirectory"]
