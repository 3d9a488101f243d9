# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User repository.

The repository never decides where its data lives. It asks its session
provider for a session, and the provider (routing manager or request-bound
session) decides based on the traffic classification.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import User

logger = logging.getLogger(__name__)


class SessionProvider(Protocol):
    def get_session(self) -> AbstractAsyncContextManager[AsyncSession]: ...


class UserRepository:
    def __init__(self, sessions: SessionProvider):
        self.sessions = sessions

    async def find_all(self) -> list[User]:
        async with self.sessions.get_session() as session:
            result = await session.execute(select(User).order_by(User.id))
            return list(result.scalars().all())

    async def find_by_id(self, user_id: int) -> User | None:
        async with self.sessions.get_session() as session:
            result = await session.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        async with self.sessions.get_session() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def save(self, user: User) -> User:
        """Insert or update ``user`` and commit."""
        async with self.sessions.get_session() as session:
            user = await session.merge(user)
            await session.commit()
            await session.refresh(user)
            logger.debug(f"Saved user {user.id}")
            return user

    async def delete_by_id(self, user_id: int) -> bool:
        async with self.sessions.get_session() as session:
            result = await session.execute(delete(User).where(User.id == user_id))
            await session.commit()
            return result.rowcount > 0
