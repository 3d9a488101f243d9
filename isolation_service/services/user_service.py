# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User operations with cache and event isolation.

Cached lookups go through the routing cache manager, so real traffic reads
and writes ``real:users::<id>`` and test traffic ``test:users::<id>``.
Evicting all entries only affects the current traffic kind's namespace.
"""

from __future__ import annotations

import logging
from typing import Any

from ..cache.router import RoutingCacheManager
from ..models import User
from ..repositories.user_repository import UserRepository
from ..streams.events import UserCreatedEvent
from ..streams.publisher import UserEventPublisher
from ..traffic.context import ClassificationContext

logger = logging.getLogger(__name__)

USERS_CACHE = "users"


class UserService:
    def __init__(
        self,
        repository: UserRepository,
        caches: RoutingCacheManager,
        publisher: UserEventPublisher,
        context: ClassificationContext,
    ):
        self.repository = repository
        self.caches = caches
        self.publisher = publisher
        self.context = context

    async def get_users(self) -> list[dict[str, Any]]:
        return [user.to_dict() for user in await self.repository.find_all()]

    async def get_user(self, email: str) -> dict[str, Any] | None:
        user = await self.repository.find_by_email(email)
        return user.to_dict() if user else None

    async def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        cache = self.caches.get_cache(USERS_CACHE)
        cached = await cache.get(user_id)
        if cached is not None:
            logger.debug(f"Cache HIT for user ID: {user_id}")
            return cached

        logger.info(f"Cache MISS for user ID: {user_id} - fetching from database")
        user = await self.repository.find_by_id(user_id)
        if user is None:
            return None

        data = user.to_dict()
        await cache.put(user_id, data)
        return data

    async def create_user(self, username: str, password: str, email: str) -> dict[str, Any]:
        """Persist a user and announce it; the event is published after the commit."""
        user = User(username=username, password=password, email=email, is_test=self.context.is_test())
        saved = await self.repository.save(user)

        self.publisher.publish_user_created(
            UserCreatedEvent(id=saved.id, username=saved.username, email=saved.email, is_test=saved.is_test)
        )
        return saved.to_dict()

    async def update_user(self, user_id: int, username: str, password: str, email: str) -> dict[str, Any] | None:
        existing = await self.repository.find_by_id(user_id)
        if existing is None:
            return None

        existing.username = username
        existing.password = password
        existing.email = email
        saved = await self.repository.save(existing)
        await self.caches.get_cache(USERS_CACHE).evict(user_id)
        return saved.to_dict()

    async def delete_user(self, user_id: int) -> bool:
        deleted = await self.repository.delete_by_id(user_id)
        await self.caches.get_cache(USERS_CACHE).evict(user_id)
        return deleted

    async def evict_all_users_cache(self) -> int:
        removed = await self.caches.get_cache(USERS_CACHE).clear()
        logger.info(f"Evicted {removed} users from cache")
        return removed
