# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Datasource router: pick the REAL or TEST database per unit of work.

The choice is made when a session first needs a connection, not when the
session object is created and not when the router is built. Once a
transaction has its connection it keeps that backend until it ends, so a
unit of work that acquired its connection before the request was classified
stays on REAL for its whole duration.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from ..routing import BackendKey, BackendRouter
from ..traffic.context import ClassificationContext
from .manager import DatabaseManager

logger = logging.getLogger(__name__)


class TrafficRoutingSession(Session):
    """Session whose bind is resolved from the traffic classification per transaction."""

    def __init__(self, *args: Any, datasource_router: RoutingDatabaseManager, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.datasource_router = datasource_router
        self.pinned_key: BackendKey | None = None
        self._pinned_bind: Engine | None = None

    def get_bind(self, mapper: Any = None, clause: Any = None, **kw: Any) -> Engine:
        if self._pinned_bind is None:
            key, backend = self.datasource_router.router.resolve()
            self._pinned_bind = self.datasource_router.engine_of(backend)
            self.pinned_key = key
        return self._pinned_bind


@event.listens_for(TrafficRoutingSession, "after_transaction_end")
def _release_pinned_bind(session: TrafficRoutingSession, transaction: Any) -> None:
    if transaction.parent is None:
        session._pinned_bind = None
        session.pinned_key = None


class RoutingDatabaseManager:
    """Routes sessions to one of two fully isolated ``DatabaseManager`` backends."""

    def __init__(self, real: DatabaseManager, test: DatabaseManager, context: ClassificationContext):
        self.router: BackendRouter[DatabaseManager] = BackendRouter("datasource", real, test, context)
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return

        for key in BackendKey:
            await self.router.backend_for(key).initialize()

        self.session_factory = async_sessionmaker(
            class_=AsyncSession,
            sync_session_class=TrafficRoutingSession,
            expire_on_commit=False,
            autoflush=True,
            datasource_router=self,
        )

        self._initialized = True
        logger.info("Routing database manager initialized (REAL, TEST)")

    def resolve_key(self) -> BackendKey:
        return self.router.resolve_key()

    def resolve_backend(self) -> DatabaseManager:
        """Backend for the classification active right now."""
        return self.router.select()

    @staticmethod
    def engine_of(backend: DatabaseManager) -> Engine:
        if backend.engine is None:
            raise RuntimeError(f"Database '{backend.name}' not initialized")
        return backend.engine.sync_engine

    def open_session(self) -> AsyncSession:
        if not self.session_factory:
            raise RuntimeError("Routing database not initialized")
        return self.session_factory()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a routed session; the backend is chosen at first connection use."""
        if not self._initialized:
            await self.initialize()

        async with self.open_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        for key in BackendKey:
            await self.router.backend_for(key).create_schema()

    async def health_check(self) -> dict[str, bool]:
        return {key.value: await self.router.backend_for(key).health_check() for key in BackendKey}

    async def close(self) -> None:
        for key in BackendKey:
            await self.router.backend_for(key).close()
        self._initialized = False
        self.session_factory = None
