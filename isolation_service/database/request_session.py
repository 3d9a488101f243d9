# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Request-bound session for the session-marker isolation strategy.

With this strategy there is a single database backend and row-level security
does the partitioning. The ingress gate opens one session per request after
the classification is established, stamps it with ``SessionMarker`` and binds
it here; repositories then run on that very session.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

from sqlalchemy.ext.asyncio import AsyncSession

from ..traffic.classification import TrafficClassification
from ..traffic.context import ClassificationContext
from ..traffic.session_marker import SessionMarker
from .manager import DatabaseManager

logger = logging.getLogger(__name__)

_request_session_var: ContextVar[AsyncSession | None] = ContextVar("request_session", default=None)
_request_marker_var: ContextVar[SessionMarker | None] = ContextVar("request_session_marker", default=None)


def current_request_session() -> AsyncSession | None:
    return _request_session_var.get()


def current_session_marker() -> SessionMarker | None:
    return _request_marker_var.get()


class RequestSessionBinder:
    """Open, mark and bind the per-request session; clear and close it on exit."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @asynccontextmanager
    async def bind(self, classification: TrafficClassification) -> AsyncIterator[SessionMarker]:
        await self.db_manager.initialize()

        # Opened only now, after the classification exists
        session = self.db_manager.open_session()
        marker = SessionMarker(session)
        session_token = _request_session_var.set(session)
        marker_token = _request_marker_var.set(marker)

        try:
            if classification.is_test:
                await marker.mark_test()
            else:
                await marker.mark_production()
            yield marker
        finally:
            _request_marker_var.reset(marker_token)
            _request_session_var.reset(session_token)
            try:
                await marker.clear()
            finally:
                await session.close()


class RequestScopedSessionProvider:
    """Session provider for repositories under the session-marker strategy.

    Inside a classified request the bound, marked session is reused and left
    open for the gate to close. Outside one (startup jobs, consumers) a fresh
    session is opened and marked from ``context``, so a consumer handling a
    test event inside a test scope still reaches only test rows. Without a
    context, or under production, the fresh session is left unmarked.
    """

    def __init__(self, db_manager: DatabaseManager, context: ClassificationContext | None = None):
        self.db_manager = db_manager
        self.context = context

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        session = current_request_session()
        if session is None:
            async with self.db_manager.get_session() as fresh:
                if self.context is None or not self.context.is_test():
                    yield fresh
                    return

                marker = SessionMarker(fresh)
                await marker.mark_test()
                try:
                    yield fresh
                finally:
                    await marker.clear()
            return

        try:
            yield session
        except Exception:
            await session.rollback()
            raise

    async def create_schema(self) -> None:
        await self.db_manager.create_schema()

    async def health_check(self) -> dict[str, bool]:
        return {self.db_manager.name: await self.db_manager.health_check()}

    async def close(self) -> None:
        await self.db_manager.close()
