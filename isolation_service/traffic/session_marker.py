# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Stamp the traffic classification onto a relational session.

Server-side row-level security policies read ``app.test_mode`` through
``current_setting('app.test_mode', true)``. The marker writes that setting
with ``set_config(..., is_local => true)`` so it lives only as long as the
current transaction and disappears when the connection returns to the pool.

Ordering hazard: the setting only protects statements that run after it was
stamped. Statements a session executed before ``mark_test()`` ran unmarked and
stay that way. Acquire the session after the classification is known (see
``RequestSessionBinder``) and never hand a pre-used session to the marker.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import SessionMarkerError

logger = logging.getLogger(__name__)

TEST_MODE_SETTING = "app.test_mode"

_STAMP_SQL = text("SELECT set_config(:name, :value, true)")
_READ_SQL = text("SELECT current_setting(:name, true)")
_IDENTITY_SQL = text("SELECT current_user")


class MarkerState(str, Enum):
    """Marker states. Production is the absence of a mark, not a state of its own."""

    UNMARKED = "unmarked"
    MARKED_TEST = "marked_test"


class SessionMarker:
    """Session-local test marker bound to one ``AsyncSession``.

    While marked, every transaction the session begins is stamped from an
    ``after_begin`` listener before its first statement, so commits inside a
    request do not drop the mark.
    """

    def __init__(self, session: AsyncSession, setting_name: str = TEST_MODE_SETTING):
        self.session = session
        self.setting_name = setting_name
        self.state = MarkerState.UNMARKED
        self._listening = False

    @property
    def is_marked(self) -> bool:
        return self.state is MarkerState.MARKED_TEST

    def _on_begin(self, session: Any, transaction: Any, connection: Any) -> None:
        if self.state is MarkerState.MARKED_TEST:
            connection.execute(_STAMP_SQL, {"name": self.setting_name, "value": "true"})
            logger.debug("Test marker stamped on new transaction")

    def _listen(self) -> None:
        if not self._listening:
            event.listen(self.session.sync_session, "after_begin", self._on_begin)
            self._listening = True

    def _unlisten(self) -> None:
        if self._listening:
            event.remove(self.session.sync_session, "after_begin", self._on_begin)
            self._listening = False

    async def _stamp(self, value: str) -> None:
        await self.session.execute(_STAMP_SQL, {"name": self.setting_name, "value": value})

    async def mark_test(self) -> None:
        """Move UNMARKED -> MARKED_TEST. Idempotent."""
        if self.state is MarkerState.MARKED_TEST:
            return

        self.state = MarkerState.MARKED_TEST
        self._listen()

        if self.session.in_transaction():
            logger.warning(
                "Session already had an open transaction when marked as test; "
                "statements executed before this point ran unmarked"
            )
            await self._stamp("true")

    async def mark_production(self) -> None:
        """Ensure the session carries no test mark."""
        await self.clear()

    async def clear(self) -> None:
        """Move back to UNMARKED.

        The state and the listener are reset before any SQL is issued, so a
        dead session still ends up unmarked locally; the SQL failure is then
        re-raised as ``SessionMarkerError``.
        """
        was_marked = self.state is MarkerState.MARKED_TEST
        self.state = MarkerState.UNMARKED
        self._unlisten()

        if not was_marked or not self.session.in_transaction():
            return

        try:
            await self._stamp("false")
        except Exception as e:
            raise SessionMarkerError(f"failed to clear {self.setting_name}: {e}") from e

    async def is_marked_on_server(self) -> bool:
        result = await self.session.execute(_READ_SQL, {"name": self.setting_name})
        return result.scalar() == "true"

    async def current_effective_identity(self) -> str:
        """Database role the session is operating as (verification only)."""
        result = await self.session.execute(_IDENTITY_SQL)
        return str(result.scalar())
