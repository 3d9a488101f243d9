"""Tests for the session marker and the request-bound session."""

import logging
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import text

from isolation_service.database import RequestScopedSessionProvider, RequestSessionBinder, current_request_session
from isolation_service.errors import SessionMarkerError
from isolation_service.traffic import MarkerState, SessionMarker, TrafficClassification


async def server_setting(session):
    result = await session.execute(text("SELECT current_setting('app.test_mode', true)"))
    return result.scalar()


class TestSessionMarker:
    @pytest.mark.asyncio
    async def test_mark_test_stamps_first_transaction(self, marked_db):
        async with marked_db.get_session() as session:
            marker = SessionMarker(session)
            await marker.mark_test()

            assert marker.state is MarkerState.MARKED_TEST
            assert await marker.is_marked_on_server() is True

    @pytest.mark.asyncio
    async def test_unmarked_session_is_production(self, marked_db):
        async with marked_db.get_session() as session:
            marker = SessionMarker(session)
            await marker.mark_production()

            assert marker.state is MarkerState.UNMARKED
            assert await marker.is_marked_on_server() is False

    @pytest.mark.asyncio
    async def test_mark_survives_commit(self, marked_db):
        async with marked_db.get_session() as session:
            marker = SessionMarker(session)
            await marker.mark_test()
            assert await marker.is_marked_on_server() is True

            await session.commit()

            # New transaction on a fresh connection is stamped again
            assert await marker.is_marked_on_server() is True

    @pytest.mark.asyncio
    async def test_clear_returns_to_unmarked(self, marked_db):
        async with marked_db.get_session() as session:
            marker = SessionMarker(session)
            await marker.mark_test()
            await marker.is_marked_on_server()

            await marker.clear()

            assert marker.state is MarkerState.UNMARKED
            assert await server_setting(session) == "false"

    @pytest.mark.asyncio
    async def test_transitions_are_idempotent(self, marked_db):
        async with marked_db.get_session() as session:
            marker = SessionMarker(session)
            await marker.mark_test()
            await marker.mark_test()
            assert marker.is_marked

            await marker.clear()
            await marker.clear()
            await marker.mark_production()
            assert marker.state is MarkerState.UNMARKED

    @pytest.mark.asyncio
    async def test_ordering_hazard(self, marked_db, caplog):
        """Statements run before marking stay unmarked."""
        async with marked_db.get_session() as session:
            assert await server_setting(session) is None

            marker = SessionMarker(session)
            with caplog.at_level(logging.WARNING, logger="isolation_service.traffic.session_marker"):
                await marker.mark_test()

            assert "ran unmarked" in caplog.text
            assert await server_setting(session) == "true"

    @pytest.mark.asyncio
    async def test_clear_failure_still_unmarks_locally(self):
        session = AsyncMock()
        session.in_transaction = lambda: True
        session.sync_session = object()
        session.execute.side_effect = RuntimeError("connection gone")

        marker = SessionMarker(session)
        marker.state = MarkerState.MARKED_TEST

        with pytest.raises(SessionMarkerError):
            await marker.clear()
        assert marker.state is MarkerState.UNMARKED

    @pytest.mark.asyncio
    async def test_effective_identity(self):
        session = AsyncMock()
        session.execute.return_value.scalar = lambda: "app_test_user"

        assert await SessionMarker(session).current_effective_identity() == "app_test_user"


class TestRequestSessionBinder:
    @pytest.mark.asyncio
    async def test_bind_marks_and_unbinds(self, marked_db):
        binder = RequestSessionBinder(marked_db)

        async with binder.bind(TrafficClassification.for_test("run-1")) as marker:
            session = current_request_session()
            assert session is marker.session
            assert await marker.is_marked_on_server() is True

        assert current_request_session() is None
        assert marker.state is MarkerState.UNMARKED

    @pytest.mark.asyncio
    async def test_provider_reuses_bound_session(self, marked_db):
        binder = RequestSessionBinder(marked_db)
        provider = RequestScopedSessionProvider(marked_db)

        async with binder.bind(TrafficClassification.for_test("run-1")) as marker:
            async with provider.get_session() as session:
                assert session is marker.session
                assert await server_setting(session) == "true"

    @pytest.mark.asyncio
    async def test_provider_outside_request_is_unmarked(self, marked_db):
        provider = RequestScopedSessionProvider(marked_db)

        async with provider.get_session() as session:
            assert current_request_session() is None
            assert await server_setting(session) is None

    @pytest.mark.asyncio
    async def test_provider_outside_request_follows_test_scope(self, marked_db, context):
        provider = RequestScopedSessionProvider(marked_db, context)

        with context.scope(TrafficClassification.for_test("run-1")):
            async with provider.get_session() as session:
                assert current_request_session() is None
                assert await server_setting(session) == "true"

    @pytest.mark.asyncio
    async def test_provider_outside_request_under_production_is_unmarked(self, marked_db, context):
        provider = RequestScopedSessionProvider(marked_db, context)

        async with provider.get_session() as session:
            assert await server_setting(session) is None
