# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Ingress gate: classify every inbound request exactly once.

The gate establishes the classification, optionally opens and marks the
request session, runs the downstream handler and tears everything down again
on every exit path (return, exception, cancellation). Teardown steps are
released independently: a failing session-marker clear never prevents the
context clear, and no teardown failure masks the handler's own outcome.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from types import TracebackType
from typing import TYPE_CHECKING, Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..metrics import CONTEXT_CLEAR_FAILURES, REQUESTS_CLASSIFIED_PRODUCTION, REQUESTS_CLASSIFIED_TEST
from .classification import TEST_RUN_ID_HEADER, TRAFFIC_TYPE_HEADER, TrafficClassification
from .context import ClassificationContext, get_classification_context

if TYPE_CHECKING:
    from ..database.request_session import RequestSessionBinder

logger = logging.getLogger(__name__)


class _GuardedRelease:
    """Wrap an async context manager so failures on exit are logged, not raised."""

    def __init__(self, inner: AbstractAsyncContextManager[Any], what: str):
        self.inner = inner
        self.what = what

    async def __aenter__(self) -> Any:
        return await self.inner.__aenter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        try:
            await self.inner.__aexit__(exc_type, exc, tb)
        except Exception as e:
            if e is exc:
                return False
            CONTEXT_CLEAR_FAILURES.inc()
            logger.warning(f"Failed to release {self.what}: {e}", exc_info=e)
        return False


class IngressGate:
    """Single classification point with symmetric context lifecycle."""

    def __init__(self, context: ClassificationContext | None = None, session_binder: RequestSessionBinder | None = None):
        self.context = context or get_classification_context()
        self.session_binder = session_binder

    def classify(self, headers: Mapping[str, str]) -> TrafficClassification:
        """Build the classification for one request. Never raises."""
        classification = TrafficClassification.from_headers(headers)
        if classification.is_test:
            REQUESTS_CLASSIFIED_TEST.inc()
        else:
            REQUESTS_CLASSIFIED_PRODUCTION.inc()
        return classification

    def _clear_context(self) -> None:
        try:
            self.context.clear()
        except Exception as e:
            CONTEXT_CLEAR_FAILURES.inc()
            logger.warning(f"Failed to clear traffic classification: {e}", exc_info=e)

    @asynccontextmanager
    async def classified(self, classification: TrafficClassification) -> AsyncIterator[TrafficClassification]:
        """Run the enclosed block under ``classification``.

        The context is established before the request session is acquired, so
        the session is marked before it runs any statement.
        """
        async with AsyncExitStack() as stack:
            self.context.establish(classification)
            stack.callback(self._clear_context)

            if self.session_binder is not None:
                await stack.enter_async_context(
                    _GuardedRelease(self.session_binder.bind(classification), "request session marker")
                )

            yield classification


class TrafficClassificationMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that runs every request through the ingress gate."""

    def __init__(self, app, gate: IngressGate | None = None, echo_headers: bool = True):
        super().__init__(app)
        self.gate = gate or IngressGate()
        self.echo_headers = echo_headers

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        classification = self.gate.classify(request.headers)
        request.state.traffic_classification = classification

        async with self.gate.classified(classification):
            response = await call_next(request)

        if self.echo_headers:
            for name, value in classification.metadata().items():
                response.headers[name] = value
            response.headers.setdefault(TEST_RUN_ID_HEADER, classification.run_id)

        logger.debug(
            f"{request.method} {request.url.path} served as {response.headers.get(TRAFFIC_TYPE_HEADER)}",
            extra={"status_code": response.status_code},
        )
        return response
