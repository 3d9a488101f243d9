# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Execution-context-local holder for the active traffic classification.

Each asyncio task (and each worker thread) sees its own value, so concurrent
requests never observe each other's classification. Reading with nothing
established yields PRODUCTION.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

from .classification import DEFAULT_TEST_RUN_ID, PRODUCTION, TrafficClassification

logger = logging.getLogger(__name__)

_classification_var: ContextVar[TrafficClassification | None] = ContextVar("traffic_classification", default=None)


class ClassificationContext:
    """Request-scoped classification state.

    Only the ingress gate (and consumers replaying message metadata) call
    ``establish`` / ``clear``; everything else reads.
    """

    def establish(self, classification: TrafficClassification) -> Token:
        token = _classification_var.set(classification)
        logger.debug(f"Traffic classification established: {classification.kind.value} ({classification.run_id})")
        return token

    def clear(self) -> None:
        _classification_var.set(None)

    def current(self) -> TrafficClassification:
        return _classification_var.get() or PRODUCTION

    def is_test(self) -> bool:
        classification = _classification_var.get()
        return classification is not None and classification.is_test

    def run_id(self) -> str:
        classification = _classification_var.get()
        return classification.run_id if classification is not None else DEFAULT_TEST_RUN_ID

    @contextmanager
    def scope(self, classification: TrafficClassification) -> Iterator[TrafficClassification]:
        """Establish ``classification`` for the block and always restore afterwards.

        The value active before the block (usually nothing, i.e. PRODUCTION)
        is restored on exit, so scopes nest.
        """
        token = self.establish(classification)
        try:
            yield classification
        finally:
            _classification_var.reset(token)


_context = ClassificationContext()


def get_classification_context() -> ClassificationContext:
    """Get the process-wide classification context."""
    return _context


class TrafficContextFilter(logging.Filter):
    """Stamp ``traffic_type`` and ``test_run_id`` onto every log record."""

    def __init__(self, context: ClassificationContext | None = None):
        super().__init__()
        self.context = context or get_classification_context()

    def filter(self, record: logging.LogRecord) -> bool:
        classification = self.context.current()
        record.traffic_type = classification.kind.value
        record.test_run_id = classification.run_id
        return True
