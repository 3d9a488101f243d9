# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Two-backend selection shared by the datasource, cache and stream routers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Generic, TypeVar

from .errors import RouterConfigurationError
from .metrics import routing_counter
from .traffic.context import ClassificationContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendKey(str, Enum):
    REAL = "REAL"
    TEST = "TEST"


class BackendRouter(Generic[T]):
    """
    Select the ``real`` or ``test`` backend from the current classification.

    The decision is re-evaluated on every call; nothing is cached between
    calls. Both backends are long-lived, shared and never mutated here.

    Raises:
        RouterConfigurationError: at construction, if either backend is missing
    """

    def __init__(self, resource: str, real: T | None, test: T | None, context: ClassificationContext):
        missing = [key.value for key, backend in ((BackendKey.REAL, real), (BackendKey.TEST, test)) if backend is None]
        if missing:
            raise RouterConfigurationError(f"{resource} router has no backend bound for {', '.join(missing)}")
        if real is test:
            raise RouterConfigurationError(f"{resource} router must be given two distinct backends")

        self.resource = resource
        self.context = context
        self._backends: dict[BackendKey, T] = {BackendKey.REAL: real, BackendKey.TEST: test}
        self._counters = {key: routing_counter(resource, key.value) for key in BackendKey}

    def resolve_key(self) -> BackendKey:
        return BackendKey.TEST if self.context.is_test() else BackendKey.REAL

    def resolve(self) -> tuple[BackendKey, T]:
        """Resolve the current classification to a backend key and its backend."""
        key = self.resolve_key()
        self._counters[key].inc()
        logger.debug(f"Routing {self.resource} to {key.value} backend")
        return key, self._backends[key]

    def select(self) -> T:
        return self.resolve()[1]

    def backend_for(self, key: BackendKey) -> T:
        return self._backends[key]

    @property
    def real(self) -> T:
        return self._backends[BackendKey.REAL]

    @property
    def test(self) -> T:
        return self._backends[BackendKey.TEST]
