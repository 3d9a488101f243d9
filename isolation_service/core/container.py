# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Per-application registry of long-lived services."""

from __future__ import annotations

import logging
from typing import Any, TypeVar, cast

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Container:
    """Services of one application instance, looked up by type.

    Built by ``create_app`` and stored on ``app.state``; request dependencies
    resolve the service bundle and the user service through it.
    """

    def __init__(self):
        self._services: dict[type, Any] = {}

    def register(self, interface: type[T], implementation: T) -> None:
        self._services[interface] = implementation
        logger.debug(f"Registered service: {interface.__name__}")

    def get(self, interface: type[T]) -> T:
        """
        Retrieve a service from the container.

        Raises:
            ValueError: If service is not registered
        """
        try:
            return cast(T, self._services[interface])
        except KeyError:
            raise ValueError(f"Service not registered: {interface.__name__}") from None
