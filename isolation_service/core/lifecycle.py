# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Application lifecycle management."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class LifecycleManager:
    """
    Runs startup handlers in registration order and shutdown handlers in
    reverse order, the latter bounded by a shared timeout.
    """

    def __init__(self):
        self.shutdown_event = asyncio.Event()
        self.startup_complete = asyncio.Event()
        self.shutdown_handlers: list[Callable[[], Awaitable[None]]] = []
        self.startup_handlers: list[Callable[[], Awaitable[None]]] = []

    def register_startup_handler(self, handler: Callable[[], Awaitable[None]]) -> None:
        self.startup_handlers.append(handler)
        logger.debug(f"Registered startup handler: {handler.__name__}")

    def register_shutdown_handler(self, handler: Callable[[], Awaitable[None]]) -> None:
        self.shutdown_handlers.append(handler)
        logger.debug(f"Registered shutdown handler: {handler.__name__}")

    async def startup(self) -> None:
        """Run all startup handlers; the first failure aborts startup."""
        logger.info(f"Starting application lifecycle ({len(self.startup_handlers)} handlers)")
        start_time = time.time()

        for handler in self.startup_handlers:
            try:
                logger.debug(f"Running startup handler: {handler.__name__}")
                await handler()
            except Exception as e:
                logger.error(f"Startup handler failed: {handler.__name__}", exc_info=e)
                raise

        self.startup_complete.set()
        logger.info(f"Application startup complete in {time.time() - start_time:.2f}s")

    async def shutdown(self, timeout: float = 30.0) -> None:
        if self.shutdown_event.is_set():
            logger.warning("Shutdown already initiated")
            return

        logger.info(f"Initiating graceful shutdown (timeout {timeout}s)")
        self.shutdown_event.set()
        start_time = time.time()

        for handler in reversed(self.shutdown_handlers):
            try:
                remaining_timeout = timeout - (time.time() - start_time)
                if remaining_timeout <= 0:
                    logger.warning(f"Shutdown timeout exceeded, skipping handler: {handler.__name__}")
                    continue

                await asyncio.wait_for(handler(), timeout=remaining_timeout)

            except asyncio.TimeoutError:
                logger.warning(f"Shutdown handler timed out: {handler.__name__}")
            except Exception as e:
                logger.error(f"Shutdown handler failed: {handler.__name__}", exc_info=e)

        logger.info(f"Graceful shutdown complete in {time.time() - start_time:.2f}s")
