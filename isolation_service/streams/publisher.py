# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User event publishers.

Publishing is fire-and-forget: ``publish_user_created`` schedules the send
and returns the task at once. The task resolves to the broker entry id, or
to ``None`` when the send failed; failures are logged and counted and never
propagate to the caller that produced the event.

Two strategies exist:

* ``SingleStreamUserEventPublisher`` writes every event to one shared stream
  and tags it with the traffic metadata. Consumers must honour the tag.
* ``StreamRoutingUserEventPublisher`` picks the real or test stream (and the
  producer identity allowed to write it) from the classification.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..errors import RouterConfigurationError
from ..metrics import STREAM_PUBLISH_FAILURES_TOTAL, STREAM_PUBLISH_LATENCY_MS, STREAM_PUBLISHED_TOTAL
from ..routing import BackendRouter
from ..traffic.classification import TrafficClassification
from ..traffic.context import ClassificationContext
from .client import StreamClient
from .events import UserCreatedEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamTarget:
    """A stream name plus the producer handle allowed to write to it."""

    stream: str
    client: StreamClient


class UserEventPublisher(ABC):
    def __init__(self, context: ClassificationContext):
        self.context = context
        self._pending: set[asyncio.Task] = set()

    @abstractmethod
    def _target(self) -> StreamTarget:
        """Destination for an event published under the current classification."""

    def publish_user_created(self, event: UserCreatedEvent) -> asyncio.Task:
        """Schedule the event for publication and return without waiting."""
        classification = self.context.current()
        target = self._target()

        task = asyncio.get_running_loop().create_task(self._send(target, event, classification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(
        self, target: StreamTarget, event: UserCreatedEvent, classification: TrafficClassification
    ) -> str | None:
        start = time.time()
        try:
            entry_id = await target.client.publish(
                target.stream, str(event.id), event.to_json(), classification.metadata()
            )
        except Exception as e:
            STREAM_PUBLISH_FAILURES_TOTAL.inc()
            logger.error(
                f"Failed to publish UserCreatedEvent for user {event.id} to '{target.stream}' "
                f"as {target.client.username or 'default'}: {e}"
            )
            return None

        STREAM_PUBLISHED_TOTAL.inc()
        STREAM_PUBLISH_LATENCY_MS.observe((time.time() - start) * 1000)
        logger.info(
            f"Published UserCreatedEvent for user {event.id} to '{target.stream}' "
            f"[{classification.kind.value}, run {classification.run_id}] entry {entry_id}"
        )
        return entry_id

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """Wait for every scheduled send to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    @abstractmethod
    async def close(self) -> None:
        pass


class SingleStreamUserEventPublisher(UserEventPublisher):
    def __init__(self, client: StreamClient, context: ClassificationContext, stream: str = "user-events"):
        super().__init__(context)
        self.target = StreamTarget(stream, client)

    def _target(self) -> StreamTarget:
        return self.target

    async def close(self) -> None:
        await self.flush()
        await self.target.client.close()


class StreamRoutingUserEventPublisher(UserEventPublisher):
    """Route each event to the real or test stream with that stream's own producer."""

    def __init__(self, real: StreamTarget, test: StreamTarget, context: ClassificationContext):
        super().__init__(context)
        if real.stream == test.stream:
            raise RouterConfigurationError(f"stream router needs two distinct streams, got '{real.stream}' twice")
        self.router: BackendRouter[StreamTarget] = BackendRouter("stream", real, test, context)

    def _target(self) -> StreamTarget:
        return self.router.select()

    async def close(self) -> None:
        await self.flush()
        await self.router.real.client.close()
        await self.router.test.client.close()
