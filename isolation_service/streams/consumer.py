# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User event consumers.

Each consumer reads its stream through a consumer group, rebuilds the
classification from the entry's metadata and handles the event inside that
classification, so anything the handler touches (caches, databases, logs)
follows the producer's traffic kind.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Union

from ..metrics import STREAM_EVENTS_IGNORED_TOTAL, STREAM_EVENTS_PROCESSED_TOTAL, STREAM_EVENTS_TRACKED_TOTAL
from ..traffic.classification import TrafficClassification
from ..traffic.context import ClassificationContext
from .client import StreamClient, StreamMessage
from .events import UserCreatedEvent

logger = logging.getLogger(__name__)

HISTORY_SIZE = 1000

BusinessEffect = Callable[[UserCreatedEvent], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class ReceivedEvent:
    event: UserCreatedEvent
    classification: TrafficClassification
    entry_id: str


class StreamConsumer(ABC):
    """Consumer-group reader that dispatches each entry under its own classification."""

    def __init__(
        self,
        client: StreamClient,
        stream: str,
        group: str,
        consumer_name: str,
        context: ClassificationContext,
        batch_size: int = 10,
        block_ms: int = 1000,
        history_size: int = HISTORY_SIZE,
    ):
        self.client = client
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self.context = context
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.history_size = history_size
        # Most recent entries only
        self.failed: deque[StreamMessage] = deque(maxlen=history_size)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        await self.client.ensure_group(self.stream, self.group)
        logger.info(f"{type(self).__name__} subscribed to '{self.stream}' as group '{self.group}'")

    async def poll_once(self, block_ms: int | None = None) -> int:
        """Read one batch, handle and acknowledge every entry; returns the batch size."""
        messages = await self.client.read_group(
            self.stream, self.group, self.consumer_name, count=self.batch_size, block_ms=block_ms
        )
        for message in messages:
            await self._dispatch(message)
            await self.client.ack(self.stream, self.group, message.entry_id)
        return len(messages)

    async def _dispatch(self, message: StreamMessage) -> None:
        try:
            event = UserCreatedEvent.from_json(message.value)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Dropping malformed entry {message.entry_id} on '{message.stream}': {e}")
            self.failed.append(message)
            return

        classification = TrafficClassification.from_headers(message.headers)
        with self.context.scope(classification):
            try:
                await self.handle(ReceivedEvent(event, classification, message.entry_id))
            except Exception as e:
                logger.error(
                    f"Handler failed for entry {message.entry_id} on '{message.stream}': {e}", exc_info=e
                )
                self.failed.append(message)

    @abstractmethod
    async def handle(self, received: ReceivedEvent) -> None:
        pass

    async def run(self) -> None:
        """Poll until ``stop`` is called or the task is cancelled."""
        await self.start()
        self._running = True
        while self._running:
            try:
                await self.poll_once(self.block_ms)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Polling '{self.stream}' failed: {e}")
                await asyncio.sleep(1.0)

    def stop(self) -> None:
        self._running = False


async def _apply(effect: BusinessEffect | None, event: UserCreatedEvent) -> None:
    if effect is None:
        logger.info(f"Business logic executed for user {event.id}")
        return
    result = effect(event)
    if inspect.isawaitable(result):
        await result


class UserCreatedEventConsumer(StreamConsumer):
    """Consumer of the shared, header-tagged stream.

    Test events arrive on the same stream as production ones; only the
    ``X-Traffic-Type`` tag keeps them out of the business effect. Any
    consumer of the shared stream that skips this check will process test
    traffic as real.
    """

    def __init__(self, *args, business_effect: BusinessEffect | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.business_effect = business_effect
        self.processed: deque[ReceivedEvent] = deque(maxlen=self.history_size)
        self.ignored: deque[ReceivedEvent] = deque(maxlen=self.history_size)

    async def handle(self, received: ReceivedEvent) -> None:
        if received.classification.is_test:
            self.ignored.append(received)
            STREAM_EVENTS_IGNORED_TOTAL.inc()
            logger.info(
                f"Ignoring load test event for user {received.event.id} (run {received.classification.run_id})"
            )
            return

        await _apply(self.business_effect, received.event)
        self.processed.append(received)
        STREAM_EVENTS_PROCESSED_TOTAL.inc()


class RealUserCreatedEventConsumer(StreamConsumer):
    """Consumer of the real stream; everything on it is production traffic."""

    def __init__(self, *args, business_effect: BusinessEffect | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.business_effect = business_effect
        self.processed: deque[ReceivedEvent] = deque(maxlen=self.history_size)

    async def handle(self, received: ReceivedEvent) -> None:
        await _apply(self.business_effect, received.event)
        self.processed.append(received)
        STREAM_EVENTS_PROCESSED_TOTAL.inc()


class TestUserCreatedEventConsumer(StreamConsumer):
    """Consumer of the test stream; records events and has no business effect."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tracked: deque[ReceivedEvent] = deque(maxlen=self.history_size)

    async def handle(self, received: ReceivedEvent) -> None:
        self.tracked.append(received)
        STREAM_EVENTS_TRACKED_TOTAL.inc()
        logger.info(f"Tracked load test event for user {received.event.id} (run {received.classification.run_id})")

    def events_for_run(self, run_id: str) -> list[UserCreatedEvent]:
        return [r.event for r in self.tracked if r.classification.run_id == run_id]

    def clear(self) -> None:
        self.tracked.clear()
