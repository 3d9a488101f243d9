# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""User event streams: publishers, consumers and the Redis Streams client."""

from .client import StreamClient, StreamMessage
from .config import SINGLE_STREAM, TOPIC_ROUTING, StreamConfig, StreamCredentials
from .consumer import (
    RealUserCreatedEventConsumer,
    ReceivedEvent,
    StreamConsumer,
    TestUserCreatedEventConsumer,
    UserCreatedEventConsumer,
)
from .events import UserCreatedEvent
from .publisher import (
    SingleStreamUserEventPublisher,
    StreamRoutingUserEventPublisher,
    StreamTarget,
    UserEventPublisher,
)

__all__ = [
    "RealUserCreatedEventConsumer",
    "ReceivedEvent",
    "SINGLE_STREAM",
    "SingleStreamUserEventPublisher",
    "StreamClient",
    "StreamConfig",
    "StreamConsumer",
    "StreamCredentials",
    "StreamMessage",
    "StreamRoutingUserEventPublisher",
    "StreamTarget",
    "TOPIC_ROUTING",
    "TestUserCreatedEventConsumer",
    "UserCreatedEvent",
    "UserEventPublisher",
]
