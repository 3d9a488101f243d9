# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Stream transport configuration for both isolation strategies."""

from __future__ import annotations

import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass, field

SINGLE_STREAM = "single"
TOPIC_ROUTING = "topic"


@dataclass
class StreamCredentials:
    """Redis ACL user for one producer or consumer handle."""

    username: str | None = None
    password: str | None = None

    @classmethod
    def from_environment(cls, prefix: str, env: Mapping[str, str]) -> StreamCredentials:
        return cls(username=env.get(f"{prefix}USERNAME") or None, password=env.get(f"{prefix}PASSWORD") or None)


@dataclass
class StreamConfig:
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0

    # Single-stream, header-tagged
    shared_stream: str = "user-events"
    shared_group: str = "user-event-processor"
    shared_credentials: StreamCredentials = field(default_factory=StreamCredentials)

    # Topic-routed
    real_stream: str = "user-events.real"
    test_stream: str = "user-events.test"
    real_producer: StreamCredentials = field(default_factory=StreamCredentials)
    test_producer: StreamCredentials = field(default_factory=StreamCredentials)
    real_consumer: StreamCredentials = field(default_factory=StreamCredentials)
    test_consumer: StreamCredentials = field(default_factory=StreamCredentials)
    real_group: str = "user-events-real-processor"
    test_group: str = "user-events-test-tracker"

    consumer_name: str = field(default_factory=socket.gethostname)
    consumers_enabled: bool = True
    batch_size: int = 10
    block_ms: int = 1000

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> StreamConfig:
        env = os.environ if env is None else env
        return cls(
            redis_host=env.get("STREAM_REDIS_HOST", env.get("REDIS_HOST", "localhost")),
            redis_port=int(env.get("STREAM_REDIS_PORT", env.get("REDIS_PORT", "6379"))),
            redis_db=int(env.get("STREAM_REDIS_DB", "0")),
            shared_stream=env.get("STREAM_SHARED_NAME", "user-events"),
            shared_group=env.get("STREAM_SHARED_GROUP", "user-event-processor"),
            shared_credentials=StreamCredentials.from_environment("STREAM_SHARED_", env),
            real_stream=env.get("STREAM_REAL_NAME", "user-events.real"),
            test_stream=env.get("STREAM_TEST_NAME", "user-events.test"),
            real_producer=StreamCredentials.from_environment("STREAM_REAL_PRODUCER_", env),
            test_producer=StreamCredentials.from_environment("STREAM_TEST_PRODUCER_", env),
            real_consumer=StreamCredentials.from_environment("STREAM_REAL_CONSUMER_", env),
            test_consumer=StreamCredentials.from_environment("STREAM_TEST_CONSUMER_", env),
            real_group=env.get("STREAM_REAL_GROUP", "user-events-real-processor"),
            test_group=env.get("STREAM_TEST_GROUP", "user-events-test-tracker"),
            consumer_name=env.get("STREAM_CONSUMER_NAME", socket.gethostname()),
            consumers_enabled=env.get("STREAM_CONSUMERS_ENABLED", "true").lower() == "true",
            batch_size=int(env.get("STREAM_BATCH_SIZE", "10")),
            block_ms=int(env.get("STREAM_BLOCK_MS", "1000")),
        )
