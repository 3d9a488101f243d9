# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Redis Streams client bound to one ACL identity.

Every producer and consumer handle authenticates as its own Redis user, so
the broker's ACLs (``~user-events.test`` and so on) are what confine a
handle to its stream. Entries carry four string fields: ``key``, ``value``
(JSON payload) and the traffic metadata headers.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from redis.exceptions import RedisError, ResponseError

from ..errors import StreamPublishError
from .config import StreamConfig, StreamCredentials

logger = logging.getLogger(__name__)

KEY_FIELD = "key"
VALUE_FIELD = "value"


@dataclass
class StreamMessage:
    """One entry read from a stream."""

    stream: str
    entry_id: str
    key: str | None
    value: str
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_fields(cls, stream: str, entry_id: str, fields: Mapping[str, str]) -> StreamMessage:
        headers = {k: v for k, v in fields.items() if k not in (KEY_FIELD, VALUE_FIELD)}
        return cls(
            stream=stream,
            entry_id=entry_id,
            key=fields.get(KEY_FIELD) or None,
            value=fields.get(VALUE_FIELD, ""),
            headers=headers,
        )


class StreamClient:
    def __init__(
        self,
        name: str,
        credentials: StreamCredentials | None = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        redis_client=None,
    ):
        self.name = name
        self.credentials = credentials or StreamCredentials()
        self.host = host
        self.port = port
        self.db = db
        self._redis = redis_client

    @classmethod
    def from_config(cls, name: str, config: StreamConfig, credentials: StreamCredentials) -> StreamClient:
        return cls(name, credentials, host=config.redis_host, port=config.redis_port, db=config.redis_db)

    @property
    def username(self) -> str | None:
        return self.credentials.username

    @property
    def redis(self):
        if self._redis is None:
            import redis.asyncio as redis

            self._redis = redis.Redis(
                host=self.host,
                port=self.port,
                db=self.db,
                username=self.credentials.username,
                password=self.credentials.password,
                decode_responses=True,
            )
        return self._redis

    async def publish(self, stream: str, key: str | None, value: str, headers: Mapping[str, str]) -> str:
        """Append one entry; returns the entry id assigned by the broker."""
        fields: dict[str, Any] = {VALUE_FIELD: value, **headers}
        if key is not None:
            fields[KEY_FIELD] = key
        try:
            return await self.redis.xadd(stream, fields)
        except RedisError as e:
            raise StreamPublishError(f"xadd to '{stream}' as {self.username or 'default'} failed: {e}") from e

    async def ensure_group(self, stream: str, group: str) -> None:
        try:
            await self.redis.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info(f"Created consumer group '{group}' on stream '{stream}' ({self.name})")
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def read_group(
        self, stream: str, group: str, consumer: str, count: int = 10, block_ms: int | None = None
    ) -> list[StreamMessage]:
        response = await self.redis.xreadgroup(group, consumer, {stream: ">"}, count=count, block=block_ms)
        messages = []
        for stream_name, entries in response or []:
            for entry_id, fields in entries:
                messages.append(StreamMessage.from_fields(stream_name, entry_id, fields))
        return messages

    async def ack(self, stream: str, group: str, *entry_ids: str) -> int:
        if not entry_ids:
            return 0
        return await self.redis.xack(stream, group, *entry_ids)

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.error(f"Stream client health check failed ({self.name}): {e}")
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info(f"Stream client closed ({self.name})")
