# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Assemble routers, backends and services from settings.

Construction never touches the network: engines, Redis connections and
consumer groups are opened by the lifecycle startup handlers. A router that
cannot be given both of its backends fails here, before the app serves a
single request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..cache.backends import create_cache_backend
from ..cache.router import RoutingCacheManager
from ..config import DatasourceStrategy, IsolationSettings, StreamStrategy
from ..database.manager import DatabaseManager
from ..database.request_session import RequestScopedSessionProvider, RequestSessionBinder
from ..database.routing import RoutingDatabaseManager
from ..repositories.user_repository import UserRepository
from ..services.user_service import UserService
from ..streams.client import StreamClient
from ..streams.config import StreamCredentials
from ..streams.consumer import (
    RealUserCreatedEventConsumer,
    StreamConsumer,
    TestUserCreatedEventConsumer,
    UserCreatedEventConsumer,
)
from ..streams.publisher import (
    SingleStreamUserEventPublisher,
    StreamRoutingUserEventPublisher,
    StreamTarget,
    UserEventPublisher,
)
from ..traffic.context import ClassificationContext, get_classification_context
from ..traffic.gate import IngressGate

logger = logging.getLogger(__name__)

StreamClientFactory = Callable[[str, StreamCredentials], StreamClient]


@dataclass
class ServiceBundle:
    settings: IsolationSettings
    context: ClassificationContext
    gate: IngressGate
    sessions: RoutingDatabaseManager | RequestScopedSessionProvider
    caches: RoutingCacheManager
    publisher: UserEventPublisher
    consumers: list[StreamConsumer]
    repository: UserRepository
    user_service: UserService
    consumer_tasks: list[asyncio.Task] = field(default_factory=list)

    async def startup(self) -> None:
        if self.settings.create_schema:
            await self.sessions.create_schema()
        logger.info(
            f"Isolation strategies: datasource={self.settings.datasource_strategy.value}, "
            f"stream={self.settings.stream_strategy.value}, cache={self.settings.cache.backend}"
        )

    async def start_consumers(self) -> None:
        if not self.settings.stream.consumers_enabled:
            logger.info("Stream consumers disabled")
            return
        for consumer in self.consumers:
            await consumer.start()
            self.consumer_tasks.append(asyncio.create_task(consumer.run(), name=f"consumer:{consumer.stream}"))

    async def stop_consumers(self) -> None:
        for consumer in self.consumers:
            consumer.stop()
        for task in self.consumer_tasks:
            task.cancel()
        results = await asyncio.gather(*self.consumer_tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Consumer ended with error: {result}")
        self.consumer_tasks.clear()
        for consumer in self.consumers:
            await consumer.client.close()

    async def close(self) -> None:
        await self.publisher.close()
        await self.caches.close()
        await self.sessions.close()


def _build_sessions(
    settings: IsolationSettings, context: ClassificationContext
) -> tuple[RoutingDatabaseManager | RequestScopedSessionProvider, IngressGate]:
    if settings.datasource_strategy is DatasourceStrategy.SESSION:
        database = DatabaseManager(settings.shared_database)
        return RequestScopedSessionProvider(database, context), IngressGate(context, RequestSessionBinder(database))

    routing = RoutingDatabaseManager(
        DatabaseManager(settings.real_database),
        DatabaseManager(settings.test_database),
        context,
    )
    return routing, IngressGate(context)


def _build_streams(
    settings: IsolationSettings, context: ClassificationContext, client_for: StreamClientFactory
) -> tuple[UserEventPublisher, list[StreamConsumer]]:
    stream = settings.stream
    options = dict(
        consumer_name=stream.consumer_name, context=context, batch_size=stream.batch_size, block_ms=stream.block_ms
    )

    if settings.stream_strategy is StreamStrategy.SINGLE:
        publisher = SingleStreamUserEventPublisher(
            client_for("shared-producer", stream.shared_credentials), context, stream.shared_stream
        )
        consumers: list[StreamConsumer] = [
            UserCreatedEventConsumer(
                client_for("shared-consumer", stream.shared_credentials),
                stream.shared_stream,
                stream.shared_group,
                **options,
            )
        ]
        return publisher, consumers

    publisher = StreamRoutingUserEventPublisher(
        StreamTarget(stream.real_stream, client_for("real-producer", stream.real_producer)),
        StreamTarget(stream.test_stream, client_for("test-producer", stream.test_producer)),
        context,
    )
    consumers = [
        RealUserCreatedEventConsumer(
            client_for("real-consumer", stream.real_consumer), stream.real_stream, stream.real_group, **options
        ),
        TestUserCreatedEventConsumer(
            client_for("test-consumer", stream.test_consumer), stream.test_stream, stream.test_group, **options
        ),
    ]
    return publisher, consumers


def build_services(
    settings: IsolationSettings,
    context: ClassificationContext | None = None,
    stream_client_factory: StreamClientFactory | None = None,
) -> ServiceBundle:
    """Build every router, backend and service for ``settings``.

    Raises:
        RouterConfigurationError: a router could not be given two distinct backends
    """
    context = context or get_classification_context()

    def client_for(name: str, credentials: StreamCredentials) -> StreamClient:
        return StreamClient.from_config(name, settings.stream, credentials)

    sessions, gate = _build_sessions(settings, context)
    caches = RoutingCacheManager(
        create_cache_backend(settings.cache, settings.cache.real),
        create_cache_backend(settings.cache, settings.cache.test),
        context,
    )
    publisher, consumers = _build_streams(settings, context, stream_client_factory or client_for)

    repository = UserRepository(sessions)
    user_service = UserService(repository, caches, publisher, context)

    return ServiceBundle(
        settings=settings,
        context=context,
        gate=gate,
        sessions=sessions,
        caches=caches,
        publisher=publisher,
        consumers=consumers,
        repository=repository,
        user_service=user_service,
    )
