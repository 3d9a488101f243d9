# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Database configuration and connection management.

One ``DatabaseManager`` owns one async SQLAlchemy engine. Production and test
traffic each get their own manager with distinct credentials against the same
schema; ``RoutingDatabaseManager`` chooses between them.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class DatabaseConfig:
    """Database configuration for one backend.

    Every setting is read from ``<env_prefix><NAME>`` first and falls back to
    the shared ``<NAME>``, so ``REAL_DB_USER`` / ``TEST_DB_USER`` can differ
    while host and database name are shared.
    """

    def __init__(self, env_prefix: str = "", env: Mapping[str, str] | None = None, name: str | None = None):
        self.env_prefix = env_prefix
        self._env = os.environ if env is None else env
        self.name = name or (env_prefix.rstrip("_").lower() or "default")

        # Database URL configuration
        self.database_url = self._get_database_url()

        # Connection pool configuration
        self.pool_size = int(self._get("DB_POOL_SIZE", "10"))
        self.max_overflow = int(self._get("DB_MAX_OVERFLOW", "20"))
        self.pool_timeout = int(self._get("DB_POOL_TIMEOUT", "30"))
        self.pool_recycle = int(self._get("DB_POOL_RECYCLE", "3600"))  # 1 hour

        # Connection configuration
        self.connect_timeout = int(self._get("DB_CONNECT_TIMEOUT", "10"))
        self.command_timeout = int(self._get("DB_COMMAND_TIMEOUT", "60"))
        self.application_name = self._get("DB_APPLICATION_NAME", f"isolation_service_{self.name}")

        # Feature flags
        self.enable_query_logging = self._get("DB_QUERY_LOGGING", "false").lower() == "true"
        self.enable_connection_events = self._get("DB_CONNECTION_EVENTS", "true").lower() == "true"

    def _get(self, name: str, default: str | None = None) -> str | None:
        value = self._env.get(f"{self.env_prefix}{name}")
        if value is None:
            value = self._env.get(name, default)
        return value

    def _get_database_url(self) -> str:
        """Get database URL from environment variables."""
        database_url = self._get("DATABASE_URL")
        if database_url:
            # Ensure async driver
            if database_url.startswith("postgresql://"):
                database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
            elif database_url.startswith("postgres://"):
                database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
            return database_url

        # Build URL from components
        host = self._get("DB_HOST", "localhost")
        port = self._get("DB_PORT", "5432")
        database = self._get("DB_NAME", "loadtest")
        username = self._get("DB_USER", "postgres")
        password = self._get("DB_PASSWORD", "")

        if not password:
            logger.warning(f"No database password configured for {self.name} backend - using empty password")

        return f"postgresql+asyncpg://{username}:{password}@{host}:{port}/{database}"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url


class DatabaseManager:
    """Database connection and session management for one backend."""

    def __init__(self, config: DatabaseConfig | None = None):
        self.config = config or DatabaseConfig()
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._initialized = False

    @property
    def name(self) -> str:
        return self.config.name

    def _engine_kwargs(self) -> dict[str, Any]:
        engine_kwargs: dict[str, Any] = {
            "url": self.config.database_url,
            "echo": self.config.enable_query_logging,
        }

        if not self.config.is_sqlite:
            engine_kwargs.update(
                {
                    "pool_size": self.config.pool_size,
                    "max_overflow": self.config.max_overflow,
                    "pool_timeout": self.config.pool_timeout,
                    "pool_recycle": self.config.pool_recycle,
                    "pool_pre_ping": True,
                    "connect_args": {
                        "timeout": self.config.connect_timeout,
                        "command_timeout": self.config.command_timeout,
                        "server_settings": {
                            "jit": "off",
                            "application_name": self.config.application_name,
                        },
                    },
                }
            )
        else:
            # SQLite doesn't support connection pooling
            engine_kwargs["poolclass"] = NullPool

        return engine_kwargs

    async def initialize(self) -> None:
        """Initialize database engine and session factory."""
        if self._initialized:
            return

        self.engine = create_async_engine(**self._engine_kwargs())

        if self.config.enable_connection_events:
            self._setup_connection_events()

        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True,
        )

        self._initialized = True
        logger.info(f"Database manager '{self.name}' initialized")

    def _setup_connection_events(self) -> None:
        """Set up SQLAlchemy connection event listeners."""
        if not self.engine:
            return

        name = self.name

        @event.listens_for(self.engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            logger.debug(f"Database connection established ({name})")

        @event.listens_for(self.engine.sync_engine, "checkout")
        def on_checkout(dbapi_connection, connection_record, connection_proxy):
            logger.debug(f"Database connection checked out from pool ({name})")

        @event.listens_for(self.engine.sync_engine, "checkin")
        def on_checkin(dbapi_connection, connection_record):
            logger.debug(f"Database connection returned to pool ({name})")

        @event.listens_for(self.engine.sync_engine, "invalidate")
        def on_invalidate(dbapi_connection, connection_record, exception):
            logger.warning(f"Database connection invalidated ({name}): {exception}")

    def open_session(self) -> AsyncSession:
        """Create a session without entering it; the caller owns closing it."""
        if not self.session_factory:
            raise RuntimeError(f"Database '{self.name}' not initialized")
        return self.session_factory()

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session with automatic cleanup."""
        if not self._initialized:
            await self.initialize()

        async with self.open_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create all tables known to ``Base`` (local runs and tests)."""
        from .. import models  # noqa: F401

        if not self._initialized:
            await self.initialize()

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Check database connectivity and health."""
        try:
            if not self._initialized:
                await self.initialize()

            if not self.engine:
                return False

            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                return result.scalar() == 1

        except Exception as e:
            logger.error(f"Database health check failed ({self.name}): {e}")
            return False

    async def close(self) -> None:
        """Close database connections and clean up resources."""
        if self.engine:
            await self.engine.dispose()
            logger.info(f"Database connections closed ({self.name})")

        self._initialized = False
        self.engine = None
        self.session_factory = None
