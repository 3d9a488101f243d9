# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""FastAPI application factory with dependency injection and lifecycle management."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import IsolationSettings, load_settings
from ..errors import IsolationError, http_status_for
from ..services.user_service import UserService
from ..traffic.gate import TrafficClassificationMiddleware
from .container import Container
from .lifecycle import LifecycleManager
from .wiring import ServiceBundle, StreamClientFactory, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open backends and start consumers; undo both on the way out."""
    services: ServiceBundle = app.state.container.get(ServiceBundle)

    lifecycle = LifecycleManager()
    app.state.lifecycle = lifecycle

    lifecycle.register_startup_handler(services.startup)
    lifecycle.register_startup_handler(services.start_consumers)
    lifecycle.register_shutdown_handler(services.close)
    lifecycle.register_shutdown_handler(services.stop_consumers)

    try:
        await lifecycle.startup()
        logger.info("Application ready to serve traffic")
        yield
    finally:
        logger.info("Application shutting down...")
        await lifecycle.shutdown(timeout=30.0)


async def _isolation_error_handler(request: Request, exc: IsolationError) -> JSONResponse:
    status_code = http_status_for(exc.code)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=exc.to_payload())


def _register_services(container: Container, services: ServiceBundle) -> None:
    container.register(IsolationSettings, services.settings)
    container.register(ServiceBundle, services)
    container.register(UserService, services.user_service)
    logger.debug("All services registered in DI container")


def _register_routers(app: FastAPI) -> None:
    from ..api.dependencies import traffic_headers
    from ..api.health import router as health_router
    from ..api.traffic import router as traffic_router
    from ..api.users import router as users_router

    app.include_router(users_router, dependencies=[Depends(traffic_headers)])
    app.include_router(traffic_router, dependencies=[Depends(traffic_headers)])
    app.include_router(health_router)


def create_app(
    settings: IsolationSettings | None = None,
    stream_client_factory: StreamClientFactory | None = None,
    title: str = "Load Test Isolation Service",
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Service settings (default: loaded from file and environment)
        stream_client_factory: Builds stream clients per name and credentials
        title: Application title

    Raises:
        RouterConfigurationError: if a router cannot be given both backends
    """
    settings = settings or load_settings()
    services = build_services(settings, stream_client_factory=stream_client_factory)

    app = FastAPI(title=title, version=__version__, lifespan=lifespan)

    container = Container()
    _register_services(container, services)
    app.state.container = container

    app.add_middleware(
        TrafficClassificationMiddleware, gate=services.gate, echo_headers=settings.echo_traffic_headers
    )
    app.add_exception_handler(IsolationError, _isolation_error_handler)
    _register_routers(app)

    logger.info(f"Application created: {title} {__version__}")
    return app
