# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Health check endpoints - liveness, readiness, metrics."""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from ..core.wiring import ServiceBundle
from ..metrics import REGISTRY
from .dependencies import get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    status: HealthStatus
    checks: dict[str, dict] = {}


@router.get("/healthz", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Returns 200 while the application is running."""
    return HealthResponse(status=HealthStatus.HEALTHY, checks={"basic": {"status": "ok"}})


@router.get("/readyz", response_model=HealthResponse)
async def readiness_check(request: Request, services: ServiceBundle = Depends(get_services)) -> HealthResponse:
    """
    Readiness probe - can the application serve traffic?

    Both backends of every router must answer; a service that can reach
    only its real database must not take test traffic, and the other way round.
    """
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None or not lifecycle.startup_complete.is_set():
        raise HTTPException(status_code=503, detail="Application still starting")

    checks = {
        "database": await services.sessions.health_check(),
        "cache": await services.caches.health_check(),
    }
    healthy = all(ok for group in checks.values() for ok in group.values())
    if not healthy:
        logger.warning(f"Readiness check failed: {checks}")
        raise HTTPException(status_code=503, detail={"status": HealthStatus.UNHEALTHY.value, "checks": checks})

    return HealthResponse(status=HealthStatus.HEALTHY, checks=checks)


@router.get("/metrics")
async def metrics() -> dict:
    return REGISTRY.export()
