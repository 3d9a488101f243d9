# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Verification endpoint: how is this request being routed?"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.wiring import ServiceBundle
from ..database.request_session import current_session_marker
from ..traffic.session_marker import SessionMarker
from .dependencies import get_services

router = APIRouter(prefix="/traffic", tags=["traffic"])


class WhoAmIResponse(BaseModel):
    traffic_type: str
    test_run_id: str
    backend: str
    cache_key_prefix: str
    database_identity: str
    session_marked: bool | None = None


@router.get("/whoami", response_model=WhoAmIResponse)
async def whoami(services: ServiceBundle = Depends(get_services)) -> WhoAmIResponse:
    classification = services.context.current()
    key = services.caches.router.resolve_key()

    marker = current_session_marker()
    if marker is not None:
        identity = await marker.current_effective_identity()
        marked = await marker.is_marked_on_server()
    else:
        async with services.sessions.get_session() as session:
            identity = await SessionMarker(session).current_effective_identity()
        marked = None

    return WhoAmIResponse(
        traffic_type=classification.kind.value,
        test_run_id=classification.run_id,
        backend=key.value,
        cache_key_prefix=services.caches.router.backend_for(key).key_prefix,
        database_identity=identity,
        session_marked=marked,
    )
