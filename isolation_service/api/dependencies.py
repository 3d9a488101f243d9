# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Header, Request

from ..core.wiring import ServiceBundle
from ..services.user_service import UserService
from ..traffic.classification import LOAD_TEST_VALUE, TEST_RUN_ID_HEADER, TRAFFIC_TYPE_HEADER


async def traffic_headers(
    x_traffic_type: str | None = Header(
        None,
        alias=TRAFFIC_TYPE_HEADER,
        description=f"Set to `{LOAD_TEST_VALUE}` to route the request to the test backends. "
        "Any other value, or no header, is production traffic.",
    ),
    x_test_run_id: str | None = Header(
        None,
        alias=TEST_RUN_ID_HEADER,
        description="Load test run identifier, used for correlation only. Generated when absent on test traffic.",
    ),
) -> None:
    """Document the traffic headers on every operation.

    Classification itself happens once in the middleware; this dependency
    only makes the headers visible in the OpenAPI schema.
    """


def get_services(request: Request) -> ServiceBundle:
    return request.app.state.container.get(ServiceBundle)


def get_user_service(request: Request) -> UserService:
    return request.app.state.container.get(UserService)
