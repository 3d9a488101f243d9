# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Structured error codes and exception taxonomy for the isolation service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TypedDict


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    CONFIGURATION_ERROR = "configuration_error"
    ROUTER_MISCONFIGURED = "router_misconfigured"
    STREAM_PUBLISH_FAILED = "stream_publish_failed"
    SESSION_MARKER_FAILED = "session_marker_failed"


class ErrorPayload(TypedDict):
    error: str
    detail: str


def error_response(code: ErrorCode, detail: str = "") -> ErrorPayload:
    return {"error": code.value, "detail": detail}


@dataclass
class IsolationError(Exception):
    code: ErrorCode
    detail: str = ""

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code.value}: {self.detail}" if self.detail else self.code.value

    def to_payload(self) -> ErrorPayload:
        return error_response(self.code, self.detail)


class NotFoundError(IsolationError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.NOT_FOUND, detail)


class ConfigurationError(IsolationError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.CONFIGURATION_ERROR, detail)


class RouterConfigurationError(IsolationError):
    """Raised at startup when a resource router is missing a backend."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.ROUTER_MISCONFIGURED, detail)


class StreamPublishError(IsolationError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.STREAM_PUBLISH_FAILED, detail)


class SessionMarkerError(IsolationError):
    def __init__(self, detail: str = "") -> None:
        super().__init__(ErrorCode.SESSION_MARKER_FAILED, detail)


_HTTP_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.STREAM_PUBLISH_FAILED: 502,
}


def http_status_for(code: ErrorCode) -> int:
    """Map an error code to the HTTP status used by the API layer."""
    return _HTTP_STATUS.get(code, 500)
