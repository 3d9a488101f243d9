"""Tests for the error taxonomy and its HTTP mapping."""

from isolation_service.errors import (
    ErrorCode,
    IsolationError,
    NotFoundError,
    RouterConfigurationError,
    StreamPublishError,
    http_status_for,
)


def test_payload_shape():
    error = NotFoundError("user 7 not found")

    assert isinstance(error, IsolationError)
    assert error.to_payload() == {"error": "not_found", "detail": "user 7 not found"}


def test_http_status_mapping():
    assert http_status_for(ErrorCode.NOT_FOUND) == 404
    assert http_status_for(ErrorCode.STREAM_PUBLISH_FAILED) == 502
    assert http_status_for(ErrorCode.ROUTER_MISCONFIGURED) == 500


def test_message_includes_code():
    assert str(RouterConfigurationError("cache router has no backend bound for TEST")).startswith("router_misconfigured")
    assert str(StreamPublishError()) == "stream_publish_failed"
