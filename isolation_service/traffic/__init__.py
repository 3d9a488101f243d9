# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Traffic classification, its request-scoped context and the ingress gate."""

from .classification import (
    DEFAULT_TEST_RUN_ID,
    LOAD_TEST_VALUE,
    TEST_RUN_ID_HEADER,
    TRAFFIC_TYPE_HEADER,
    TrafficClassification,
    TrafficKind,
)
from .context import ClassificationContext, TrafficContextFilter, get_classification_context
from .gate import IngressGate, TrafficClassificationMiddleware
from .session_marker import MarkerState, SessionMarker

__all__ = [
    "ClassificationContext",
    "DEFAULT_TEST_RUN_ID",
    "IngressGate",
    "LOAD_TEST_VALUE",
    "MarkerState",
    "SessionMarker",
    "TEST_RUN_ID_HEADER",
    "TRAFFIC_TYPE_HEADER",
    "TrafficClassification",
    "TrafficClassificationMiddleware",
    "TrafficContextFilter",
    "TrafficKind",
    "get_classification_context",
]
