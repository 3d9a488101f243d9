# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Traffic classification value object.

A classification is built once per inbound request from two optional
headers and is never mutated afterwards, only replaced.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

TRAFFIC_TYPE_HEADER = "X-Traffic-Type"
TEST_RUN_ID_HEADER = "X-Test-Run-Id"
LOAD_TEST_VALUE = "LOAD_TEST"
DEFAULT_TRAFFIC_TYPE = "PRODUCTION"
DEFAULT_TEST_RUN_ID = "-"


class TrafficKind(str, Enum):
    """Traffic kind; the value is what travels in headers and message metadata."""

    PRODUCTION = DEFAULT_TRAFFIC_TYPE
    TEST = LOAD_TEST_VALUE


def _generate_run_id() -> str:
    return f"test-run-{int(time.time() * 1000)}"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


@dataclass(frozen=True)
class TrafficClassification:
    """Immutable traffic kind plus an opaque run identifier.

    ``run_id`` is for correlation only and never takes part in a routing
    decision. Under PRODUCTION it is always the ``"-"`` placeholder.
    """

    kind: TrafficKind = TrafficKind.PRODUCTION
    run_id: str = DEFAULT_TEST_RUN_ID

    def __post_init__(self) -> None:
        if self.kind is TrafficKind.PRODUCTION and self.run_id != DEFAULT_TEST_RUN_ID:
            object.__setattr__(self, "run_id", DEFAULT_TEST_RUN_ID)
        elif self.kind is TrafficKind.TEST and not self.run_id.strip():
            object.__setattr__(self, "run_id", _generate_run_id())

    @property
    def is_test(self) -> bool:
        return self.kind is TrafficKind.TEST

    @classmethod
    def production(cls) -> TrafficClassification:
        return cls(TrafficKind.PRODUCTION, DEFAULT_TEST_RUN_ID)

    @classmethod
    def for_test(cls, run_id: str | None = None) -> TrafficClassification:
        return cls(TrafficKind.TEST, run_id or _generate_run_id())

    @classmethod
    def from_signals(cls, traffic_type: str | None, run_id: str | None) -> TrafficClassification:
        """Classify from raw signal values; unrecognised values mean PRODUCTION."""
        if traffic_type is not None and traffic_type.strip() == LOAD_TEST_VALUE:
            return cls.for_test(run_id.strip() if run_id else None)
        return cls.production()

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> TrafficClassification:
        return cls.from_signals(_header(headers, TRAFFIC_TYPE_HEADER), _header(headers, TEST_RUN_ID_HEADER))

    def metadata(self) -> dict[str, str]:
        """String-valued metadata for outbound messages.

        The run id is left out when it is the placeholder.
        """
        meta = {TRAFFIC_TYPE_HEADER: self.kind.value}
        if self.run_id and self.run_id != DEFAULT_TEST_RUN_ID:
            meta[TEST_RUN_ID_HEADER] = self.run_id
        return meta


PRODUCTION = TrafficClassification.production()
