# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Lightweight in-process metrics registry.

Counters are keyed by flat names such as ``routing_decisions_datasource_test``
so the snapshot can be served from ``/metrics`` without any exporter.
"""

from __future__ import annotations

import threading
import time
from typing import Any


class Counter:
    __slots__ = ("_value", "_lock")

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        if amount == 0:
            return
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        return self._value


class Histogram:
    __slots__ = ("_buckets", "_counts", "_lock")

    def __init__(self, buckets: list[float]) -> None:
        self._buckets = list(buckets)
        self._counts = [0] * (len(buckets) + 1)
        self._lock = threading.Lock()

    def observe(self, v: float) -> None:
        with self._lock:
            for i, b in enumerate(self._buckets):
                if v <= b:
                    self._counts[i] += 1
                    return
            self._counts[-1] += 1

    def snapshot(self) -> dict[str, Any]:
        return {"buckets": self._buckets, "counts": list(self._counts)}


class MetricsRegistry:
    def __init__(self) -> None:
        self.counters: dict[str, Counter] = {}
        self.histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str) -> Counter:
        with self._lock:
            c = self.counters.get(name)
            if c:
                return c
            c = Counter()
            self.counters[name] = c
            return c

    def histogram(self, name: str, buckets: list[float]) -> Histogram:
        with self._lock:
            h = self.histograms.get(name)
            if h:
                return h
            h = Histogram(buckets)
            self.histograms[name] = h
            return h

    def export(self) -> dict[str, Any]:
        return {
            "counters": {k: v.value for k, v in self.counters.items()},
            "histograms": {k: v.snapshot() for k, v in self.histograms.items()},
            "ts": time.time(),
        }


REGISTRY = MetricsRegistry()

REQUESTS_CLASSIFIED_PRODUCTION = REGISTRY.counter("requests_classified_production_total")
REQUESTS_CLASSIFIED_TEST = REGISTRY.counter("requests_classified_test_total")
CONTEXT_CLEAR_FAILURES = REGISTRY.counter("context_clear_failures_total")

STREAM_PUBLISHED_TOTAL = REGISTRY.counter("stream_published_total")
STREAM_PUBLISH_FAILURES_TOTAL = REGISTRY.counter("stream_publish_failures_total")
STREAM_PUBLISH_LATENCY_MS = REGISTRY.histogram("stream_publish_latency_ms", [1, 5, 10, 50, 100, 500, 1000])

STREAM_EVENTS_PROCESSED_TOTAL = REGISTRY.counter("stream_events_processed_total")
STREAM_EVENTS_IGNORED_TOTAL = REGISTRY.counter("stream_events_ignored_total")
STREAM_EVENTS_TRACKED_TOTAL = REGISTRY.counter("stream_events_tracked_total")


def routing_counter(resource: str, key: str) -> Counter:
    """Counter of routing decisions for one resource kind and backend key."""
    return REGISTRY.counter(f"routing_decisions_{resource}_{key.lower()}_total")
