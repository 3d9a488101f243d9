# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Logging configuration with traffic classification on every record."""

from __future__ import annotations

import logging

from .traffic.context import ClassificationContext, TrafficContextFilter

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(traffic_type)s %(test_run_id)s] %(message)s"


def setup_logging(level: str = "INFO", context: ClassificationContext | None = None) -> None:
    """Configure root logging and attach the traffic filter to its handlers."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

    traffic_filter = TrafficContextFilter(context)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, TrafficContextFilter) for f in handler.filters):
            handler.addFilter(traffic_filter)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
