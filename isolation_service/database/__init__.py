# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Relational datasource: backends, routing and request-bound sessions."""

from .manager import Base, DatabaseConfig, DatabaseManager
from .request_session import RequestScopedSessionProvider, RequestSessionBinder, current_request_session
from .routing import RoutingDatabaseManager, TrafficRoutingSession

__all__ = [
    "Base",
    "DatabaseConfig",
    "DatabaseManager",
    "RequestScopedSessionProvider",
    "RequestSessionBinder",
    "RoutingDatabaseManager",
    "TrafficRoutingSession",
    "current_request_session",
]
