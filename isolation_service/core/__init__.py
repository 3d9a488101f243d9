# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Core application infrastructure."""

from .app import create_app
from .container import Container
from .lifecycle import LifecycleManager

__all__ = ["Container", "create_app", "LifecycleManager"]
