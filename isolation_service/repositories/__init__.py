# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Repositories for persistent entities."""

from .user_repository import SessionProvider, UserRepository

__all__ = ["SessionProvider", "UserRepository"]
