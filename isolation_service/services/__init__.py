# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

from .user_service import USERS_CACHE, UserService

__all__ = ["USERS_CACHE", "UserService"]
