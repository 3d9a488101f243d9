# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Database models.

The same schema exists in the real and the test database. Under the
session-marker strategy both kinds of rows share one table and ``is_test``
is the column the row-level security policy compares against
``current_setting('app.test_mode')``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .database.manager import Base


class User(Base):
    __tablename__ = "t_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    is_test: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def to_dict(self) -> dict[str, Any]:
        """Public representation; the password never leaves the service."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "is_test": self.is_test,
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} is_test={self.is_test}>"
