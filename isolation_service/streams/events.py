# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Domain events carried on the user event streams."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class UserCreatedEvent:
    id: int
    username: str
    email: str
    is_test: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, payload: str | bytes) -> UserCreatedEvent:
        data = json.loads(payload)
        return cls(
            id=int(data["id"]),
            username=data["username"],
            email=data["email"],
            is_test=bool(data.get("is_test", False)),
        )
