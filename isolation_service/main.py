# Copyright 2025 ATP Project Contributors
# Licensed under the Apache License, Version 2.0

"""Service entry point."""

from __future__ import annotations

import os

import uvicorn

from .config import load_settings
from .core.app import create_app
from .logging_setup import setup_logging


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    app = create_app(settings)
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
